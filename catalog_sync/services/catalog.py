"""
Catalog view state.

``CatalogSyncCoordinator`` holds one view's record list and keeps it in step
with the stock and cart hubs. Lists are replaced, never mutated in place, so
a renderer can detect changes by identity.
"""
import logging
from collections.abc import Mapping
from typing import List, Optional

from pydantic import ValidationError

from catalog_sync.core.api_client import ShopAPIClient
from catalog_sync.core.config import settings
from catalog_sync.core.errors import CatalogError, DraftValidationError, describe_error
from catalog_sync.schemas.cart import CartSnapshot
from catalog_sync.schemas.record import Group, Record
from catalog_sync.schemas.stock import StockUpdateEvent
from catalog_sync.services.broadcast import CartBroadcastHub, StockBroadcastHub, Subscription
from catalog_sync.services.envelope import looks_like_group, looks_like_record, parse_entities

logger = logging.getLogger(__name__)


def missing_draft_fields(draft: Record) -> List[str]:
    missing = []
    if not (draft.title or "").strip():
        missing.append("title")
    if not draft.price or draft.price <= 0:
        missing.append("price")
    if not draft.stock or draft.stock <= 0:
        missing.append("stock")
    if draft.group_id is None:
        missing.append("group")
    return missing


def matches_search(record: Record, term: str) -> bool:
    return (
        term in (record.title or "").lower()
        or term in (record.group_name or "").lower()
        or (record.year is not None and term in str(record.year))
    )


class CatalogSyncCoordinator:
    def __init__(self, api: ShopAPIClient, stock_hub: StockBroadcastHub, cart_hub: CartBroadcastHub):
        self.api = api
        self.stock_hub = stock_hub
        self.cart_hub = cart_hub

        self.records: List[Record] = []
        self.filtered_records: List[Record] = []
        self.groups: List[Group] = []
        self.search_text = ""
        self.draft = Record()

        self.loading = False
        self.visible_error = False
        self.error_message = ""

        self._cart_snapshot: Optional[CartSnapshot] = None
        self._seeding = False
        self._subscriptions: List[Subscription] = []

    # Lifecycle

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    def activate(self) -> None:
        if self._subscriptions:
            return
        self._subscriptions = [
            self.stock_hub.subscribe(self.apply_stock_event),
            self.cart_hub.subscribe(self.apply_cart_snapshot),
        ]

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    async def __aenter__(self) -> "CatalogSyncCoordinator":
        self.activate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Error state

    def surface_error(self, exc: Exception) -> None:
        self.visible_error = True
        self.error_message = describe_error(exc)
        logger.error(f"Catalog view error: {self.error_message}")

    def clear_error(self) -> None:
        self.visible_error = False
        self.error_message = ""

    # Loading

    async def load(self) -> List[Record]:
        """Fetch records and groups, join group names and install the result."""
        self.loading = True
        try:
            try:
                records_payload = await self.api.get_records()
            except CatalogError as e:
                self._install([])
                self.surface_error(e)
                return self.filtered_records

            records = parse_entities(records_payload, Record, looks_like_record)

            group_error = None
            try:
                groups_payload = await self.api.get_groups()
                self.groups = parse_entities(groups_payload, Group, looks_like_group)
                group_names = {group.id: group.name for group in self.groups}
            except CatalogError as e:
                logger.warning(f"Groups unavailable, showing {len(records)} records without group names")
                group_error = e
                group_names = {}

            for record in records:
                record.group_name = group_names.get(record.group_id, "") if record.group_id is not None else ""

            self._seed_stock_levels(records)

            if self._cart_snapshot is not None:
                for record in records:
                    self._set_cart_fields(record, self._cart_snapshot)

            self._install(records)
            if group_error is not None:
                self.surface_error(group_error)
            else:
                self.clear_error()
            logger.info(f"Loaded {len(records)} records and {len(self.groups)} groups")
            return self.filtered_records
        finally:
            self.loading = False

    def _install(self, records: List[Record]) -> None:
        self.records = list(records)
        self.filtered_records = self._filter(self.search_text)

    def _seed_stock_levels(self, records: List[Record], echo: bool = False) -> None:
        """Publish the levels the hub does not already hold; this view only hears them when ``echo`` is set."""
        changed = [record for record in records if self.stock_hub.level(record.id) != record.stock]
        self._seeding = not echo
        try:
            for record in changed:
                self.stock_hub.set_level(record.id, record.stock)
        finally:
            self._seeding = False

    # Hub listeners

    def apply_stock_event(self, event: StockUpdateEvent) -> None:
        if self._seeding:
            return
        copies = {}

        def swap(record: Record) -> Record:
            if record.id != event.record_id:
                return record
            # one copy per replaced object, so base and filtered keep sharing it
            key = id(record)
            if key not in copies:
                copies[key] = record.model_copy(update={"stock": event.new_stock})
            return copies[key]

        self.records = [swap(record) for record in self.records]
        self.filtered_records = [swap(record) for record in self.filtered_records]

    def apply_cart_snapshot(self, snapshot: CartSnapshot) -> None:
        self._cart_snapshot = snapshot
        for record in self.records:
            self._set_cart_fields(record, snapshot)
        self.records = list(self.records)
        # drops the search filter on every cart change
        self.filtered_records = list(self.records)

    @staticmethod
    def _set_cart_fields(record: Record, snapshot: CartSnapshot) -> None:
        amount = snapshot.amount_for(record.id)
        record.in_cart = amount is not None
        record.amount = amount or 0

    def set_cart_state(self, record: Record, in_cart: bool, amount: int) -> None:
        """Set cart fields on ``record`` and every copy of it this view holds, then republish."""
        amount = max(0, amount)
        record.in_cart = in_cart
        record.amount = amount
        for held in (*self.records, *self.filtered_records):
            if held.id == record.id and held is not record:
                held.in_cart = in_cart
                held.amount = amount
        self.republish()

    def republish(self) -> None:
        self.records = list(self.records)
        self.filtered_records = list(self.filtered_records)

    def find_record(self, record_id: int) -> Optional[Record]:
        return next((record for record in self.records if record.id == record_id), None)

    # Search

    def search(self, text: str) -> List[Record]:
        self.search_text = text or ""
        self.filtered_records = self._filter(self.search_text)
        return self.filtered_records

    def _filter(self, text: str) -> List[Record]:
        if not text.strip():
            return list(self.records)
        term = text.lower()
        return [record for record in self.records if matches_search(record, term)]

    # Draft editing

    def edit(self, record: Record) -> Record:
        self.draft = record.model_copy()
        self.draft.photo = None
        self.draft.photo_name = record.image_url.rsplit("/", 1)[-1] if record.image_url else ""
        if record.group_id is not None:
            group = next((g for g in self.groups if g.id == record.group_id), None)
            if group:
                self.draft.group_name = group.name
        return self.draft

    def reset_draft(self) -> Record:
        self.draft = Record()
        return self.draft

    # Writes

    async def save(self, draft: Optional[Record] = None) -> bool:
        """Create or update ``draft`` (the view's own draft by default), then reload."""
        draft = draft if draft is not None else self.draft
        missing = missing_draft_fields(draft)
        if missing:
            self.surface_error(DraftValidationError(missing))
            return False

        to_save = draft.model_copy()
        try:
            if to_save.is_draft:
                await self.api.create_record(to_save)
            else:
                await self.api.update_record(to_save)
        except CatalogError as e:
            self.surface_error(e)
            return False

        logger.info(f"Saved record '{to_save.title}' ({'new' if to_save.is_draft else to_save.id})")
        self.clear_error()
        self.reset_draft()
        await self.load()
        return True

    async def delete(self, record_id: int) -> bool:
        try:
            await self.api.delete_record(record_id)
        except CatalogError as e:
            self.surface_error(e)
            return False

        logger.info(f"Deleted record {record_id}")
        self.clear_error()
        await self.load()
        return True

    async def increment_stock(self, record_id: int) -> bool:
        return await self._change_stock(record_id, 1)

    async def decrement_stock(self, record_id: int) -> bool:
        return await self._change_stock(record_id, -1)

    async def _change_stock(self, record_id: int, delta: int) -> bool:
        try:
            await self.api.update_stock(record_id, delta)
        except CatalogError as e:
            self.surface_error(e)
            return False
        self.stock_hub.adjust(record_id, delta)
        return True

    # Single reads

    async def get_record(self, record_id: int) -> Optional[Record]:
        """Fetch one record, filling in its group name when the server left it out."""
        try:
            payload = await self.api.get_record(record_id)
        except CatalogError as e:
            self.surface_error(e)
            return None

        if not isinstance(payload, Mapping) or not looks_like_record(payload):
            logger.warning(f"Record {record_id} response has an unexpected shape")
            return None
        try:
            record = Record.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Skipping undecodable Record {record_id}: {e.error_count()} error(s) in {payload!r}")
            return None

        if record.group_name or record.group_id is None:
            return record

        try:
            group = Group.model_validate(await self.api.get_group(record.group_id))
            record.group_name = group.name or settings.NO_GROUP_LABEL
        except CatalogError as e:
            logger.error(f"Error getting group for record {record_id}: {str(e)}")
            record.group_name = settings.NO_GROUP_LABEL
        except ValueError as e:
            logger.warning(f"Group {record.group_id} response has an unexpected shape: {str(e)}")
            record.group_name = settings.NO_GROUP_LABEL
        return record

    async def records_by_group(self, group_id: int) -> List[Record]:
        try:
            payload = await self.api.get_records_by_group(group_id)
        except CatalogError as e:
            self.surface_error(e)
            return []

        container = payload
        group_name = ""
        if isinstance(payload, Mapping):
            container = payload.get("records", payload)
            group = payload.get("group")
            group_name = payload.get("nameGroup") or (group.get("nameGroup") if isinstance(group, Mapping) else "") or ""

        records = parse_entities(container, Record, looks_like_record)
        for record in records:
            record.group_name = group_name
            if self._cart_snapshot is not None:
                self._set_cart_fields(record, self._cart_snapshot)
        self._seed_stock_levels(records, echo=True)
        return records
