import asyncio
import logging
from typing import List, Optional

from catalog_sync.core.api_client import ShopAPIClient
from catalog_sync.core.config import settings
from catalog_sync.core.errors import CatalogError, describe_error
from catalog_sync.core.identity import IdentityProvider
from catalog_sync.schemas.order import Order
from catalog_sync.services.broadcast import Subscription
from catalog_sync.services.envelope import looks_like_order, parse_entities

logger = logging.getLogger(__name__)


def format_total(order: Order) -> str:
    return f"{order.total:.2f}"


def format_order_date(order: Order) -> str:
    return order.order_date.strftime(settings.ORDER_DATE_FORMAT)


def matches_search(order: Order, term: str) -> bool:
    return (
        term in format_order_date(order).lower()
        or term in (order.payment_method or "").lower()
        or term in format_total(order)
        or term in str(order.total)
    )


class OrderSyncCoordinator:
    """Order history of whoever is signed in, reloaded on every identity change."""

    def __init__(self, api: ShopAPIClient, identity: IdentityProvider):
        self.api = api
        self.identity = identity

        self.orders: List[Order] = []
        self.filtered_orders: List[Order] = []
        self.search_text = ""
        self.expanded_order_id: Optional[int] = None

        self.loading = False
        self.visible_error = False
        self.error_message = ""

        self._subscription: Optional[Subscription] = None
        self._load_task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def activate(self) -> None:
        """Subscribe to identity changes and load for the current identity."""
        if self._subscription is not None:
            return
        self._subscription = self.identity.subscribe(self.on_identity_change)
        self.on_identity_change(self.identity.email)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None

    async def __aenter__(self) -> "OrderSyncCoordinator":
        self.activate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def on_identity_change(self, email: Optional[str]) -> None:
        # the newest identity wins; a load for the previous one is abandoned
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = asyncio.get_running_loop().create_task(self.load(email))

    async def settle(self) -> None:
        """Wait for the load started by the last identity change."""
        task = self._load_task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def load(self, email: Optional[str]) -> List[Order]:
        if not email:
            self._install([])
            self.loading = False
            self.visible_error = False
            self.error_message = ""
            return self.filtered_orders

        self.loading = True
        try:
            payload = await self.api.get_orders(email)
        except CatalogError as e:
            self._install([])
            self.visible_error = True
            self.error_message = describe_error(e)
            logger.error(f"Error loading orders for {email}: {self.error_message}")
            return self.filtered_orders
        finally:
            self.loading = False

        orders = parse_entities(payload, Order, looks_like_order)
        self._install(orders)
        self.visible_error = False
        self.error_message = ""
        logger.info(f"Loaded {len(orders)} orders for {email}")
        return self.filtered_orders

    def _install(self, orders: List[Order]) -> None:
        self.orders = list(orders)
        self.filtered_orders = self._filter(self.search_text)

    def search(self, text: str) -> List[Order]:
        self.search_text = text or ""
        self.filtered_orders = self._filter(self.search_text)
        return self.filtered_orders

    def _filter(self, text: str) -> List[Order]:
        if not text.strip():
            return list(self.orders)
        term = text.lower()
        return [order for order in self.orders if matches_search(order, term)]

    def toggle_order_details(self, order_id: int) -> None:
        self.expanded_order_id = None if self.expanded_order_id == order_id else order_id

    def is_order_expanded(self, order_id: int) -> bool:
        return self.expanded_order_id == order_id
