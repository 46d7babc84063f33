"""
Optimistic cart mutations.

Each add/remove changes the view immediately, then calls the cart API. A
failed call rolls the record back, but only if no newer operation on the
same record has been issued since; otherwise the newer operation owns the
record's state and the stale rollback is dropped.
"""
import logging
from typing import Dict, Optional

from catalog_sync.core.api_client import ShopAPIClient
from catalog_sync.core.errors import CatalogError
from catalog_sync.core.identity import IdentityProvider
from catalog_sync.schemas.cart import CartLine, CartSnapshot
from catalog_sync.schemas.record import Record
from catalog_sync.services.broadcast import CartBroadcastHub
from catalog_sync.services.catalog import CatalogSyncCoordinator
from catalog_sync.services.envelope import looks_like_cart_line, parse_entities

logger = logging.getLogger(__name__)


class CartOptimisticUpdater:
    def __init__(
        self,
        api: ShopAPIClient,
        identity: IdentityProvider,
        view: CatalogSyncCoordinator,
        cart_hub: CartBroadcastHub,
    ):
        self.api = api
        self.identity = identity
        self.view = view
        self.cart_hub = cart_hub
        self._sequence: Dict[int, int] = {}

    def _issue(self, record_id: int) -> int:
        self._sequence[record_id] = self._sequence.get(record_id, 0) + 1
        return self._sequence[record_id]

    def _is_latest(self, record_id: int, sequence: int) -> bool:
        return self._sequence.get(record_id) == sequence

    async def add_to_cart(self, record: Record) -> bool:
        email = self.identity.email
        if not email:
            return False

        sequence = self._issue(record.id)
        self.view.set_cart_state(record, True, record.amount + 1)

        try:
            await self.api.add_to_cart(email, record.id)
        except CatalogError as e:
            logger.error(f"Error adding record {record.id} to cart: {str(e)}")
            self.view.surface_error(e)
            if self._is_latest(record.id, sequence):
                self.view.set_cart_state(record, False, 0)
            else:
                logger.info(f"Add #{sequence} for record {record.id} superseded, rollback dropped")
            return False

        logger.info(f"Record {record.id} added to cart of {email}")
        return True

    async def remove_from_cart(self, record: Record) -> bool:
        email = self.identity.email
        if not email or not record.in_cart:
            return False

        sequence = self._issue(record.id)
        amount = max(0, record.amount - 1)
        self.view.set_cart_state(record, amount > 0, amount)

        try:
            await self.api.remove_from_cart(email, record.id)
        except CatalogError as e:
            logger.error(f"Error removing record {record.id} from cart: {str(e)}")
            self.view.surface_error(e)
            if self._is_latest(record.id, sequence):
                self.view.set_cart_state(record, True, record.amount + 1)
            else:
                logger.info(f"Remove #{sequence} for record {record.id} superseded, rollback dropped")
            return False

        logger.info(f"Record {record.id} removed from cart of {email}")
        return True

    async def refresh_cart(self) -> Optional[CartSnapshot]:
        """Fetch the signed-in user's cart and broadcast it."""
        email = self.identity.email
        if not email:
            return self.cart_hub.publish_lines([])

        try:
            payload = await self.api.get_cart(email)
        except CatalogError as e:
            self.view.surface_error(e)
            return None

        lines = parse_entities(payload, CartLine, looks_like_cart_line)
        return self.cart_hub.publish_lines(lines)
