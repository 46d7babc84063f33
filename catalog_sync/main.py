import logging
import sys
from typing import List, Optional, Union

import httpx

from catalog_sync.core.api_client import ShopAPIClient
from catalog_sync.core.config import settings
from catalog_sync.core.identity import IdentityProvider
from catalog_sync.services.broadcast import CartBroadcastHub, StockBroadcastHub
from catalog_sync.services.cart import CartOptimisticUpdater
from catalog_sync.services.catalog import CatalogSyncCoordinator
from catalog_sync.services.orders import OrderSyncCoordinator

logger = logging.getLogger(__name__)

View = Union[CatalogSyncCoordinator, OrderSyncCoordinator]


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    app_logger = logging.getLogger("catalog_sync")
    app_logger.setLevel(level or settings.LOG_LEVEL)
    if not app_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        app_logger.addHandler(handler)
    app_logger.propagate = False
    return app_logger


class Storefront:
    """
    Owns the process-wide pieces: identity, API client and both hubs.

    Views opened here are activated immediately and closed by ``close_view``
    or, at the latest, by ``close()``, which also closes the hubs and the
    HTTP client.
    """

    def __init__(
        self,
        base_url: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log_level: Optional[str] = None,
    ):
        configure_logging(log_level)
        self.identity = IdentityProvider()
        self.api = ShopAPIClient(base_url, token_provider=self.identity.get_token, transport=transport)
        self.stock_hub = StockBroadcastHub()
        self.cart_hub = CartBroadcastHub()
        self._views: List[View] = []

    def open_catalog_view(self) -> CatalogSyncCoordinator:
        view = CatalogSyncCoordinator(self.api, self.stock_hub, self.cart_hub)
        view.activate()
        self._views.append(view)
        return view

    def cart_for(self, view: CatalogSyncCoordinator) -> CartOptimisticUpdater:
        return CartOptimisticUpdater(self.api, self.identity, view, self.cart_hub)

    def open_order_view(self) -> OrderSyncCoordinator:
        """Must be called from within a running event loop."""
        view = OrderSyncCoordinator(self.api, self.identity)
        view.activate()
        self._views.append(view)
        return view

    def close_view(self, view: View) -> None:
        view.close()
        if view in self._views:
            self._views.remove(view)

    async def close(self) -> None:
        for view in list(self._views):
            self.close_view(view)
        self.stock_hub.close()
        self.cart_hub.close()
        self.identity.close()
        await self.api.close()
        logger.info(f"{settings.SHOP_NAME} storefront closed")

    async def __aenter__(self) -> "Storefront":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
