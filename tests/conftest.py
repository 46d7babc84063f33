import inspect
from urllib.parse import unquote

import httpx
import pytest

from catalog_sync.core.api_client import ShopAPIClient
from catalog_sync.core.identity import IdentityProvider
from catalog_sync.services.broadcast import CartBroadcastHub, StockBroadcastHub
from catalog_sync.services.cart import CartOptimisticUpdater
from catalog_sync.services.catalog import CatalogSyncCoordinator


BASE_URL = "http://shop.example.com/api"
USER_EMAIL = "customer@example.com"


def reply(status: int = 200, body=None):
    def responder(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)
    return responder


def record_payload(id_record, title, stock=5, group_id=1, price=10, year=1999, **extra):
    payload = {
        "idRecord": id_record,
        "titleRecord": title,
        "yearOfPublication": year,
        "imageRecord": None,
        "price": price,
        "stock": stock,
        "discontinued": False,
        "groupId": group_id,
    }
    payload.update(extra)
    return payload


class FakeBackend:
    """Routes (method, path) to canned responders and records every request."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method: str, path: str, responder=None, status: int = 200, body=None):
        self.routes[(method, path)] = responder or reply(status, body)

    def calls(self, method: str = None, path: str = None) -> list:
        return [
            request for request in self.requests
            if (method is None or request.method == method)
            and (path is None or _relative_path(request) == path)
        ]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, _relative_path(request)))
        if responder is None:
            return httpx.Response(404, json={"title": "Not Found"})
        result = responder(request)
        if inspect.isawaitable(result):
            result = await result
        return result


def _relative_path(request: httpx.Request) -> str:
    return unquote(request.url.path).removeprefix("/api/")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def identity():
    return IdentityProvider()


@pytest.fixture
def signed_in(identity):
    identity.sign_in(USER_EMAIL, "token-123")
    return identity


@pytest.fixture
async def api(backend, identity):
    client = ShopAPIClient(BASE_URL, token_provider=identity.get_token, transport=httpx.MockTransport(backend))
    yield client
    await client.close()


@pytest.fixture
def stock_hub():
    hub = StockBroadcastHub()
    yield hub
    hub.close()


@pytest.fixture
def cart_hub():
    hub = CartBroadcastHub()
    yield hub
    hub.close()


@pytest.fixture
def catalog(api, stock_hub, cart_hub):
    view = CatalogSyncCoordinator(api, stock_hub, cart_hub)
    view.activate()
    yield view
    view.close()


@pytest.fixture
def cart(api, identity, catalog, cart_hub):
    return CartOptimisticUpdater(api, identity, catalog, cart_hub)
