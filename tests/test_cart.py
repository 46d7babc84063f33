import asyncio
import json

import pytest

from catalog_sync.schemas.cart import CartLine
from catalog_sync.schemas.record import Record
from conftest import USER_EMAIL, reply


ADD_PATH = f"carts/addToCart/{USER_EMAIL}"
REMOVE_PATH = f"carts/removeFromCart/{USER_EMAIL}"


def gated(status: int):
    """Responder that blocks until its gate is opened."""
    gate = asyncio.Event()

    async def responder(request):
        await gate.wait()
        return reply(status)(request)

    return gate, responder


@pytest.fixture
def record(catalog):
    record = Record(id=7, title="A Love Supreme", stock=4)
    catalog.records = [record]
    catalog.filtered_records = [record]
    return record


@pytest.mark.asyncio
async def test_add_without_identity_is_noop(cart, backend, record):
    assert await cart.add_to_cart(record) is False

    assert record.in_cart is False
    assert record.amount == 0
    assert backend.requests == []


@pytest.mark.asyncio
async def test_add_applies_before_confirmation(cart, catalog, backend, signed_in, record):
    gate, responder = gated(200)
    backend.on("POST", ADD_PATH, responder)
    filtered_before = catalog.filtered_records

    task = asyncio.create_task(cart.add_to_cart(record))
    await asyncio.sleep(0)

    assert record.in_cart is True
    assert record.amount == 1
    assert catalog.filtered_records is not filtered_before

    gate.set()
    assert await task is True
    assert record.in_cart is True
    assert record.amount == 1


@pytest.mark.asyncio
async def test_add_sends_bearer_token_and_record(cart, backend, signed_in, record):
    backend.on("POST", ADD_PATH, body=None)

    await cart.add_to_cart(record)

    request = backend.calls("POST", ADD_PATH)[0]
    assert request.headers["authorization"] == "Bearer token-123"
    assert json.loads(request.content) == {"idRecord": 7, "amount": 1}


@pytest.mark.asyncio
async def test_add_failure_resets_cart_state(cart, catalog, backend, signed_in, record):
    record.in_cart = True
    record.amount = 3
    backend.on("POST", ADD_PATH, status=500)

    assert await cart.add_to_cart(record) is False

    assert record.in_cart is False
    assert record.amount == 0
    assert catalog.visible_error is True


@pytest.mark.asyncio
async def test_remove_on_last_item_clears_immediately(cart, backend, signed_in, record):
    record.in_cart = True
    record.amount = 1
    gate, responder = gated(200)
    backend.on("POST", REMOVE_PATH, responder)

    task = asyncio.create_task(cart.remove_from_cart(record))
    await asyncio.sleep(0)

    assert record.amount == 0
    assert record.in_cart is False

    gate.set()
    assert await task is True


@pytest.mark.asyncio
async def test_remove_failure_reverts(cart, backend, signed_in, record):
    record.in_cart = True
    record.amount = 1
    backend.on("POST", REMOVE_PATH, status=404)

    assert await cart.remove_from_cart(record) is False

    assert record.amount == 1
    assert record.in_cart is True


@pytest.mark.asyncio
async def test_remove_when_not_in_cart_is_noop(cart, backend, signed_in, record):
    assert await cart.remove_from_cart(record) is False

    assert backend.requests == []
    assert record.amount == 0


@pytest.mark.asyncio
async def test_stale_rollback_is_dropped(cart, backend, signed_in, record):
    first_gate, first_failure = gated(500)
    outcomes = iter([first_failure, reply(200)])
    backend.on("POST", ADD_PATH, lambda request: next(outcomes)(request))

    first = asyncio.create_task(cart.add_to_cart(record))
    while not backend.requests:
        await asyncio.sleep(0)
    assert await cart.add_to_cart(record) is True
    assert record.amount == 2

    first_gate.set()
    assert await first is False

    assert record.in_cart is True
    assert record.amount == 2


@pytest.mark.asyncio
async def test_cart_state_reaches_copies_held_by_view(cart, catalog, backend, signed_in, record, stock_hub):
    from catalog_sync.schemas.stock import StockUpdateEvent

    backend.on("POST", ADD_PATH, body=None)
    stock_hub.publish(StockUpdateEvent(record_id=7, new_stock=3))

    await cart.add_to_cart(record)

    held = catalog.find_record(7)
    assert held is not record
    assert (held.in_cart, held.amount, held.stock) == (True, 1, 3)


@pytest.mark.asyncio
async def test_refresh_cart_broadcasts_snapshot(cart, catalog, backend, signed_in, record, cart_hub):
    backend.on("GET", f"carts/{USER_EMAIL}", body={"$values": [{"idRecord": 7, "amount": 2}]})
    received = []
    cart_hub.subscribe(received.append)

    snapshot = await cart.refresh_cart()

    assert snapshot.lines == (CartLine(record_id=7, amount=2),)
    assert received == [snapshot]
    assert (record.in_cart, record.amount) == (True, 2)


@pytest.mark.asyncio
async def test_refresh_cart_without_identity_clears(cart, backend, record, cart_hub):
    record.in_cart = True
    record.amount = 2

    snapshot = await cart.refresh_cart()

    assert snapshot.lines == ()
    assert (record.in_cart, record.amount) == (False, 0)
    assert backend.requests == []
