"""
In-process broadcast hubs.

A hub fans each published event out to its listeners synchronously, in
subscription order, inside the publishing call. There is no buffering and no
replay: a listener subscribed after a publish never sees that event.

Hubs are constructed explicitly and handed to the views that need them. The
owner calls ``close()`` on teardown, which cancels every remaining
subscription.
"""
import logging
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from catalog_sync.schemas.cart import CartLine, CartSnapshot
from catalog_sync.schemas.stock import StockUpdateEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription(Generic[T]):
    """Handle returned by ``BroadcastHub.subscribe``."""

    def __init__(self, hub: "BroadcastHub[T]", listener: Callable[[T], None]):
        self._hub = hub
        self.listener = listener
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._hub._detach(self)

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class BroadcastHub(Generic[T]):
    def __init__(self, name: str = "hub"):
        self.name = name
        self._subscriptions: List[Subscription[T]] = []

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: Callable[[T], None]) -> Subscription[T]:
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        logger.debug(f"[{self.name}] subscribed, {self.listener_count} listener(s)")
        return subscription

    def publish(self, event: T) -> None:
        # snapshot so listeners may (un)subscribe during delivery
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.listener(event)
            except Exception:
                logger.exception(f"[{self.name}] listener failed while handling {event!r}")

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.cancel()

    def _detach(self, subscription: Subscription[T]) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
        logger.debug(f"[{self.name}] unsubscribed, {self.listener_count} listener(s)")


class StockBroadcastHub(BroadcastHub[StockUpdateEvent]):
    """
    Stock levels, always published as absolute values.

    ``set_level`` seeds a level read from the server; ``adjust`` applies a
    signed delta to the last known level. The hub remembers levels only to
    resolve deltas, it does not replay them to new subscribers.
    """

    def __init__(self, name: str = "stock"):
        super().__init__(name)
        self._levels: Dict[int, int] = {}

    def level(self, record_id: int) -> Optional[int]:
        return self._levels.get(record_id)

    def publish(self, event: StockUpdateEvent) -> None:
        self._levels[event.record_id] = event.new_stock
        super().publish(event)

    def set_level(self, record_id: int, stock: int) -> StockUpdateEvent:
        event = StockUpdateEvent(record_id=record_id, new_stock=stock)
        self.publish(event)
        return event

    def adjust(self, record_id: int, delta: int) -> Optional[StockUpdateEvent]:
        current = self._levels.get(record_id)
        if current is None:
            logger.warning(f"[{self.name}] no known stock for record {record_id}, dropping delta {delta:+d}")
            return None
        return self.set_level(record_id, max(0, current + delta))

    def close(self) -> None:
        super().close()
        self._levels.clear()


class CartBroadcastHub(BroadcastHub[CartSnapshot]):
    def __init__(self, name: str = "cart"):
        super().__init__(name)

    def publish_lines(self, lines: List[CartLine]) -> CartSnapshot:
        snapshot = CartSnapshot(lines=tuple(lines))
        self.publish(snapshot)
        return snapshot
