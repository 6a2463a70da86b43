import threading
from collections.abc import Iterable
from functools import lru_cache

from dispatcher.core.config import get_settings
from dispatcher.core.exceptions import (
    DuplicateSubscriberError,
    SubscriberNotFoundError,
)
from dispatcher.core.logging import get_logger
from dispatcher.schemas.subscribers import Subscriber

logger = get_logger(__name__)


class SubscriberRegistry:
    """Append-only set of subscribers, read through immutable snapshots.

    Readers iterate a tuple captured at call time, so an append from the
    admin surface never disturbs a dispatch that is already resolving.
    """

    def __init__(self, subscribers: Iterable[Subscriber] = ()) -> None:
        self._lock = threading.Lock()
        self._subscribers: tuple[Subscriber, ...] = ()
        for subscriber in subscribers:
            self.add(subscriber)

    def __len__(self) -> int:
        return len(self._subscribers)

    def snapshot(self) -> tuple[Subscriber, ...]:
        return self._subscribers

    def enabled(self) -> tuple[Subscriber, ...]:
        return tuple(s for s in self.snapshot() if s.enabled)

    def get(self, subscriber_id: str) -> Subscriber:
        for subscriber in self.snapshot():
            if subscriber.id == subscriber_id:
                return subscriber
        raise SubscriberNotFoundError(
            "System not found", {"subscriber_id": subscriber_id}
        )

    def add(self, subscriber: Subscriber) -> Subscriber:
        with self._lock:
            if any(s.id == subscriber.id for s in self._subscribers):
                raise DuplicateSubscriberError(
                    f"System '{subscriber.id}' already registered",
                    {"subscriber_id": subscriber.id},
                )
            # Rebind instead of mutating so existing snapshots stay valid
            self._subscribers = self._subscribers + (subscriber,)
        logger.info(
            "subscriber_registered",
            subscriber_id=subscriber.id,
            subscriber_name=subscriber.name,
            enabled=subscriber.enabled,
            total_systems=len(self._subscribers),
        )
        return subscriber


@lru_cache
def get_registry() -> SubscriberRegistry:
    return SubscriberRegistry(get_settings().subscribers)
