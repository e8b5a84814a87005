"""Synchronous publish/subscribe channel."""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None]


class Subscription(Generic[T]):
    """Handle returned by :meth:`EventBus.subscribe`."""

    def __init__(self, bus: EventBus[T], subscriber: Subscriber[T]) -> None:
        self._bus = bus
        self._subscriber = subscriber
        self.closed = False

    def unsubscribe(self) -> None:
        if not self.closed:
            self._bus._remove(self._subscriber)
            self.closed = True


class EventBus(Generic[T]):
    """Single-threaded multicast channel with no buffering or replay.

    Subscribers only see items published after they subscribe. ``publish``
    calls every subscriber in subscription order, iterating over a snapshot
    of the subscriber list so that a subscriber may subscribe, unsubscribe
    or publish again while being notified.
    """

    def __init__(self, name: str = "events") -> None:
        self.name = name
        self._subscribers: list[Subscriber[T]] = []

    def subscribe(self, subscriber: Subscriber[T]) -> Subscription[T]:
        self._subscribers.append(subscriber)
        return Subscription(self, subscriber)

    def publish(self, item: T) -> None:
        for subscriber in list(self._subscribers):
            self._safe_notify(subscriber, item)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _remove(self, subscriber: Subscriber[T]) -> None:
        for idx, existing in enumerate(self._subscribers):
            if existing is subscriber:
                del self._subscribers[idx]
                return

    def _safe_notify(self, subscriber: Subscriber[T], item: T) -> None:
        """Notify one subscriber, logging any exception it raises."""
        try:
            subscriber(item)
        except Exception as exc:
            logger.warning(
                "subscriber_failed",
                bus=self.name,
                subscriber=repr(subscriber),
                error=str(exc),
            )
