"""In-process publish/subscribe bus for transient lifecycle events.

Subscribers register against a topic: ``"*"`` receives every event, any other
topic receives only events whose ``session_id`` equals it. Delivery is
synchronous, in subscription order, to the subscribers present at publish
time. Nothing is buffered or replayed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

WILDCARD_TOPIC = "*"


@dataclass(frozen=True)
class Event:
    """A transient lifecycle notification."""

    type: str
    session_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the flat wire shape ``{type, session_id, ...payload}``."""
        d: dict[str, Any] = {**self.payload, "type": self.type, "timestamp": self.timestamp}
        if self.session_id is not None:
            d["session_id"] = self.session_id
        return d


EventHandler = Callable[[Event], None]


@dataclass(eq=False)
class _Subscription:
    topic: str
    handler: EventHandler

    def matches(self, event: Event) -> bool:
        return self.topic == WILDCARD_TOPIC or self.topic == event.session_id


class EventBus:
    """Synchronous fan-out of :class:`Event` objects to topic subscribers."""

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(self, topic: str, handler: EventHandler) -> Callable[[], None]:
        """Register *handler* for *topic* and return its unsubscribe function.

        The returned function is idempotent and removes only this
        registration, even if the same handler was subscribed more than once.
        """
        subscription = _Subscription(topic=topic, handler=handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                pass

        return unsubscribe

    def publish_event(self, event: Event) -> int:
        """Deliver *event* to every matching subscriber.

        Returns the number of handlers the event was delivered to. A handler
        that raises is logged and does not prevent delivery to the others.

        The recipients are the subscriptions current when publishing starts.
        A handler unsubscribed by an earlier handler during the same publish
        still receives this event. One subscribed during delivery does not.
        """
        delivered = 0
        # Snapshot so handlers may unsubscribe during delivery.
        for subscription in list(self._subscriptions):
            if not subscription.matches(event):
                continue
            try:
                subscription.handler(event)
            except Exception:
                logger.warning(
                    "Event handler failed: type=%s topic=%s",
                    event.type,
                    subscription.topic,
                    exc_info=True,
                )
            delivered += 1
        return delivered

    def publish(self, event_type: str, session_id: str | None = None, **payload: Any) -> int:
        """Convenience wrapper building an :class:`Event` and publishing it."""
        return self.publish_event(Event(type=event_type, session_id=session_id, payload=payload))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
