"""
In-memory event bus connecting the storefront services.

Services publish domain events (an order was placed, stock came back, a price
changed) and other components subscribe to them. The notification service is
the main subscriber: the ordering and catalog services never call it directly.

Design decisions:
- Synchronous delivery, in subscription order
- Subscriptions by event type, plus "*" for every event
- A failing handler is logged and does not stop the others
- Published events are kept in an in-memory log for inspection
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

logger = logging.getLogger("event_bus")

ALL_EVENTS = "*"


@dataclass
class Event:
    """
    Record of something that happened in the store.

    Attributes:
        event_type: Name used for routing (see commerce.events.EventTypes)
        payload: Event-specific data
        source: Service that published the event
        event_id: Unique id of this event
        timestamp: When the event was created (UTC)
    """
    event_type: str
    payload: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"Event({self.event_type}, id={self.event_id[:8]}, source={self.source})"


EventHandler = Callable[[Event], None]


class EventBus:
    """
    Simple pub/sub bus.

    Example:
        bus = EventBus()
        bus.subscribe(EventTypes.ORDER_PLACED, handle_order_placed)
        bus.publish(order_placed(order))
    """

    def __init__(self, keep_log: bool = True):
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._event_log: list[Event] = []
        self._log_events = keep_log

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed handler to '{event_type}' events")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to every event (audit, debugging)."""
        self.subscribe(ALL_EVENTS, handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Remove a handler.

        Returns:
            True if the handler was subscribed, False otherwise
        """
        try:
            self._subscribers[event_type].remove(handler)
        except ValueError:
            return False
        logger.debug(f"Unsubscribed handler from '{event_type}' events")
        return True

    def publish(self, event: Event) -> int:
        """
        Deliver an event to its subscribers.

        Returns:
            Number of handlers the event was delivered to
        """
        if self._log_events:
            self._event_log.append(event)

        logger.info(f"Publishing: {event}")

        handlers = list(self._subscribers.get(event.event_type, []))
        handlers += self._subscribers.get(ALL_EVENTS, [])

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler raised exception for {event}: {e}")

        if not handlers:
            logger.debug(f"No handlers for event type '{event.event_type}'")

        return len(handlers)

    def get_subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, []))

    def get_event_log(self, event_type: Optional[str] = None) -> list[Event]:
        if event_type is None:
            return self._event_log.copy()
        return [e for e in self._event_log if e.event_type == event_type]

    def clear_event_log(self) -> None:
        self._event_log.clear()

    def clear_subscribers(self) -> None:
        self._subscribers.clear()


# Module-level singleton for convenience
_default_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the default event bus singleton."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> EventBus:
    """Replace the default event bus with a fresh one (tests)."""
    global _default_bus
    _default_bus = EventBus()
    return _default_bus
