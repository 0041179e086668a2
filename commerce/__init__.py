"""
Storefront services wired together through domain events.

- Domain services (catalog, cart, ordering, promotions, shipping, pickup...)
  publish events when something happens in their area
- The notification service subscribes to those events and emails customers
- Publishers and subscribers only share the event bus
"""

from commerce.event_bus import Event, EventBus, get_event_bus, reset_event_bus
from commerce.notification_service import NotificationService
from commerce.services.ordering import OrderingService

__all__ = [
    "Event",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    "NotificationService",
    "OrderingService",
]
