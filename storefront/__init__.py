"""
Storefront core: the building blocks every service shares.

- Domain models (products, carts, orders, promotions, shipping, pickup...)
- JSON-backed data store
- Settings, error types
- Mock email/SMS channels and template helpers
"""

from storefront.config import Settings, get_settings
from storefront.data_store import DataStore, get_data_store
from storefront.errors import (
    InsufficientStockError,
    NotFoundError,
    ShippingNotAllowedError,
    SlotUnavailableError,
    StorefrontError,
    ValidationError,
)
from storefront.channels import EmailChannel, NotificationChannels, SMSChannel, SendResult

__all__ = [
    "Settings",
    "get_settings",
    "DataStore",
    "get_data_store",
    "StorefrontError",
    "NotFoundError",
    "ValidationError",
    "InsufficientStockError",
    "ShippingNotAllowedError",
    "SlotUnavailableError",
    "EmailChannel",
    "SMSChannel",
    "NotificationChannels",
    "SendResult",
]
