"""
Shared pytest fixtures for the storefront tests.

These fixtures provide consistent test data and reset state between tests.
Every test gets its own DataStore over the JSON fixtures in data/, so writes
made by one test are never seen by another.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from commerce.event_bus import EventBus, reset_event_bus
from commerce.notification_service import NotificationService
from commerce.services.alerts import BackInStockService
from commerce.services.cart import CartService
from commerce.services.catalog import CatalogService
from commerce.services.email_templates import EmailTemplateService
from commerce.services.ordering import OrderingService
from commerce.services.pickup import PickupService
from commerce.services.promotions import PromotionsService
from commerce.services.reports import ReportsService
from commerce.services.shipping import ShippingService
from storefront.channels import EmailChannel, NotificationChannels, SMSChannel
from storefront.config import Settings
from storefront.data_store import DataStore


@pytest.fixture
def data_dir() -> Path:
    """Path to the fixture data directory."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def data_store(data_dir: Path) -> DataStore:
    """
    Fresh DataStore instance for each test.

    Uses the real JSON fixtures but creates a new instance
    so tests don't interfere with each other.
    """
    return DataStore(data_dir=data_dir)


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment's DATA_DIR."""
    return Settings(_env_file=None)


@pytest.fixture
def now() -> datetime:
    """Fixed 'current time' used by time-dependent tests."""
    return datetime(2026, 9, 30, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def event_bus() -> EventBus:
    """Fresh event bus for each test."""
    return reset_event_bus()


@pytest.fixture
def email_channel() -> EmailChannel:
    """Fresh EmailChannel for each test."""
    return EmailChannel(fail_rate=0.0)


@pytest.fixture
def sms_channel() -> SMSChannel:
    """Fresh SMSChannel for each test."""
    return SMSChannel(fail_rate=0.0)


@pytest.fixture
def channels() -> NotificationChannels:
    """Fresh NotificationChannels facade for each test."""
    return NotificationChannels(email_fail_rate=0.0, sms_fail_rate=0.0)


@pytest.fixture
def notification_service(event_bus, data_store, channels):
    """Started notification service; stopped after the test."""
    service = NotificationService(event_bus=event_bus, data_store=data_store, channels=channels)
    service.start()
    yield service
    service.stop()


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def promotions(event_bus, data_store) -> PromotionsService:
    return PromotionsService(event_bus=event_bus, data_store=data_store)


@pytest.fixture
def catalog(event_bus, data_store, promotions) -> CatalogService:
    return CatalogService(event_bus=event_bus, data_store=data_store, promotions=promotions)


@pytest.fixture
def carts(data_store) -> CartService:
    return CartService(data_store=data_store)


@pytest.fixture
def shipping(data_store, settings) -> ShippingService:
    return ShippingService(data_store=data_store, settings=settings)


@pytest.fixture
def pickup(data_store) -> PickupService:
    return PickupService(data_store=data_store)


@pytest.fixture
def ordering(event_bus, data_store) -> OrderingService:
    return OrderingService(event_bus=event_bus, data_store=data_store)


@pytest.fixture
def templates(data_store) -> EmailTemplateService:
    return EmailTemplateService(data_store=data_store)


@pytest.fixture
def alerts(data_store) -> BackInStockService:
    return BackInStockService(data_store=data_store)


@pytest.fixture
def reports(data_store) -> ReportsService:
    return ReportsService(data_store=data_store)


# =============================================================================
# Customer Fixtures
# =============================================================================

@pytest.fixture
def alice_customer_id() -> str:
    """Alice: email + SMS for order updates, opted in to promotions, has a cart."""
    return "cust-001"


@pytest.fixture
def bob_customer_id() -> str:
    """Bob: wants SMS but never opted in; cart holds an out-of-stock plant."""
    return "cust-002"


@pytest.fixture
def carol_customer_id() -> str:
    """Carol: no stored preferences, VIP coupon holder, cart of seed packets."""
    return "cust-003"


@pytest.fixture
def david_customer_id() -> str:
    """David: tax-exempt reseller, opted out of order emails."""
    return "cust-004"
