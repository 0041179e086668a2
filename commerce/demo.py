"""
Demonstration scripts for the storefront services.

These functions run the main flows against the bundled fixtures so you can
watch events being published and customer emails being sent. Nothing is
written back to the fixture files.
"""

import logging
from datetime import date, timedelta

from commerce.event_bus import reset_event_bus
from commerce.notification_service import NotificationService
from commerce.services.catalog import CatalogService
from commerce.services.ordering import OrderingService
from commerce.services.pickup import PickupService
from commerce.services.promotions import PromotionsService
from storefront.channels import NotificationChannels
from storefront.data_store import DataStore
from storefront.models import CheckoutRequest, sunday_based_weekday

# Configure logging to see what's happening
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)


def _setup():
    event_bus = reset_event_bus()
    data_store = DataStore()
    channels = NotificationChannels()
    notification_service = NotificationService(
        event_bus=event_bus,
        data_store=data_store,
        channels=channels,
    )
    notification_service.start()
    return event_bus, data_store, channels, notification_service


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(f"DEMO: {title}")
    print("=" * 70 + "\n")


def _action(text: str) -> None:
    print("-" * 70)
    print(f"ACTION: {text}")
    print("-" * 70 + "\n")


def _show_sent(channels: NotificationChannels) -> None:
    print("\nNotifications sent:")
    for msg in channels.get_all_sent_messages():
        print(f"  {msg}")


def run_checkout_demo():
    """
    Alice checks out her saved cart with a coupon, then the order ships.

    This shows:
    1. Coupon, shipping and tax applied at checkout
    2. OrderPlaced -> confirmation email and SMS
    3. OrderStatusChanged to shipped -> shipping email with tracking
    """
    _banner("Checkout and Shipping")
    event_bus, data_store, channels, notification_service = _setup()
    ordering = OrderingService(event_bus=event_bus, data_store=data_store)

    _action("Alice checks out her cart to GA with coupon SPRING20")
    order = ordering.place_order(CheckoutRequest(
        customer_id="cust-001",
        shipping_state="GA",
        coupon_code="SPRING20",
        attribution_source="newsletter",
    ))
    print(
        f"\nOrder #{order.order_number}: subtotal ${order.subtotal:.2f}, "
        f"discount ${order.discount_amount:.2f}, shipping ${order.shipping_cost:.2f}, "
        f"tax ${order.tax_amount:.2f}, total ${order.total:.2f}\n"
    )

    _action(f"Shipping order #{order.order_number}")
    ordering.update_order_status(order.id, "shipped", tracking_number="1Z999AA10123456784")

    _show_sent(channels)
    notification_service.stop()


def run_pickup_demo():
    """A guest books a Wednesday pickup window at the farm store."""
    _banner("Local Pickup Checkout")
    event_bus, data_store, channels, notification_service = _setup()
    ordering = OrderingService(event_bus=event_bus, data_store=data_store)
    pickup = PickupService(data_store=data_store)

    today = date.today()
    # next Wednesday (day 3, Sunday-based)
    wednesday = today + timedelta(days=(3 - sunday_based_weekday(today)) % 7 or 7)
    slots = pickup.get_available_pickup_slots("loc-farm", wednesday, wednesday)
    print("Available windows:")
    for slot in slots:
        remaining = "unlimited" if slot.slots_available is None else slot.slots_available
        print(f"  {slot.slot_date} {slot.start_time:%H:%M}-{slot.end_time:%H:%M} ({remaining} left)")
    print()

    _action(f"Guest orders a Japanese Maple for pickup on {wednesday}")
    order = ordering.place_order(CheckoutRequest(
        guest_email="new.gardener@example.com",
        items=[{"product_id": "prod-maple", "quantity": 1}],
        is_pickup=True,
        pickup_location_id="loc-farm",
        pickup_schedule_id=slots[0].schedule_id,
        pickup_date=wednesday,
    ))
    print(f"\nOrder #{order.order_number} total ${order.total:.2f} (tax ${order.tax_amount:.2f})")

    _show_sent(channels)
    notification_service.stop()


def run_restock_demo():
    """
    The Snake Plant comes back in stock.

    CatalogService only publishes StockChanged; the notification service
    picks out the pending back-in-stock alerts and emails them.
    """
    _banner("Back in Stock")
    event_bus, data_store, channels, notification_service = _setup()
    catalog = CatalogService(event_bus=event_bus, data_store=data_store)

    _action("Receiving 12 Snake Plants (currently out of stock)")
    catalog.adjust_stock("prod-snake", 12, reason="restock")

    _show_sent(channels)
    notification_service.stop()


def run_promotion_demo():
    """Switching on the Clearance promotion announces it to opted-in customers."""
    _banner("Promotion Announcement")
    event_bus, data_store, channels, notification_service = _setup()
    promotions = PromotionsService(event_bus=event_bus, data_store=data_store)

    _action("Activating the Clearance promotion (CLEAR50)")
    promotions.activate_promotion("promo-clearance")

    print("\nActive banners:")
    for banner in promotions.get_active_banners():
        print(f"  [{banner.priority}] {banner.banner_text}")

    _show_sent(channels)
    notification_service.stop()


SCENARIOS = {
    "checkout": run_checkout_demo,
    "pickup": run_pickup_demo,
    "restock": run_restock_demo,
    "promotion": run_promotion_demo,
}


def run_all():
    for scenario in SCENARIOS.values():
        scenario()


if __name__ == "__main__":
    run_all()
