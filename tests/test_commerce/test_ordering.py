"""
Tests for checkout and order status changes.

Shipping eligibility is evaluated for today's date, so these tests ship to
Georgia, which has no seasonal rules.
"""

from datetime import date

import pytest

from commerce.events import EventTypes
from commerce.services.ordering import OrderingService
from storefront.errors import (
    InsufficientStockError,
    NotFoundError,
    ShippingNotAllowedError,
    SlotUnavailableError,
    ValidationError,
)
from storefront.models import CheckoutRequest


def pickup_request(**overrides) -> CheckoutRequest:
    data = {
        "guest_email": " Weekend.Planter@Example.com ",
        "items": [{"product_id": "prod-maple", "quantity": 1}],
        "is_pickup": True,
        "pickup_location_id": "loc-farm",
        "pickup_schedule_id": "sched-farm-wed",
        "pickup_date": date(2026, 11, 18),
    }
    data.update(overrides)
    return CheckoutRequest(**data)


class TestPlaceOrder:
    """Successful checkouts."""

    def test_saved_cart_with_free_shipping(self, ordering: OrderingService, data_store, event_bus, alice_customer_id):
        order = ordering.place_order(CheckoutRequest(customer_id=alice_customer_id, shipping_state="ga"))

        assert order.order_number == "1012"
        assert order.status == "processing"
        assert order.subtotal == 89.97
        assert order.promotion_id == "promo-freeship"
        assert order.shipping_cost == 0.0
        assert order.shipping_service == "ups_ground"
        assert order.shipping_state == "GA"
        assert order.tax_amount == 6.3
        assert order.total == 96.27

        assert data_store.get_order(order.id) is not None
        assert data_store.get_product("prod-fern").stock_quantity == 28
        assert data_store.get_product("prod-monstera").stock_quantity == 4
        assert data_store.get_cart(alice_customer_id).items == []
        assert data_store.get_promotion("promo-freeship").times_used == 2

        placed = event_bus.get_event_log(EventTypes.ORDER_PLACED)
        assert len(placed) == 1
        assert placed[0].payload["order_id"] == order.id

    def test_coupon_replaces_automatic_promotion(self, ordering: OrderingService, alice_customer_id):
        order = ordering.place_order(CheckoutRequest(
            customer_id=alice_customer_id, shipping_state="GA", coupon_code="spring20",
        ))

        assert order.discount_amount == 17.99
        assert order.promotion_code == "SPRING20"
        assert order.discount_description == "20% off"
        assert order.shipping_cost == 12.95
        assert order.tax_amount == 5.04
        assert order.total == 89.97

    def test_tax_exempt_customer_with_explicit_items(self, ordering: OrderingService, data_store, david_customer_id):
        order = ordering.place_order(CheckoutRequest(
            customer_id=david_customer_id,
            shipping_state="GA",
            items=[{"product_id": "prod-lavender", "quantity": 1}],
            attribution_source="newsletter",
        ))

        assert order.tax_amount == 0.0
        assert order.total == 28.95
        assert order.attribution_source == "newsletter"
        assert order.promotion_id is None

    def test_guest_pickup(self, ordering: OrderingService, data_store):
        order = ordering.place_order(pickup_request())

        assert order.customer_id is None
        assert order.guest_email == "weekend.planter@example.com"
        assert order.is_pickup is True
        assert order.shipping_cost == 0.0
        assert order.shipping_state is None
        assert order.tax_amount == 6.23
        assert order.total == 95.23
        assert order.pickup_date == date(2026, 11, 18)

        reservation = data_store.get_reservation_for_order(order.id)
        assert reservation.schedule_id == "sched-farm-wed"
        assert data_store.get_product("prod-maple").stock_quantity == 7

    def test_repeated_product_lines_become_one_item(self, ordering: OrderingService, data_store):
        order = ordering.place_order(CheckoutRequest(
            guest_email="a@example.com",
            shipping_state="GA",
            items=[
                {"product_id": "prod-monstera", "quantity": 2},
                {"product_id": "prod-monstera", "quantity": 2},
            ],
        ))

        assert [(item.product_id, item.quantity) for item in order.items] == [("prod-monstera", 4)]
        assert data_store.get_product("prod-monstera").stock_quantity == 1

    def test_untracked_stock_is_not_decremented(self, ordering: OrderingService, data_store, david_customer_id):
        ordering.place_order(CheckoutRequest(
            customer_id=david_customer_id, shipping_state="GA",
            items=[{"product_id": "prod-trowel", "quantity": 3}],
        ))
        assert data_store.get_product("prod-trowel").stock_quantity == 0


class TestCheckoutRejections:
    """A rejected checkout writes nothing."""

    def test_insufficient_stock(self, ordering: OrderingService, data_store, bob_customer_id):
        with pytest.raises(InsufficientStockError) as exc_info:
            ordering.place_order(CheckoutRequest(customer_id=bob_customer_id, shipping_state="GA"))

        assert exc_info.value.shortages == {"prod-snake": 0}
        assert data_store.next_order_number() == "1012"

    def test_repeated_product_lines_are_checked_together(self, ordering: OrderingService, data_store, event_bus):
        with pytest.raises(InsufficientStockError) as exc_info:
            ordering.place_order(CheckoutRequest(
                guest_email="a@example.com",
                shipping_state="GA",
                items=[
                    {"product_id": "prod-monstera", "quantity": 3},
                    {"product_id": "prod-monstera", "quantity": 3},
                ],
            ))

        assert exc_info.value.shortages == {"prod-monstera": 5}
        assert data_store.next_order_number() == "1012"
        assert data_store.get_product("prod-monstera").stock_quantity == 5
        assert event_bus.get_event_log() == []

    def test_invalid_coupon(self, ordering: OrderingService, data_store, alice_customer_id):
        with pytest.raises(ValidationError) as exc_info:
            ordering.place_order(CheckoutRequest(
                customer_id=alice_customer_id, shipping_state="GA", coupon_code="SUMMER24",
            ))

        assert exc_info.value.errors == {"coupon_code": "Invalid or expired coupon code"}
        assert data_store.get_product("prod-fern").stock_quantity == 30
        assert data_store.get_cart(alice_customer_id).item_count == 3

    def test_blocked_state(self, ordering: OrderingService, alice_customer_id):
        with pytest.raises(ShippingNotAllowedError) as exc_info:
            ordering.place_order(CheckoutRequest(customer_id=alice_customer_id, shipping_state="HI"))
        assert exc_info.value.state_code == "HI"

    def test_missing_shipping_state(self, ordering: OrderingService, alice_customer_id):
        with pytest.raises(ValidationError) as exc_info:
            ordering.place_order(CheckoutRequest(customer_id=alice_customer_id))
        assert "shipping_state" in exc_info.value.errors

    def test_unavailable_service(self, ordering: OrderingService, alice_customer_id):
        with pytest.raises(ValidationError) as exc_info:
            ordering.place_order(CheckoutRequest(
                customer_id=alice_customer_id, shipping_state="GA", shipping_service="ups_2nd_day_air",
            ))
        assert "shipping_service" in exc_info.value.errors

    def test_empty_cart(self, ordering: OrderingService, david_customer_id):
        with pytest.raises(ValidationError) as exc_info:
            ordering.place_order(CheckoutRequest(customer_id=david_customer_id, shipping_state="GA"))
        assert exc_info.value.errors == {"cart": "Your cart is empty"}

    def test_unknown_customer(self, ordering: OrderingService):
        with pytest.raises(NotFoundError):
            ordering.place_order(CheckoutRequest(customer_id="cust-missing", shipping_state="GA"))

    def test_inactive_product(self, ordering: OrderingService):
        with pytest.raises(ValidationError) as exc_info:
            ordering.place_order(CheckoutRequest(
                guest_email="a@example.com", shipping_state="GA",
                items=[{"product_id": "prod-cactus", "quantity": 1}],
            ))
        assert exc_info.value.errors == {"items": "Bunny Ear Cactus is no longer available"}

    def test_pickup_only_product_cannot_ship(self, ordering: OrderingService):
        with pytest.raises(ValidationError) as exc_info:
            ordering.place_order(pickup_request(is_pickup=False, shipping_state="GA"))
        assert exc_info.value.errors == {"items": "Available for local pickup only: Japanese Maple"}

    def test_pickup_details_required(self, ordering: OrderingService):
        with pytest.raises(ValidationError) as exc_info:
            ordering.place_order(pickup_request(
                pickup_location_id=None, pickup_schedule_id=None, pickup_date=None,
            ))
        assert set(exc_info.value.errors) == {"pickup_location_id", "pickup_schedule_id", "pickup_date"}

    def test_full_pickup_window(self, ordering: OrderingService, data_store):
        with pytest.raises(SlotUnavailableError):
            ordering.place_order(pickup_request(
                pickup_schedule_id="sched-farm-sat-am", pickup_date=date(2026, 11, 14),
            ))
        assert data_store.next_order_number() == "1012"
        assert data_store.get_product("prod-maple").stock_quantity == 8


class TestOrderStatus:
    def test_list_orders(self, ordering: OrderingService, alice_customer_id):
        orders = ordering.list_orders(customer_id=alice_customer_id)
        assert [o.id for o in orders][0] == "ord-1008"
        assert {o.id for o in ordering.list_orders(status="on_hold")} == {"ord-1005"}

    def test_ship(self, ordering: OrderingService, event_bus):
        order = ordering.update_order_status("ord-1005", "shipped", tracking_number="1Z999AA10100000005")

        assert order.status == "shipped"
        assert order.shipped_at is not None
        assert order.tracking_number == "1Z999AA10100000005"

        event = event_bus.get_event_log(EventTypes.ORDER_STATUS_CHANGED)[0]
        assert event.payload["previous_status"] == "on_hold"
        assert event.payload["new_status"] == "shipped"

    def test_complete_stamps_delivery(self, ordering: OrderingService):
        order = ordering.update_order_status("ord-1003", "completed")
        assert order.delivered_at is not None

    def test_invalid_transition(self, ordering: OrderingService):
        with pytest.raises(ValidationError) as exc_info:
            ordering.update_order_status("ord-1006", "processing")
        assert exc_info.value.errors == {"status": "Cannot change order from Cancelled to Processing"}

    def test_unknown_status(self, ordering: OrderingService):
        with pytest.raises(ValidationError) as exc_info:
            ordering.update_order_status("ord-1005", "lost")
        assert exc_info.value.errors == {"status": "Unknown order status: lost"}

    def test_same_status_is_a_no_op(self, ordering: OrderingService, event_bus):
        ordering.update_order_status("ord-1005", "on_hold")
        assert event_bus.get_event_log(EventTypes.ORDER_STATUS_CHANGED) == []

    def test_cancel_restocks_and_frees_pickup(self, ordering: OrderingService, data_store):
        ordering.update_order_status("ord-1008", "cancelled")

        assert data_store.get_product("prod-maple").stock_quantity == 9
        assert data_store.get("pickup_reservations", "resv-1008").status == "cancelled"

    def test_missing_order(self, ordering: OrderingService):
        with pytest.raises(NotFoundError):
            ordering.get_order("ord-missing")
