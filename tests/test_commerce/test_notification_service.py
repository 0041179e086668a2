"""
Tests for event-driven customer notifications.

These tests drive the real services, which publish events on the bus;
the started notification service reacts and sends through mock channels.
"""

from datetime import date

from commerce.services.catalog import CatalogService
from commerce.services.ordering import OrderingService
from commerce.services.promotions import PromotionsService
from storefront.channels import NotificationChannels
from storefront.models import CheckoutRequest


class TestLifecycle:
    def test_start_subscribes_once(self, notification_service, event_bus):
        notification_service.start()
        assert event_bus.get_subscriber_count("OrderPlaced") == 1

    def test_stopped_service_sends_nothing(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels, alice_customer_id
    ):
        notification_service.stop()
        ordering.place_order(CheckoutRequest(customer_id=alice_customer_id, shipping_state="GA"))
        assert channels.get_total_sent_count() == 0


class TestOrderConfirmation:
    def test_email_and_sms(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels, alice_customer_id
    ):
        ordering.place_order(CheckoutRequest(customer_id=alice_customer_id, shipping_state="GA"))

        emails = channels.email.find_messages_to("alice.johnson@example.com")
        assert len(emails) == 1
        assert emails[0].subject == "Order #1012 confirmed"
        assert "Hi Alice," in emails[0].body
        assert "Boston Fern (x2) - $49.98" in emails[0].body
        assert "<h1>Thanks, Alice!</h1>" in emails[0].html

        texts = channels.sms.find_messages_to("+1-555-0101")
        assert [t.body for t in texts] == ["Green Acres Nursery: order #1012 confirmed. Total $96.27."]

    def test_sms_needs_opt_in(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels, bob_customer_id
    ):
        """Bob asked for SMS order updates but never opted in to texts."""
        ordering.place_order(CheckoutRequest(
            customer_id=bob_customer_id, shipping_state="GA",
            items=[{"product_id": "prod-lavender", "quantity": 1}],
        ))
        assert channels.email.get_sent_count() == 1
        assert channels.sms.get_sent_count() == 0

    def test_opted_out_customer(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels, david_customer_id
    ):
        ordering.place_order(CheckoutRequest(
            customer_id=david_customer_id, shipping_state="GA",
            items=[{"product_id": "prod-lavender", "quantity": 1}],
        ))
        assert channels.get_total_sent_count() == 0

    def test_default_preferences(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels, carol_customer_id
    ):
        ordering.place_order(CheckoutRequest(customer_id=carol_customer_id, shipping_state="GA"))
        assert len(channels.email.find_messages_to("carol.davis@example.com")) == 1

    def test_guest_pickup_order(self, notification_service, ordering: OrderingService, channels: NotificationChannels):
        ordering.place_order(CheckoutRequest(
            guest_email="weekend.planter@example.com",
            items=[{"product_id": "prod-maple", "quantity": 1}],
            is_pickup=True,
            pickup_location_id="loc-farm",
            pickup_schedule_id="sched-farm-wed",
            pickup_date=date(2026, 11, 18),
        ))

        email = channels.email.find_messages_to("weekend.planter@example.com")[0]
        assert "Hi there," in email.body
        assert "Fulfillment: Local pickup" in email.body

    def test_missing_template_skips_message(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels,
        data_store, alice_customer_id,
    ):
        data_store.delete("email_templates", "tpl-order-confirmation")
        order = ordering.place_order(CheckoutRequest(customer_id=alice_customer_id, shipping_state="GA"))

        assert data_store.get_order(order.id) is not None
        assert channels.email.get_sent_count() == 0
        assert channels.sms.get_sent_count() == 1


class TestStatusNotifications:
    def test_shipped(self, notification_service, ordering: OrderingService, channels: NotificationChannels):
        ordering.update_order_status("ord-1005", "shipped", tracking_number="1Z999AA10100000005", carrier="ups")

        email = channels.email.find_messages_to("carol.davis@example.com")[0]
        assert email.subject == "Your order #1005 has shipped"
        assert "Tracking number: 1Z999AA10100000005" in email.body
        assert "via UPS" in email.body

    def test_delivered(self, notification_service, ordering: OrderingService, channels: NotificationChannels):
        ordering.update_order_status("ord-1003", "completed")

        emails = channels.email.find_messages_to("bob.smith@example.com")
        assert [e.subject for e in emails] == ["Your order #1003 was delivered"]

    def test_completed_pickup_order_gets_no_delivery_email(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels
    ):
        ordering.update_order_status("ord-1004", "completed")
        assert channels.get_total_sent_count() == 0

    def test_other_statuses_are_silent(
        self, notification_service, ordering: OrderingService, channels: NotificationChannels
    ):
        ordering.update_order_status("ord-1009", "on_hold")
        ordering.update_order_status("ord-1009", "cancelled")
        assert channels.get_total_sent_count() == 0


class TestBackInStock:
    def test_restock_emails_pending_subscribers(
        self, notification_service, catalog: CatalogService, channels: NotificationChannels, data_store
    ):
        catalog.adjust_stock("prod-snake", 10, reason="restock")

        recipients = sorted(m.recipient for m in channels.email.sent_messages)
        assert recipients == ["carol.davis@example.com", "guest.gardener@example.com"]
        assert channels.email.sent_messages[0].subject == "Snake Plant is back in stock"

        statuses = {a.id: a.status for a in data_store.get_alerts_for_product("prod-snake")}
        assert statuses == {"alert-0001": "notified", "alert-0002": "notified", "alert-0003": "notified"}

    def test_top_up_does_not_notify(
        self, notification_service, catalog: CatalogService, channels: NotificationChannels
    ):
        catalog.adjust_stock("prod-monstera", 10, reason="restock")
        assert channels.get_total_sent_count() == 0

    def test_alerts_sent_once(self, notification_service, catalog: CatalogService, channels: NotificationChannels):
        catalog.adjust_stock("prod-snake", 10, reason="restock")
        catalog.set_stock("prod-snake", 0, reason="count")
        catalog.set_stock("prod-snake", 4, reason="restock")
        assert channels.email.get_sent_count() == 2


class TestPromotionAnnouncement:
    def test_opted_in_customers_only(
        self, notification_service, promotions: PromotionsService, channels: NotificationChannels
    ):
        promotions.activate_promotion("promo-clearance")

        recipients = sorted(m.recipient for m in channels.email.sent_messages)
        assert recipients == ["alice.johnson@example.com", "david.lee@example.com"]
        assert channels.email.sent_messages[0].subject == "Clearance at Green Acres Nursery"
        assert channels.sms.get_sent_count() == 0
