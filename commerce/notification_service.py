"""
Customer notifications driven by domain events.

The notification service subscribes to the event bus and decides who gets
told what. Ordering and catalog code only publish events; all "when do we
email the customer" logic lives here.

Event -> message:
- OrderPlaced                  -> order_confirmation
- OrderStatusChanged, shipped  -> order_shipped
- OrderStatusChanged, completed (shipped orders only) -> order_delivered
- StockChanged, out of stock -> in stock -> back_in_stock, to every pending alert
- PromotionActivated           -> promotion_announcement, to opted-in customers

Design decisions:
- Email content comes from the managed templates; SMS uses short fixed texts
- Registered customers are contacted per their notification preferences;
  guests and alert subscribers without an account get email only
- SMS is only sent to customers with a phone number who opted in to SMS
- A missing or disabled template skips that message and is logged
"""

import logging
from typing import Any, Optional

from commerce.event_bus import Event, EventBus, get_event_bus
from commerce.events import EventTypes
from commerce.services.alerts import BackInStockService
from commerce.services.email_templates import EmailTemplateService
from storefront.channels import NotificationChannels, SendResult
from storefront.config import get_settings
from storefront.data_store import DataStore, get_data_store
from storefront.errors import NotFoundError
from storefront.models import Customer, NotificationPreference, Order, OrderStatus
from storefront.templates import (
    TemplateKey,
    format_currency,
    format_item_list,
    get_notification_kind,
    render_sms,
)

logger = logging.getLogger("notification_service")


class NotificationService:
    """
    Event-driven notification sender.

    Example:
        service = NotificationService()
        service.start()
        # from now on, placing an order emails the customer a confirmation
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        data_store: Optional[DataStore] = None,
        channels: Optional[NotificationChannels] = None,
    ):
        self.event_bus = event_bus or get_event_bus()
        self.data_store = data_store or get_data_store()
        self.channels = channels or NotificationChannels()
        self.templates = EmailTemplateService(self.data_store)
        self.alerts = BackInStockService(self.data_store)
        self._started = False

    def _handlers(self) -> dict[str, Any]:
        return {
            EventTypes.ORDER_PLACED: self._handle_order_placed,
            EventTypes.ORDER_STATUS_CHANGED: self._handle_order_status_changed,
            EventTypes.STOCK_CHANGED: self._handle_stock_changed,
            EventTypes.PROMOTION_ACTIVATED: self._handle_promotion_activated,
        }

    def start(self) -> None:
        if self._started:
            logger.warning("NotificationService already started")
            return
        for event_type, handler in self._handlers().items():
            self.event_bus.subscribe(event_type, handler)
        self._started = True
        logger.info("NotificationService started - subscribed to events")

    def stop(self) -> None:
        if not self._started:
            return
        for event_type, handler in self._handlers().items():
            self.event_bus.unsubscribe(event_type, handler)
        self._started = False
        logger.info("NotificationService stopped")

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _handle_order_placed(self, event: Event) -> None:
        order = self.data_store.get_order(event.payload["order_id"])
        if not order:
            logger.error(f"Order not found: {event.payload['order_id']}")
            return
        self._notify_order(order, TemplateKey.ORDER_CONFIRMATION)

    def _handle_order_status_changed(self, event: Event) -> None:
        payload = event.payload
        new_status = payload["new_status"]
        logger.info(f"Handling OrderStatusChanged: order={payload['order_id']}, status={new_status}")

        if new_status not in (OrderStatus.SHIPPED, OrderStatus.COMPLETED):
            return

        order = self.data_store.get_order(payload["order_id"])
        if not order:
            logger.error(f"Order not found: {payload['order_id']}")
            return

        if new_status == OrderStatus.SHIPPED:
            self._notify_order(order, TemplateKey.ORDER_SHIPPED)
        elif not order.is_pickup:
            self._notify_order(order, TemplateKey.ORDER_DELIVERED)

    def _handle_stock_changed(self, event: Event) -> None:
        """Send back-in-stock emails when a product goes from none to some."""
        payload = event.payload
        if not payload.get("back_in_stock"):
            return

        product_id = payload["product_id"]
        pending = self.alerts.pending_alerts(product_id)
        if not pending:
            return

        product = self.data_store.get_product(product_id)
        variables = {
            **self._store_variables(),
            "product_name": payload["product_name"],
            "product_price": format_currency(product.price) if product else "",
            "product_slug": product.slug if product else "",
        }

        sent = 0
        for alert in pending:
            customer = self.data_store.get_customer(alert.customer_id) if alert.customer_id else None
            variables["customer_name"] = customer.first_name if customer else "there"
            results = self._deliver(TemplateKey.BACK_IN_STOCK, alert.email, customer, variables)
            if any(r.success for r in results):
                sent += 1
            self.alerts.mark_notified(alert)

        logger.info(f"Back-in-stock for {payload['product_name']}: {sent}/{len(pending)} alerts sent")

    def _handle_promotion_activated(self, event: Event) -> None:
        payload = event.payload
        variables = {
            **self._store_variables(),
            "promotion_name": payload["promotion_name"],
            "promotion_description": payload.get("description") or "",
            "coupon_code": payload.get("coupon_code") or "",
            "ends_at": payload.get("ends_at") or "",
        }

        recipients = 0
        for customer in self.data_store.get_customers():
            prefs = self._preferences_for(customer)
            if not prefs.get_channels_for_type("promotions"):
                continue
            variables["customer_name"] = customer.first_name
            self._deliver(TemplateKey.PROMOTION_ANNOUNCEMENT, customer.email, customer, variables)
            recipients += 1

        logger.info(f"Promotion '{payload['promotion_name']}' announced to {recipients} customers")

    # =========================================================================
    # Sending
    # =========================================================================

    def _store_variables(self) -> dict[str, Any]:
        settings = get_settings()
        return {"store_name": settings.STORE_NAME, "store_email": settings.FROM_EMAIL}

    def _preferences_for(self, customer: Customer) -> NotificationPreference:
        prefs = self.data_store.get_notification_preferences(customer.id)
        return prefs or NotificationPreference(customer_id=customer.id)

    def order_variables(self, order: Order, customer: Optional[Customer]) -> dict[str, Any]:
        items = [
            {"name": item.name, "quantity": item.quantity, "line_total": item.line_total}
            for item in order.items
        ]
        variables = {
            **self._store_variables(),
            "customer_name": customer.first_name if customer else "there",
            "order_number": order.order_number,
            "order_date": order.created_at.strftime("%B %d, %Y"),
            "order_total": format_currency(order.total),
            "subtotal": format_currency(order.subtotal),
            "discount_amount": format_currency(order.discount_amount),
            "shipping_cost": format_currency(order.shipping_cost),
            "tax_amount": format_currency(order.tax_amount),
            "item_list": format_item_list(items),
            "item_list_html": format_item_list(items, html=True),
            "tracking_number": order.tracking_number or "",
            "carrier": (order.carrier or "").upper(),
            "shipping_service": order.shipping_service or "",
            "fulfillment": "Local pickup" if order.is_pickup else "Shipping",
        }
        if order.is_pickup and order.pickup_date:
            location = self.data_store.get_pickup_location(order.pickup_location_id)
            variables["pickup_location"] = location.name if location else ""
            variables["pickup_date"] = order.pickup_date.strftime("%A, %B %d")
            variables["pickup_time"] = (
                f"{order.pickup_time_start:%I:%M %p} - {order.pickup_time_end:%I:%M %p}"
                if order.pickup_time_start and order.pickup_time_end
                else ""
            )
        return variables

    def _notify_order(self, order: Order, template_key: TemplateKey) -> list[SendResult]:
        customer = self.data_store.get_customer(order.customer_id) if order.customer_id else None
        email = customer.email if customer else order.guest_email
        if not email:
            logger.error(f"No contact email for order {order.id}")
            return []
        return self._deliver(template_key, email, customer, self.order_variables(order, customer))

    def _deliver(
        self,
        template_key: TemplateKey,
        email: str,
        customer: Optional[Customer],
        variables: dict[str, Any],
    ) -> list[SendResult]:
        """
        Send one message over every channel the recipient allows.

        Customers without stored preferences get the defaults (email for
        order updates and stock alerts). Recipients without an account
        always get email.
        """
        key = template_key.value
        channels = ["email"]
        if customer:
            channels = self._preferences_for(customer).get_channels_for_type(get_notification_kind(key))
            if "sms" in channels and not (customer.phone and customer.sms_opt_in):
                channels.remove("sms")

        if not channels:
            logger.info(f"Recipient {email} has opted out of {get_notification_kind(key)}")
            return []

        results = []
        for channel in channels:
            if channel == "email":
                try:
                    rendered = self.templates.render_template(key, variables)
                except NotFoundError:
                    logger.warning(f"Email template '{key}' missing or disabled, not sending to {email}")
                    continue
                results.append(
                    self.channels.send_email(email, rendered.subject, rendered.text or rendered.html, rendered.html)
                )
            elif channel == "sms":
                body = render_sms(key, variables)
                if body:
                    results.append(self.channels.send_sms(customer.phone, body))
            logger.info(f"Sent {key} via {channel} to {email}")
        return results
