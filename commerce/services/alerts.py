"""
Back-in-stock alerts.

Shoppers leave their email on an out-of-stock product page. When stock comes
back, pending alerts for the product are sent and marked notified (the
notification service does the sending when it sees the StockChanged event).
"""

import logging
import re
from collections import Counter
from typing import Optional

from storefront.data_store import DataStore, get_data_store, new_id
from storefront.errors import NotFoundError, ValidationError
from storefront.models import AlertStatus, BackInStockAlert, utcnow

logger = logging.getLogger("alerts_service")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class BackInStockService:
    def __init__(self, data_store: Optional[DataStore] = None):
        self.data_store = data_store or get_data_store()

    def subscribe(self, product_id: str, email: str, customer_id: Optional[str] = None) -> BackInStockAlert:
        """
        Register interest in a product.

        One alert exists per product and email. Subscribing again returns the
        pending alert unchanged, or reopens a notified/cancelled one.
        """
        if not self.data_store.get_product(product_id):
            raise NotFoundError("Product", product_id)

        email = normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            raise ValidationError({"email": "Please enter a valid email address"})

        for alert in self.data_store.get_alerts_for_product(product_id):
            if alert.email != email:
                continue
            if alert.status == AlertStatus.PENDING:
                return alert
            alert.status = AlertStatus.PENDING.value
            alert.notified_at = None
            alert.created_at = utcnow()
            if customer_id:
                alert.customer_id = customer_id
            self.data_store.save("back_in_stock_alerts", alert)
            logger.info(f"Reopened back-in-stock alert {alert.id} for {email}")
            return alert

        alert = BackInStockAlert(
            id=new_id("alert"),
            product_id=product_id,
            email=email,
            customer_id=customer_id,
        )
        self.data_store.save("back_in_stock_alerts", alert)
        logger.info(f"New back-in-stock alert for {product_id}: {email}")
        return alert

    def cancel(self, alert_id: str) -> BackInStockAlert:
        alert = self.data_store.get("back_in_stock_alerts", alert_id)
        if not alert:
            raise NotFoundError("Back-in-stock alert", alert_id)
        alert.status = AlertStatus.CANCELLED.value
        self.data_store.save("back_in_stock_alerts", alert)
        return alert

    def list_alerts(self, product_id: Optional[str] = None, status: Optional[str] = None) -> list[BackInStockAlert]:
        alerts = (
            self.data_store.get_alerts_for_product(product_id)
            if product_id
            else self.data_store.all("back_in_stock_alerts")
        )
        if status:
            alerts = [a for a in alerts if a.status == status]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    def pending_alerts(self, product_id: str) -> list[BackInStockAlert]:
        return self.list_alerts(product_id, AlertStatus.PENDING.value)

    def pending_counts(self) -> dict[str, int]:
        """Number of pending alerts per product id."""
        counts = Counter(
            a.product_id
            for a in self.data_store.all("back_in_stock_alerts")
            if a.status == AlertStatus.PENDING
        )
        return dict(counts)

    def mark_notified(self, alert: BackInStockAlert) -> BackInStockAlert:
        alert.status = AlertStatus.NOTIFIED.value
        alert.notified_at = utcnow()
        self.data_store.save("back_in_stock_alerts", alert)
        return alert

    def notify_back_in_stock_alerts(self, product_id: str) -> int:
        """Mark every pending alert for a product notified; returns how many."""
        pending = self.pending_alerts(product_id)
        for alert in pending:
            self.mark_notified(alert)
        if pending:
            logger.info(f"Marked {len(pending)} back-in-stock alerts notified for {product_id}")
        return len(pending)
