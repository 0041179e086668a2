"""
JSON-backed data store for the storefront.

This module provides the data access layer every service goes through. Each
collection is loaded lazily from a JSON fixture file in the data directory
and kept in memory; writes update the in-memory state only.

Design decisions:
- One fixture file per collection (products.json, promotions.json, ...)
- Collections are keyed by id, except carts and notification preferences
  which are keyed by customer_id
- Missing fixture files behave as empty collections
- Lookups return None for unknown keys; services decide whether that is an error
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from storefront.config import get_settings
from storefront.models import (
    BackInStockAlert,
    Cart,
    CarrierService,
    Category,
    Customer,
    EmailTemplate,
    EmailTemplateVersion,
    NotificationPreference,
    Order,
    PickupLocation,
    PickupReservation,
    PickupSchedule,
    Product,
    Promotion,
    PromotionUsage,
    ShippingZone,
    ShippingZoneRule,
)

logger = logging.getLogger("data_store")

M = TypeVar("M", bound=BaseModel)


# collection name -> (model, key attribute)
COLLECTIONS: dict[str, tuple[type[BaseModel], str]] = {
    "customers": (Customer, "id"),
    "notification_preferences": (NotificationPreference, "customer_id"),
    "categories": (Category, "id"),
    "products": (Product, "id"),
    "carts": (Cart, "customer_id"),
    "orders": (Order, "id"),
    "promotions": (Promotion, "id"),
    "promotion_usage": (PromotionUsage, "id"),
    "shipping_zones": (ShippingZone, "id"),
    "shipping_zone_rules": (ShippingZoneRule, "id"),
    "shipping_services": (CarrierService, "id"),
    "pickup_locations": (PickupLocation, "id"),
    "pickup_schedules": (PickupSchedule, "id"),
    "pickup_reservations": (PickupReservation, "id"),
    "email_templates": (EmailTemplate, "id"),
    "email_template_versions": (EmailTemplateVersion, "id"),
    "back_in_stock_alerts": (BackInStockAlert, "id"),
}


def new_id(prefix: str) -> str:
    """Generate an id for a newly created row."""
    return f"{prefix}-{uuid4().hex[:10]}"


class DataStore:
    """
    Central data store that loads and manages JSON fixtures.

    In production these collections are tables in a hosted database; the
    store simulates that table surface so the services can be exercised
    end to end.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize the data store.

        Args:
            data_dir: Path to the directory containing JSON fixtures.
                      Defaults to the DATA_DIR setting, then ./data relative
                      to the project root.
        """
        if data_dir is None:
            data_dir = get_settings().DATA_DIR
        if data_dir is None:
            data_dir = Path(__file__).parent.parent / "data"

        self.data_dir = Path(data_dir)
        self._collections: dict[str, dict[str, BaseModel]] = {}

    # =========================================================================
    # Generic collection access
    # =========================================================================

    def _load_json(self, filename: str) -> list[dict]:
        filepath = self.data_dir / filename
        if not filepath.exists():
            return []
        with open(filepath, "r") as f:
            return json.load(f)

    def _collection(self, name: str) -> dict[str, Any]:
        """Lazy load a collection from its fixture file."""
        if name not in self._collections:
            model, key = COLLECTIONS[name]
            rows = self._load_json(f"{name}.json")
            self._collections[name] = {row[key]: model(**row) for row in rows}
            logger.debug(f"Loaded {len(rows)} rows into '{name}'")
        return self._collections[name]

    def get(self, name: str, key: str) -> Optional[Any]:
        return self._collection(name).get(key)

    def all(self, name: str) -> list[Any]:
        return list(self._collection(name).values())

    def find(self, name: str, predicate: Callable[[Any], bool]) -> list[Any]:
        return [row for row in self._collection(name).values() if predicate(row)]

    def save(self, name: str, obj: M) -> M:
        """Insert or replace a row."""
        _, key = COLLECTIONS[name]
        self._collection(name)[getattr(obj, key)] = obj
        return obj

    def delete(self, name: str, key: str) -> bool:
        return self._collection(name).pop(key, None) is not None

    def reload(self) -> None:
        """Force reload all data from JSON files."""
        self._collections.clear()

    # =========================================================================
    # Customers
    # =========================================================================

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.get("customers", customer_id)

    def get_customers(self) -> list[Customer]:
        return self.all("customers")

    def find_customer_by_email(self, email: str) -> Optional[Customer]:
        email = email.strip().lower()
        for customer in self.all("customers"):
            if customer.email.lower() == email:
                return customer
        return None

    def get_notification_preferences(self, customer_id: str) -> Optional[NotificationPreference]:
        return self.get("notification_preferences", customer_id)

    # =========================================================================
    # Catalog
    # =========================================================================

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.get("products", product_id)

    def get_products(self) -> list[Product]:
        return self.all("products")

    def save_product(self, product: Product) -> Product:
        return self.save("products", product)

    def get_category(self, category_id: str) -> Optional[Category]:
        return self.get("categories", category_id)

    def get_categories(self) -> list[Category]:
        return sorted(self.all("categories"), key=lambda c: (c.sort_order, c.name))

    # =========================================================================
    # Carts
    # =========================================================================

    def get_cart(self, customer_id: str) -> Optional[Cart]:
        return self.get("carts", customer_id)

    def save_cart(self, cart: Cart) -> Cart:
        return self.save("carts", cart)

    # =========================================================================
    # Orders
    # =========================================================================

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.get("orders", order_id)

    def get_orders(self) -> list[Order]:
        return self.all("orders")

    def get_orders_by_customer(self, customer_id: str) -> list[Order]:
        return self.find("orders", lambda o: o.customer_id == customer_id)

    def save_order(self, order: Order) -> Order:
        return self.save("orders", order)

    def next_order_number(self) -> str:
        numbers = [int(o.order_number) for o in self.get_orders() if o.order_number.isdigit()]
        return str(max(numbers, default=1000) + 1)

    # =========================================================================
    # Promotions
    # =========================================================================

    def get_promotion(self, promotion_id: str) -> Optional[Promotion]:
        return self.get("promotions", promotion_id)

    def get_promotions(self) -> list[Promotion]:
        return self.all("promotions")

    def find_promotion_by_code(self, code: str) -> Optional[Promotion]:
        """Case-insensitive, whitespace-trimmed coupon lookup."""
        code = code.strip().upper()
        for promotion in self.get_promotions():
            if promotion.coupon_code and promotion.coupon_code.upper() == code:
                return promotion
        return None

    def save_promotion(self, promotion: Promotion) -> Promotion:
        return self.save("promotions", promotion)

    def get_promotion_usage(self, promotion_id: str) -> list[PromotionUsage]:
        return self.find("promotion_usage", lambda u: u.promotion_id == promotion_id)

    # =========================================================================
    # Shipping
    # =========================================================================

    def get_zone_by_state(self, state_code: str) -> Optional[ShippingZone]:
        state_code = state_code.strip().upper()
        for zone in self.all("shipping_zones"):
            if zone.state_code == state_code:
                return zone
        return None

    def get_zones(self) -> list[ShippingZone]:
        return sorted(self.all("shipping_zones"), key=lambda z: z.state_code)

    def get_zone_rules(self) -> list[ShippingZoneRule]:
        return self.all("shipping_zone_rules")

    def get_shipping_services(self) -> list[CarrierService]:
        return sorted(self.all("shipping_services"), key=lambda s: (s.sort_order, s.name))

    # =========================================================================
    # Pickup
    # =========================================================================

    def get_pickup_location(self, location_id: str) -> Optional[PickupLocation]:
        return self.get("pickup_locations", location_id)

    def get_pickup_locations(self) -> list[PickupLocation]:
        return sorted(self.all("pickup_locations"), key=lambda l: (l.sort_order, l.name))

    def get_pickup_schedule(self, schedule_id: str) -> Optional[PickupSchedule]:
        return self.get("pickup_schedules", schedule_id)

    def get_pickup_schedules(self, location_id: Optional[str] = None) -> list[PickupSchedule]:
        if location_id is None:
            return self.all("pickup_schedules")
        return self.find("pickup_schedules", lambda s: s.location_id == location_id)

    def get_pickup_reservations(
        self,
        location_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[PickupReservation]:
        def matches(r: PickupReservation) -> bool:
            if location_id is not None and r.location_id != location_id:
                return False
            if start_date is not None and r.pickup_date < start_date:
                return False
            if end_date is not None and r.pickup_date > end_date:
                return False
            return True

        return self.find("pickup_reservations", matches)

    def get_reservation_for_order(self, order_id: str) -> Optional[PickupReservation]:
        matches = self.find("pickup_reservations", lambda r: r.order_id == order_id)
        return matches[0] if matches else None

    # =========================================================================
    # Email templates
    # =========================================================================

    def get_email_template_by_key(self, template_key: str) -> Optional[EmailTemplate]:
        for template in self.all("email_templates"):
            if template.template_key == template_key:
                return template
        return None

    def get_email_templates(self) -> list[EmailTemplate]:
        return sorted(self.all("email_templates"), key=lambda t: t.name)

    def get_template_versions(self, template_id: str) -> list[EmailTemplateVersion]:
        versions = self.find("email_template_versions", lambda v: v.template_id == template_id)
        return sorted(versions, key=lambda v: v.version_number, reverse=True)

    # =========================================================================
    # Back-in-stock alerts
    # =========================================================================

    def get_alerts_for_product(self, product_id: str) -> list[BackInStockAlert]:
        return self.find("back_in_stock_alerts", lambda a: a.product_id == product_id)


# Module-level singleton for convenience
# In tests, create a new DataStore instance with test fixtures
_default_store: Optional[DataStore] = None


def get_data_store() -> DataStore:
    """Get the default data store singleton."""
    global _default_store
    if _default_store is None:
        _default_store = DataStore()
    return _default_store
