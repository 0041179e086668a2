"""
Domain services of the storefront and admin backend.

- Catalog: products, categories, prices and stock
- Cart: per-customer shopping carts
- Ordering: checkout and order status changes
- Promotions: sale prices, cart discounts and coupons
- Shipping: zones, rules, carrier services and sales tax
- Pickup: pickup windows, reservations and the admin calendar
- Email templates: staff-editable transactional emails
- Alerts: back-in-stock subscriptions
- Reports: sales and operational reports

Services that change state publish events; none of them sends notifications.
"""

from commerce.services.alerts import BackInStockService
from commerce.services.cart import CartService
from commerce.services.catalog import CatalogService
from commerce.services.email_templates import EmailTemplateService
from commerce.services.ordering import OrderingService
from commerce.services.pickup import PickupService
from commerce.services.promotions import PromotionsService
from commerce.services.reports import ReportsService
from commerce.services.shipping import ShippingService

__all__ = [
    "BackInStockService",
    "CartService",
    "CatalogService",
    "EmailTemplateService",
    "OrderingService",
    "PickupService",
    "PromotionsService",
    "ReportsService",
    "ShippingService",
]
