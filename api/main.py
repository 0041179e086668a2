"""
FastAPI application for the nursery storefront and admin dashboard.

This application provides:
1. Storefront endpoints (catalog, cart, checkout, back-in-stock signup)
2. The RPC endpoints the storefront calls for discounts, coupons and pickup slots
3. Admin endpoints (promotions, shipping, pickup, email templates, orders, reports)

Run with:
    uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from api.schemas import (
    AddCartItem,
    AlertSubscribe,
    CartDiscountRequest,
    CartView,
    CouponCheck,
    PriceUpdate,
    PromotionIn,
    ReservationStatusUpdate,
    RuleIn,
    ScheduleIn,
    ShippingServiceIn,
    StatusUpdate,
    StockAdjustment,
    TemplateUpdate,
    ToggleRequest,
    UpdateCartItem,
    ZoneUpdate,
    changes,
)
from commerce.charts import bar_chart_heights, line_chart_path, line_chart_points, pie_chart_slices
from commerce.event_bus import EventBus, get_event_bus
from commerce.notification_service import NotificationService
from commerce.services import (
    BackInStockService,
    CartService,
    CatalogService,
    EmailTemplateService,
    OrderingService,
    PickupService,
    PromotionsService,
    ReportsService,
    ShippingService,
)
from commerce.services.pickup import build_calendar_grid
from commerce.services.promotions import generate_coupon_code
from commerce.services.shipping import calculate_tax
from storefront.channels import NotificationChannels
from storefront.config import get_settings
from storefront.data_store import DataStore, get_data_store
from storefront.errors import InsufficientStockError, NotFoundError, StorefrontError, ValidationError
from storefront.models import CheckoutRequest, round_money, utcnow

# Configure logging
logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("storefront_api")


# =============================================================================
# Dependencies
# =============================================================================

# Module-level instances, swapped out by reset_api_state() in tests
_data_store: Optional[DataStore] = None
_event_bus: Optional[EventBus] = None
_channels: Optional[NotificationChannels] = None
_notification_service: Optional[NotificationService] = None


def get_store() -> DataStore:
    global _data_store
    if _data_store is None:
        _data_store = get_data_store()
    return _data_store


def get_bus() -> EventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = get_event_bus()
    return _event_bus


def get_channels() -> NotificationChannels:
    global _channels
    if _channels is None:
        _channels = NotificationChannels()
    return _channels


def start_notifications() -> NotificationService:
    """Subscribe the notification service to the current bus (once)."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService(get_bus(), get_store(), get_channels())
        _notification_service.start()
    return _notification_service


def reset_api_state(
    data_store: Optional[DataStore] = None,
    event_bus: Optional[EventBus] = None,
    channels: Optional[NotificationChannels] = None,
) -> None:
    """Replace the shared store, bus and channels (for testing)."""
    global _data_store, _event_bus, _channels, _notification_service
    if _notification_service is not None:
        _notification_service.stop()
    _data_store = data_store
    _event_bus = event_bus
    _channels = channels
    _notification_service = None
    start_notifications()


def get_catalog() -> CatalogService:
    return CatalogService(get_bus(), get_store())


def get_carts() -> CartService:
    return CartService(get_store())


def get_ordering() -> OrderingService:
    return OrderingService(get_bus(), get_store())


def get_promotions() -> PromotionsService:
    return PromotionsService(get_bus(), get_store())


def get_shipping() -> ShippingService:
    return ShippingService(get_store())


def get_pickup() -> PickupService:
    return PickupService(get_store())


def get_templates() -> EmailTemplateService:
    return EmailTemplateService(get_store())


def get_alerts() -> BackInStockService:
    return BackInStockService(get_store())


def get_reports() -> ReportsService:
    return ReportsService(get_store())


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(f"Starting {get_settings().STORE_NAME} API")
    start_notifications()
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Nursery Storefront API",
    description="""
    Storefront and admin backend for a plant nursery.

    ## Areas

    - **Storefront**: products, cart, checkout, back-in-stock alerts
    - **RPC**: cart discounts, coupon checks, pickup slot availability
    - **Admin**: promotions, shipping, pickup, email templates, orders, reports
    """,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Error mapping
# =============================================================================

@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
def handle_validation(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(InsufficientStockError)
def handle_insufficient_stock(request: Request, exc: InsufficientStockError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "shortages": exc.shortages})


@app.exception_handler(StorefrontError)
def handle_storefront_error(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "nursery-storefront"}


# =============================================================================
# Storefront: catalog
# =============================================================================

@app.get("/products", tags=["Storefront"])
def list_products(
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.list_products(category_id=category_id, search=search)


@app.get("/products/{product_id}", tags=["Storefront"])
def get_product_listing(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    """Product with its current sale price and badge, if a promotion applies."""
    return catalog.get_product_listing(product_id)


@app.get("/products/{product_id}/promotion", tags=["Storefront"])
def get_product_promotion(product_id: str, promotions: PromotionsService = Depends(get_promotions)):
    return promotions.get_product_promotion(product_id)


@app.post("/products/{product_id}/alerts", status_code=201, tags=["Storefront"])
def subscribe_back_in_stock(
    product_id: str,
    body: AlertSubscribe,
    alerts: BackInStockService = Depends(get_alerts),
):
    return alerts.subscribe(product_id, body.email, customer_id=body.customer_id)


@app.get("/categories", tags=["Storefront"])
def get_category_tree(catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_category_tree()


@app.get("/banners", tags=["Storefront"])
def get_active_banners(promotions: PromotionsService = Depends(get_promotions)):
    return promotions.get_active_banners()


# =============================================================================
# Storefront: cart and checkout
# =============================================================================

def _cart_view(carts: CartService, customer_id: str) -> CartView:
    cart = carts.get_cart(customer_id)
    lines = carts.cart_lines(cart)
    return CartView(
        cart=cart,
        lines=lines,
        subtotal=round_money(sum(line.line_total for line in lines)),
        item_count=cart.item_count,
    )


@app.get("/cart/{customer_id}", response_model=CartView, tags=["Cart"])
def get_cart(customer_id: str, carts: CartService = Depends(get_carts)):
    return _cart_view(carts, customer_id)


@app.post("/cart/{customer_id}/items", response_model=CartView, tags=["Cart"])
def add_cart_item(customer_id: str, body: AddCartItem, carts: CartService = Depends(get_carts)):
    carts.add_item(customer_id, body.product_id, body.quantity)
    return _cart_view(carts, customer_id)


@app.put("/cart/{customer_id}/items/{product_id}", response_model=CartView, tags=["Cart"])
def update_cart_item(
    customer_id: str,
    product_id: str,
    body: UpdateCartItem,
    carts: CartService = Depends(get_carts),
):
    carts.update_quantity(customer_id, product_id, body.quantity)
    return _cart_view(carts, customer_id)


@app.delete("/cart/{customer_id}/items/{product_id}", response_model=CartView, tags=["Cart"])
def remove_cart_item(customer_id: str, product_id: str, carts: CartService = Depends(get_carts)):
    carts.remove_item(customer_id, product_id)
    return _cart_view(carts, customer_id)


@app.delete("/cart/{customer_id}", response_model=CartView, tags=["Cart"])
def clear_cart(customer_id: str, carts: CartService = Depends(get_carts)):
    carts.clear_cart(customer_id)
    return _cart_view(carts, customer_id)


@app.post("/checkout", status_code=201, tags=["Cart"])
def checkout(request: CheckoutRequest, ordering: OrderingService = Depends(get_ordering)):
    """Place an order. Customer emails go out through the event bus."""
    start_notifications()
    return ordering.place_order(request)


@app.get("/shipping/eligibility/{state_code}", tags=["Shipping"])
def shipping_eligibility(
    state_code: str,
    on_date: Optional[date] = None,
    shipping: ShippingService = Depends(get_shipping),
):
    return shipping.check_shipping_eligibility(state_code, on_date)


@app.get("/shipping/options/{state_code}", tags=["Shipping"])
def shipping_options(
    state_code: str,
    on_date: Optional[date] = None,
    shipping: ShippingService = Depends(get_shipping),
):
    return shipping.get_shipping_options(state_code, on_date)


@app.get("/shipping/tax", tags=["Shipping"])
def sales_tax(subtotal: float, state: Optional[str] = None):
    return calculate_tax(subtotal, state)


@app.get("/pickup/locations", tags=["Pickup"])
def pickup_locations(pickup: PickupService = Depends(get_pickup)):
    return pickup.list_locations()


# =============================================================================
# RPC
# =============================================================================

@app.post("/rpc/calculate_cart_discount", tags=["RPC"])
def rpc_calculate_cart_discount(
    body: CartDiscountRequest,
    promotions: PromotionsService = Depends(get_promotions),
):
    return promotions.calculate_cart_discount(
        body.items,
        coupon_code=body.coupon_code,
        customer_id=body.customer_id,
        customer_email=body.customer_email,
    )


@app.post("/rpc/validate_coupon_code", tags=["RPC"])
def rpc_validate_coupon_code(body: CouponCheck, promotions: PromotionsService = Depends(get_promotions)):
    return promotions.validate_coupon_code(body.code)


@app.get("/rpc/get_available_pickup_slots", tags=["RPC"])
def rpc_get_available_pickup_slots(
    location_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    pickup: PickupService = Depends(get_pickup),
):
    return pickup.get_available_pickup_slots(location_id, start_date, end_date)


# =============================================================================
# Admin: catalog and orders
# =============================================================================

@app.get("/admin/products/low-stock", tags=["Admin: Catalog"])
def low_stock_products(threshold: Optional[int] = None, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_low_stock_products(threshold)


@app.put("/admin/products/{product_id}/price", tags=["Admin: Catalog"])
def update_price(product_id: str, body: PriceUpdate, catalog: CatalogService = Depends(get_catalog)):
    return catalog.update_price(product_id, body.price)


@app.post("/admin/products/{product_id}/stock", tags=["Admin: Catalog"])
def adjust_stock(product_id: str, body: StockAdjustment, catalog: CatalogService = Depends(get_catalog)):
    """Add or remove stock. Stock returning from zero triggers back-in-stock emails."""
    start_notifications()
    return catalog.adjust_stock(product_id, body.delta, reason=body.reason)


@app.get("/admin/orders", tags=["Admin: Orders"])
def list_orders(
    status: Optional[str] = None,
    customer_id: Optional[str] = None,
    ordering: OrderingService = Depends(get_ordering),
):
    return ordering.list_orders(status=status, customer_id=customer_id)


@app.get("/admin/orders/{order_id}", tags=["Admin: Orders"])
def get_order(order_id: str, ordering: OrderingService = Depends(get_ordering)):
    return ordering.get_order(order_id)


@app.post("/admin/orders/{order_id}/status", tags=["Admin: Orders"])
def update_order_status(order_id: str, body: StatusUpdate, ordering: OrderingService = Depends(get_ordering)):
    start_notifications()
    return ordering.update_order_status(
        order_id, body.status, tracking_number=body.tracking_number, carrier=body.carrier
    )


# =============================================================================
# Admin: promotions
# =============================================================================

@app.get("/admin/promotions", tags=["Admin: Promotions"])
def list_promotions(active_only: bool = False, promotions: PromotionsService = Depends(get_promotions)):
    return promotions.list_promotions(active_only=active_only)


@app.post("/admin/promotions", status_code=201, tags=["Admin: Promotions"])
def create_promotion(body: PromotionIn, promotions: PromotionsService = Depends(get_promotions)):
    return promotions.create_promotion(changes(body))


@app.post("/admin/promotions/coupon-code", tags=["Admin: Promotions"])
def new_coupon_code(length: int = 8):
    return {"code": generate_coupon_code(length)}


@app.get("/admin/promotions/{promotion_id}", tags=["Admin: Promotions"])
def get_promotion(promotion_id: str, promotions: PromotionsService = Depends(get_promotions)):
    return promotions.get_promotion(promotion_id)


@app.patch("/admin/promotions/{promotion_id}", tags=["Admin: Promotions"])
def update_promotion(
    promotion_id: str,
    body: PromotionIn,
    promotions: PromotionsService = Depends(get_promotions),
):
    return promotions.update_promotion(promotion_id, changes(body))


@app.post("/admin/promotions/{promotion_id}/activate", tags=["Admin: Promotions"])
def activate_promotion(promotion_id: str, promotions: PromotionsService = Depends(get_promotions)):
    start_notifications()
    return promotions.activate_promotion(promotion_id)


@app.post("/admin/promotions/{promotion_id}/deactivate", tags=["Admin: Promotions"])
def deactivate_promotion(promotion_id: str, promotions: PromotionsService = Depends(get_promotions)):
    return promotions.deactivate_promotion(promotion_id)


# =============================================================================
# Admin: shipping
# =============================================================================

@app.get("/admin/shipping/services", tags=["Admin: Shipping"])
def list_shipping_services(shipping: ShippingService = Depends(get_shipping)):
    return shipping.list_shipping_services()


@app.post("/admin/shipping/services", status_code=201, tags=["Admin: Shipping"])
def create_shipping_service(body: ShippingServiceIn, shipping: ShippingService = Depends(get_shipping)):
    return shipping.save_shipping_service(changes(body))


@app.patch("/admin/shipping/services/{service_id}", tags=["Admin: Shipping"])
def update_shipping_service(
    service_id: str,
    body: ShippingServiceIn,
    shipping: ShippingService = Depends(get_shipping),
):
    return shipping.save_shipping_service(changes(body), service_id=service_id)


@app.post("/admin/shipping/services/{service_id}/toggle", tags=["Admin: Shipping"])
def toggle_shipping_service(
    service_id: str,
    body: ToggleRequest,
    shipping: ShippingService = Depends(get_shipping),
):
    return shipping.toggle_shipping_service(service_id, body.enabled)


@app.get("/admin/shipping/zones", tags=["Admin: Shipping"])
def list_zones(shipping: ShippingService = Depends(get_shipping)):
    return shipping.list_zones()


@app.patch("/admin/shipping/zones/{state_code}", tags=["Admin: Shipping"])
def update_zone(state_code: str, body: ZoneUpdate, shipping: ShippingService = Depends(get_shipping)):
    return shipping.update_zone(state_code, changes(body))


@app.get("/admin/shipping/rules", tags=["Admin: Shipping"])
def list_rules(shipping: ShippingService = Depends(get_shipping)):
    return shipping.list_rules()


@app.post("/admin/shipping/rules", status_code=201, tags=["Admin: Shipping"])
def create_rule(body: RuleIn, shipping: ShippingService = Depends(get_shipping)):
    return shipping.save_rule(changes(body))


@app.patch("/admin/shipping/rules/{rule_id}", tags=["Admin: Shipping"])
def update_rule(rule_id: str, body: RuleIn, shipping: ShippingService = Depends(get_shipping)):
    return shipping.save_rule(changes(body), rule_id=rule_id)


@app.delete("/admin/shipping/rules/{rule_id}", status_code=204, tags=["Admin: Shipping"])
def delete_rule(rule_id: str, shipping: ShippingService = Depends(get_shipping)):
    shipping.delete_rule(rule_id)


# =============================================================================
# Admin: pickup
# =============================================================================

@app.get("/admin/pickup/schedules", tags=["Admin: Pickup"])
def list_schedules(location_id: Optional[str] = None, pickup: PickupService = Depends(get_pickup)):
    return pickup.list_schedules(location_id)


@app.post("/admin/pickup/schedules", status_code=201, tags=["Admin: Pickup"])
def create_schedule(body: ScheduleIn, pickup: PickupService = Depends(get_pickup)):
    return pickup.save_schedule(changes(body))


@app.patch("/admin/pickup/schedules/{schedule_id}", tags=["Admin: Pickup"])
def update_schedule(schedule_id: str, body: ScheduleIn, pickup: PickupService = Depends(get_pickup)):
    return pickup.save_schedule(changes(body), schedule_id=schedule_id)


@app.delete("/admin/pickup/schedules/{schedule_id}", tags=["Admin: Pickup"])
def deactivate_schedule(schedule_id: str, pickup: PickupService = Depends(get_pickup)):
    return pickup.deactivate_schedule(schedule_id)


@app.patch("/admin/pickup/reservations/{reservation_id}", tags=["Admin: Pickup"])
def update_reservation(
    reservation_id: str,
    body: ReservationStatusUpdate,
    pickup: PickupService = Depends(get_pickup),
):
    return pickup.update_reservation_status(reservation_id, body.status)


@app.get("/admin/pickup/calendar/{year}/{month}", tags=["Admin: Pickup"])
def pickup_calendar(year: int, month: int, pickup: PickupService = Depends(get_pickup)):
    """Six-week grid plus the pickup windows and bookings of each day."""
    if not 1 <= month <= 12:
        raise ValidationError({"month": "Month must be between 1 and 12"})
    days = pickup.get_calendar(year, month)
    return {
        "weeks": build_calendar_grid(year, month),
        "days": {day.isoformat(): slots for day, slots in days.items()},
    }


# =============================================================================
# Admin: email templates and alerts
# =============================================================================

@app.get("/admin/email-templates", tags=["Admin: Email"])
def list_templates(templates: EmailTemplateService = Depends(get_templates)):
    return templates.list_templates()


@app.get("/admin/email-templates/{template_key}", tags=["Admin: Email"])
def get_template(template_key: str, templates: EmailTemplateService = Depends(get_templates)):
    return templates.get_template(template_key)


@app.put("/admin/email-templates/{template_key}", tags=["Admin: Email"])
def update_template(
    template_key: str,
    body: TemplateUpdate,
    templates: EmailTemplateService = Depends(get_templates),
):
    return templates.update_template(template_key, **changes(body))


@app.get("/admin/email-templates/{template_key}/preview", tags=["Admin: Email"])
def preview_template(template_key: str, templates: EmailTemplateService = Depends(get_templates)):
    return templates.preview_template(template_key)


@app.get("/admin/email-templates/{template_key}/versions", tags=["Admin: Email"])
def list_template_versions(template_key: str, templates: EmailTemplateService = Depends(get_templates)):
    return templates.list_versions(template_key)


@app.post("/admin/email-templates/{template_key}/versions/{version_number}/restore", tags=["Admin: Email"])
def restore_template_version(
    template_key: str,
    version_number: int,
    templates: EmailTemplateService = Depends(get_templates),
):
    return templates.restore_version(template_key, version_number)


@app.get("/admin/alerts", tags=["Admin: Alerts"])
def list_alerts(
    product_id: Optional[str] = None,
    status: Optional[str] = None,
    alerts: BackInStockService = Depends(get_alerts),
):
    return alerts.list_alerts(product_id, status)


@app.get("/admin/alerts/counts", tags=["Admin: Alerts"])
def pending_alert_counts(alerts: BackInStockService = Depends(get_alerts)):
    return alerts.pending_counts()


# =============================================================================
# Admin: reports
# =============================================================================

def _report_range(start: Optional[date], end: Optional[date]) -> tuple[date, date]:
    """Defaults to the last 30 days."""
    end = end or utcnow().date()
    start = start or end - timedelta(days=29)
    if start > end:
        raise ValidationError({"start": "Start date must be on or before end date"})
    return start, end


@app.get("/admin/reports/sales", tags=["Admin: Reports"])
def sales_report(
    start: Optional[date] = None,
    end: Optional[date] = None,
    reports: ReportsService = Depends(get_reports),
):
    return reports.sales_report(*_report_range(start, end))


@app.get("/admin/reports/sales/chart", tags=["Admin: Reports"])
def sales_chart(
    start: Optional[date] = None,
    end: Optional[date] = None,
    height: int = 200,
    reports: ReportsService = Depends(get_reports),
):
    """Daily revenue as line chart points plus the SVG path through them."""
    report = reports.sales_report(*_report_range(start, end))
    points = line_chart_points(
        [day.revenue for day in report.daily_sales],
        height=height,
        labels=[day.date.isoformat() for day in report.daily_sales],
    )
    return {"points": points, "path": line_chart_path(points)}


@app.get("/admin/reports/products", tags=["Admin: Reports"])
def products_report(
    start: Optional[date] = None,
    end: Optional[date] = None,
    reports: ReportsService = Depends(get_reports),
):
    return reports.products_report(*_report_range(start, end))


@app.get("/admin/reports/products/chart", tags=["Admin: Reports"])
def category_chart(
    start: Optional[date] = None,
    end: Optional[date] = None,
    height: int = 200,
    reports: ReportsService = Depends(get_reports),
):
    """Category revenue as pie slices, best sellers as bars."""
    report = reports.products_report(*_report_range(start, end))
    return {
        "categories": pie_chart_slices(
            [c.revenue for c in report.category_breakdown],
            height=height,
            labels=[c.category for c in report.category_breakdown],
        ),
        "best_sellers": bar_chart_heights(
            [p.units_sold for p in report.best_sellers],
            labels=[p.name for p in report.best_sellers],
        ),
    }


@app.get("/admin/reports/customers", tags=["Admin: Reports"])
def customers_report(
    start: Optional[date] = None,
    end: Optional[date] = None,
    reports: ReportsService = Depends(get_reports),
):
    return reports.customers_report(*_report_range(start, end))


@app.get("/admin/reports/shipping", tags=["Admin: Reports"])
def shipping_report(
    start: Optional[date] = None,
    end: Optional[date] = None,
    reports: ReportsService = Depends(get_reports),
):
    return reports.shipping_report(*_report_range(start, end))


@app.get("/admin/reports/pickup", tags=["Admin: Reports"])
def pickup_report(
    start: Optional[date] = None,
    end: Optional[date] = None,
    reports: ReportsService = Depends(get_reports),
):
    return reports.pickup_report(*_report_range(start, end))
