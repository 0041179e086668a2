"""
Request and response bodies of the HTTP API.

Domain models from storefront.models are returned as-is where they fit;
the models here cover request payloads and the few composite responses.
Admin payloads leave every field optional so the same model serves create
and partial update (only the fields that were sent are applied).
"""

from datetime import date, datetime, time
from typing import Any, Optional

from pydantic import BaseModel, Field

from storefront.models import (
    ActivationType,
    Cart,
    CartLine,
    DiscountType,
    OrderStatus,
    PromotionScope,
    ReservationStatus,
    RuleType,
    ScheduleType,
    ZoneStatus,
)


def changes(model: BaseModel) -> dict[str, Any]:
    """Fields the client actually sent."""
    return model.model_dump(exclude_unset=True)


# =============================================================================
# Storefront
# =============================================================================

class AddCartItem(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class UpdateCartItem(BaseModel):
    quantity: int


class CartView(BaseModel):
    cart: Cart
    lines: list[CartLine]
    subtotal: float
    item_count: int


class CartDiscountRequest(BaseModel):
    items: list[CartLine]
    coupon_code: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None


class CouponCheck(BaseModel):
    code: Optional[str] = None


class AlertSubscribe(BaseModel):
    email: str
    customer_id: Optional[str] = None


# =============================================================================
# Admin: catalog and orders
# =============================================================================

class PriceUpdate(BaseModel):
    price: float


class StockAdjustment(BaseModel):
    delta: int
    reason: str = "adjustment"


class StatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None


# =============================================================================
# Admin: promotions
# =============================================================================

class PromotionIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    get_discount_percent: Optional[float] = None
    scope: Optional[PromotionScope] = None
    product_ids: Optional[list[str]] = None
    category_ids: Optional[list[str]] = None
    excluded_category_ids: Optional[list[str]] = None
    customer_ids: Optional[list[str]] = None
    customer_emails: Optional[list[str]] = None
    minimum_order_amount: Optional[float] = None
    minimum_quantity: Optional[int] = None
    maximum_discount_amount: Optional[float] = None
    max_uses: Optional[int] = None
    max_uses_per_customer: Optional[int] = None
    stackable: Optional[bool] = None
    priority: Optional[int] = None
    activation_type: Optional[ActivationType] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    banner_text: Optional[str] = None
    banner_bg_color: Optional[str] = None
    banner_text_color: Optional[str] = None
    show_banner: Optional[bool] = None
    badge_text: Optional[str] = None


# =============================================================================
# Admin: shipping
# =============================================================================

class ShippingServiceIn(BaseModel):
    carrier_code: Optional[str] = None
    service_code: Optional[str] = None
    name: Optional[str] = None
    min_transit_days: Optional[int] = None
    max_transit_days: Optional[int] = None
    base_rate: Optional[float] = None
    is_enabled: Optional[bool] = None
    sort_order: Optional[int] = None


class ZoneConditionsIn(BaseModel):
    blocked_months: list[int] = Field(default_factory=list)
    required_service: Optional[str] = None
    max_transit_days: Optional[int] = None


class ZoneUpdate(BaseModel):
    status: Optional[ZoneStatus] = None
    conditions: Optional[ZoneConditionsIn] = None
    customer_message: Optional[str] = None
    internal_notes: Optional[str] = None


class RuleIn(BaseModel):
    name: Optional[str] = None
    rule_type: Optional[RuleType] = None
    priority: Optional[int] = None
    conditions: Optional[dict[str, Any]] = None
    actions: Optional[dict[str, Any]] = None
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None
    is_active: Optional[bool] = None


class ToggleRequest(BaseModel):
    enabled: Optional[bool] = None


# =============================================================================
# Admin: pickup, templates
# =============================================================================

class ScheduleIn(BaseModel):
    location_id: Optional[str] = None
    schedule_type: Optional[ScheduleType] = None
    day_of_week: Optional[int] = None
    specific_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    max_orders: Optional[int] = None
    is_active: Optional[bool] = None


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class TemplateUpdate(BaseModel):
    subject_line: Optional[str] = None
    html_content: Optional[str] = None
    plain_text_content: Optional[str] = None
    is_active: Optional[bool] = None
