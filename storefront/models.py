"""
Domain models for the nursery storefront and admin backend.

These models mirror the rows the storefront works with: catalog, carts,
orders, promotions, shipping configuration, pickup scheduling, managed email
templates and back-in-stock alerts.

Design decisions:
- Using Pydantic for validation and serialization
- Enum fields are stored as their string values (use_enum_values)
- Money is kept as float and rounded to cents where it is computed
- Timestamps are timezone-aware UTC
"""

from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def round_money(value: float) -> float:
    """Round to cents, halves away from zero (34.995 -> 35.0)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Naive datetimes are taken to be UTC
UTCDatetime = Annotated[datetime, AfterValidator(_as_utc)]


DEFAULT_LOW_STOCK_THRESHOLD = 10


# =============================================================================
# Enums
# =============================================================================

class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class OrderStatus(str, Enum):
    """Order lifecycle states."""
    PENDING_PAYMENT = "pending_payment"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


ORDER_STATUS_LABELS: dict[str, str] = {
    OrderStatus.PENDING_PAYMENT.value: "Pending Payment",
    OrderStatus.PROCESSING.value: "Processing",
    OrderStatus.SHIPPED.value: "Shipped",
    OrderStatus.ON_HOLD.value: "On Hold",
    OrderStatus.COMPLETED.value: "Completed",
    OrderStatus.CANCELLED.value: "Cancelled",
    OrderStatus.REFUNDED.value: "Refunded",
    OrderStatus.FAILED.value: "Failed",
}


def get_order_status_label(status: Optional[str]) -> str:
    if not status:
        return "Unknown"
    return ORDER_STATUS_LABELS.get(status, status.replace("_", " "))


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FIXED_PRICE = "fixed_price"
    BUY_X_GET_Y = "buy_x_get_y"
    FREE_SHIPPING = "free_shipping"


class PromotionScope(str, Enum):
    SITE = "site"
    CATEGORY = "category"
    PRODUCT = "product"
    CUSTOMER = "customer"


class ActivationType(str, Enum):
    AUTOMATIC = "automatic"
    COUPON = "coupon"
    BOTH = "both"


class ZoneStatus(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    CONDITIONAL = "conditional"


class RuleType(str, Enum):
    SEASONAL_BLOCK = "seasonal_block"
    SERVICE_REQUIREMENT = "service_requirement"
    TRANSIT_LIMIT = "transit_limit"
    SURCHARGE = "surcharge"


class ScheduleType(str, Enum):
    RECURRING = "recurring"
    ONE_TIME = "one_time"


class ReservationStatus(str, Enum):
    SCHEDULED = "scheduled"
    PICKED_UP = "picked_up"
    MISSED = "missed"
    CANCELLED = "cancelled"


class AlertStatus(str, Enum):
    PENDING = "pending"
    NOTIFIED = "notified"
    CANCELLED = "cancelled"


# =============================================================================
# Customers
# =============================================================================

class Customer(BaseModel):
    """A registered storefront customer."""
    id: str
    first_name: str
    last_name: str = ""
    email: str
    phone: Optional[str] = None
    sms_opt_in: bool = False
    is_tax_exempt: bool = False
    tax_exempt_reason: Optional[str] = None
    created_at: UTCDatetime = Field(default_factory=utcnow)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ChannelPreferences(BaseModel):
    """Per-channel opt-in settings for a notification kind."""
    email: bool = True
    sms: bool = False


class NotificationPreference(BaseModel):
    """
    Customer notification preferences.

    Notification kinds:
    - order_updates: confirmation, shipped, delivered
    - stock_alerts: back-in-stock emails
    - promotions: marketing messages
    """
    customer_id: str
    preferences: dict[str, ChannelPreferences] = Field(
        default_factory=lambda: {
            "order_updates": ChannelPreferences(email=True, sms=False),
            "stock_alerts": ChannelPreferences(email=True, sms=False),
            "promotions": ChannelPreferences(email=False, sms=False),
        }
    )

    def get_channels_for_type(self, notification_type: str) -> list[str]:
        pref = self.preferences.get(notification_type)
        if not pref:
            return []
        channels = []
        if pref.email:
            channels.append("email")
        if pref.sms:
            channels.append("sms")
        return channels


# =============================================================================
# Catalog
# =============================================================================

class Category(BaseModel):
    id: str
    name: str
    slug: str
    parent_id: Optional[str] = None
    sort_order: int = 0


class Product(BaseModel):
    """A catalog product (plant, seed pack, tool...)."""
    id: str
    name: str
    slug: str
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = Field(default=None, ge=0)
    category_id: Optional[str] = None
    product_type: str = "plant"
    stock_quantity: int = 0
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    track_inventory: bool = True
    is_active: bool = True
    local_pickup_only: bool = False
    description: Optional[str] = None

    def get_stock_status(self, default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> StockStatus:
        if not self.track_inventory:
            return StockStatus.IN_STOCK
        if self.stock_quantity <= 0:
            return StockStatus.OUT_OF_STOCK
        threshold = self.low_stock_threshold if self.low_stock_threshold is not None else default_threshold
        if self.stock_quantity <= threshold:
            return StockStatus.LOW_STOCK
        return StockStatus.IN_STOCK

    @property
    def in_stock(self) -> bool:
        return not self.track_inventory or self.stock_quantity > 0


# =============================================================================
# Carts
# =============================================================================

class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    added_at: UTCDatetime = Field(default_factory=utcnow)


class Cart(BaseModel):
    customer_id: str
    items: list[CartItem] = Field(default_factory=list)
    updated_at: UTCDatetime = Field(default_factory=utcnow)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class CartLine(BaseModel):
    """A priced cart line, the input of discount calculation."""
    product_id: str
    name: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    category_id: Optional[str] = None

    @property
    def line_total(self) -> float:
        return round_money(self.price * self.quantity)


# =============================================================================
# Orders
# =============================================================================

class OrderItem(BaseModel):
    product_id: str
    name: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    line_total: float = Field(..., ge=0)


class Order(BaseModel):
    id: str
    order_number: str
    customer_id: Optional[str] = None
    guest_email: Optional[str] = None
    items: list[OrderItem] = Field(default_factory=list)
    subtotal: float = 0.0
    discount_amount: float = 0.0
    shipping_cost: float = 0.0
    tax_amount: float = 0.0
    total: float = 0.0
    status: OrderStatus = OrderStatus.PROCESSING
    promotion_id: Optional[str] = None
    promotion_code: Optional[str] = None
    discount_description: Optional[str] = None
    is_pickup: bool = False
    pickup_location_id: Optional[str] = None
    pickup_date: Optional[date] = None
    pickup_time_start: Optional[time] = None
    pickup_time_end: Optional[time] = None
    shipping_state: Optional[str] = None
    shipping_service: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    attribution_source: Optional[str] = None
    created_at: UTCDatetime = Field(default_factory=utcnow)
    updated_at: Optional[UTCDatetime] = None
    shipped_at: Optional[UTCDatetime] = None
    delivered_at: Optional[UTCDatetime] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


# Statuses an order may move to from each status
ORDER_STATUS_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING_PAYMENT.value: {"processing", "on_hold", "cancelled", "failed"},
    OrderStatus.PROCESSING.value: {"shipped", "on_hold", "completed", "cancelled", "refunded"},
    OrderStatus.SHIPPED.value: {"completed", "on_hold", "refunded"},
    OrderStatus.ON_HOLD.value: {"processing", "shipped", "cancelled"},
    OrderStatus.COMPLETED.value: {"refunded"},
    OrderStatus.FAILED.value: {"pending_payment", "cancelled"},
    OrderStatus.CANCELLED.value: set(),
    OrderStatus.REFUNDED.value: set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


class CheckoutRequest(BaseModel):
    """
    Everything checkout needs besides the cart contents.

    Registered customers check out their saved cart; guests pass the items
    directly along with a contact email.
    """
    customer_id: Optional[str] = None
    guest_email: Optional[str] = None
    items: list[CartItem] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    is_pickup: bool = False
    shipping_state: Optional[str] = None
    shipping_service: Optional[str] = None
    pickup_location_id: Optional[str] = None
    pickup_schedule_id: Optional[str] = None
    pickup_date: Optional[date] = None
    attribution_source: Optional[str] = None

    @model_validator(mode="after")
    def _check_contact(self):
        if not self.customer_id and not self.guest_email:
            raise ValueError("customer_id or guest_email is required")
        return self


# =============================================================================
# Promotions
# =============================================================================

class Promotion(BaseModel):
    """A discount rule, applied automatically or through a coupon code."""
    id: str
    name: str
    description: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_type: DiscountType
    discount_value: Optional[float] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    get_discount_percent: Optional[float] = None
    scope: PromotionScope = PromotionScope.SITE
    product_ids: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)
    excluded_category_ids: list[str] = Field(default_factory=list)
    customer_ids: list[str] = Field(default_factory=list)
    customer_emails: list[str] = Field(default_factory=list)
    minimum_order_amount: Optional[float] = None
    minimum_quantity: Optional[int] = None
    maximum_discount_amount: Optional[float] = None
    max_uses: Optional[int] = None
    times_used: int = 0
    max_uses_per_customer: Optional[int] = None
    total_discount_given: float = 0.0
    stackable: bool = False
    priority: int = 0
    activation_type: ActivationType = ActivationType.AUTOMATIC
    starts_at: UTCDatetime = Field(default_factory=utcnow)
    ends_at: Optional[UTCDatetime] = None
    is_active: bool = True
    banner_text: Optional[str] = None
    banner_bg_color: str = "#10b981"
    banner_text_color: str = "#ffffff"
    show_banner: bool = False
    badge_text: str = "SALE"
    created_at: UTCDatetime = Field(default_factory=utcnow)

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    def has_started(self, now: datetime) -> bool:
        return self.starts_at <= now

    def has_ended(self, now: datetime) -> bool:
        return self.ends_at is not None and self.ends_at <= now

    def usage_exhausted(self) -> bool:
        return self.max_uses is not None and self.times_used >= self.max_uses

    def is_running(self, now: Optional[datetime] = None) -> bool:
        """Active, inside its schedule, and under its total usage limit."""
        now = now or utcnow()
        return (
            self.is_active
            and self.has_started(now)
            and not self.has_ended(now)
            and not self.usage_exhausted()
        )

    def accepts_coupon(self) -> bool:
        return self.activation_type in (ActivationType.COUPON, ActivationType.BOTH)

    def applies_automatically(self) -> bool:
        return self.activation_type in (ActivationType.AUTOMATIC, ActivationType.BOTH)


class PromotionUsage(BaseModel):
    id: str
    promotion_id: str
    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    discount_amount: float
    used_at: UTCDatetime = Field(default_factory=utcnow)


class CartDiscount(BaseModel):
    """Result of evaluating promotions against a cart."""
    valid: bool
    discount: float = 0.0
    promotion_id: Optional[str] = None
    promotion_name: Optional[str] = None
    promotion_code: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    eligible_total: float = 0.0
    description: Optional[str] = None
    free_shipping: bool = False
    message: Optional[str] = None


class CouponValidation(BaseModel):
    valid: bool
    message: Optional[str] = None
    promotion_id: Optional[str] = None
    promotion_name: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    minimum_order_amount: Optional[float] = None
    description: Optional[str] = None


class PromotionBanner(BaseModel):
    promotion_id: str
    name: str
    banner_text: str
    banner_bg_color: str
    banner_text_color: str
    code: Optional[str] = None
    ends_at: Optional[UTCDatetime] = None
    priority: int = 0


class ProductListing(BaseModel):
    """What the storefront shows for a product: price, sale price and badge."""
    product_id: str
    name: str
    price: float
    sale_price: Optional[float] = None
    compare_at_price: Optional[float] = None
    savings_amount: float = 0.0
    savings_percent: int = 0
    badge_text: Optional[str] = None
    promotion_id: Optional[str] = None
    stock_status: StockStatus
    local_pickup_only: bool = False

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


# =============================================================================
# Shipping
# =============================================================================

class ZoneConditions(BaseModel):
    blocked_months: list[int] = Field(default_factory=list)
    required_service: Optional[str] = None
    max_transit_days: Optional[int] = None


class ShippingZone(BaseModel):
    """Per-state shipping eligibility."""
    id: str
    state_code: str
    state_name: str
    status: ZoneStatus = ZoneStatus.ALLOWED
    conditions: Optional[ZoneConditions] = None
    customer_message: Optional[str] = None
    internal_notes: Optional[str] = None
    updated_at: Optional[UTCDatetime] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class RuleConditions(BaseModel):
    states: list[str] = Field(default_factory=list)
    months: list[int] = Field(default_factory=list)


class RuleActions(BaseModel):
    block: bool = False
    block_message: Optional[str] = None
    required_service: Optional[str] = None
    max_transit_days: Optional[int] = None
    surcharge_amount: Optional[float] = None


class ShippingZoneRule(BaseModel):
    id: str
    name: str
    rule_type: RuleType
    priority: int = 0
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    actions: RuleActions = Field(default_factory=RuleActions)
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None
    is_active: bool = True

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    def applies_to(self, state_code: str, on_date: date) -> bool:
        if not self.is_active:
            return False
        if self.effective_start and on_date < self.effective_start:
            return False
        if self.effective_end and on_date > self.effective_end:
            return False
        if self.conditions.states and state_code not in self.conditions.states:
            return False
        if self.conditions.months and on_date.month not in self.conditions.months:
            return False
        return True


class CarrierService(BaseModel):
    """A carrier shipping service offered at checkout."""
    id: str
    carrier_code: str
    service_code: str
    name: str
    min_transit_days: int = 1
    max_transit_days: int = 3
    base_rate: float = 0.0
    is_enabled: bool = True
    sort_order: int = 0


class ShippingEligibility(BaseModel):
    state_code: str
    allowed: bool
    message: Optional[str] = None
    required_service: Optional[str] = None
    max_transit_days: Optional[int] = None
    surcharge: float = 0.0
    applied_rules: list[str] = Field(default_factory=list)


class ShippingOption(BaseModel):
    service_code: str
    carrier_code: str
    name: str
    min_transit_days: int
    max_transit_days: int
    rate: float


class TaxResult(BaseModel):
    rate: float
    amount: float
    label: str
    note: str
    is_taxable: bool


# =============================================================================
# Local pickup
# =============================================================================

class PickupLocation(BaseModel):
    id: str
    name: str
    address_line1: str
    city: str
    state: str
    postal_code: str
    phone: Optional[str] = None
    instructions: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class PickupSchedule(BaseModel):
    """
    A pickup window at a location.

    Recurring schedules repeat weekly on day_of_week (0=Sunday..6=Saturday);
    one-time schedules apply to specific_date only.
    """
    id: str
    location_id: str
    schedule_type: ScheduleType
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    specific_date: Optional[date] = None
    start_time: time
    end_time: time
    max_orders: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @model_validator(mode="after")
    def _check_shape(self):
        if self.schedule_type == ScheduleType.RECURRING:
            if self.day_of_week is None or self.specific_date is not None:
                raise ValueError("recurring schedules need day_of_week and no specific_date")
        else:
            if self.specific_date is None or self.day_of_week is not None:
                raise ValueError("one-time schedules need specific_date and no day_of_week")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.schedule_type == ScheduleType.RECURRING

    def applies_on(self, on_date: date) -> bool:
        if self.is_recurring:
            return sunday_based_weekday(on_date) == self.day_of_week
        return self.specific_date == on_date


def sunday_based_weekday(d: date) -> int:
    """Day of week with 0=Sunday, matching how schedules are stored."""
    return (d.weekday() + 1) % 7


class PickupReservation(BaseModel):
    id: str
    order_id: str
    location_id: str
    schedule_id: Optional[str] = None
    pickup_date: date
    pickup_time_start: time
    pickup_time_end: time
    status: ReservationStatus = ReservationStatus.SCHEDULED
    notes: Optional[str] = None
    created_at: UTCDatetime = Field(default_factory=utcnow)

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class PickupSlot(BaseModel):
    schedule_id: str
    slot_date: date
    start_time: time
    end_time: time
    max_orders: Optional[int] = None
    current_count: int = 0
    slots_available: Optional[int] = None  # None means unlimited


class CalendarSlot(BaseModel):
    schedule_id: str
    location_id: str
    location_name: str
    start_time: time
    end_time: time
    max_orders: Optional[int] = None
    booked_count: int = 0
    is_recurring: bool
    reservations: list[PickupReservation] = Field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return self.max_orders is not None and self.booked_count >= self.max_orders


# =============================================================================
# Email templates
# =============================================================================

class TemplateVariable(BaseModel):
    key: str
    label: str
    example: str = ""


class EmailTemplate(BaseModel):
    id: str
    template_key: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    subject_line: str
    html_content: str
    plain_text_content: Optional[str] = None
    variables_schema: list[TemplateVariable] = Field(default_factory=list)
    is_active: bool = True
    updated_at: UTCDatetime = Field(default_factory=utcnow)


class EmailTemplateVersion(BaseModel):
    id: str
    template_id: str
    version_number: int
    subject_line: str
    html_content: str
    plain_text_content: Optional[str] = None
    created_at: UTCDatetime = Field(default_factory=utcnow)


class RenderedEmail(BaseModel):
    template_key: str
    subject: str
    html: str
    text: Optional[str] = None


# =============================================================================
# Back-in-stock alerts
# =============================================================================

class BackInStockAlert(BaseModel):
    id: str
    product_id: str
    email: str
    customer_id: Optional[str] = None
    status: AlertStatus = AlertStatus.PENDING
    created_at: UTCDatetime = Field(default_factory=utcnow)
    notified_at: Optional[UTCDatetime] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)
