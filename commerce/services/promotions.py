"""
Promotions and coupons.

Promotions discount products (shown as sale prices and badges in the
storefront) or whole carts (applied at checkout, automatically or through a
coupon code). The cart-level calculation and coupon check report problems in
their result object rather than raising, so checkout can show the message
next to the coupon field.

Design decisions:
- Pricing helpers are plain functions; anything that reads promotions goes
  through PromotionsService
- Only one promotion applies to a cart: the coupon if one was entered,
  otherwise the best automatic site-wide promotion
- Every time-dependent method takes an optional `now` for testability
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Any, Iterable, Optional

from commerce.event_bus import EventBus, get_event_bus
from commerce.events import promotion_activated
from storefront.data_store import DataStore, get_data_store, new_id
from storefront.errors import NotFoundError, ValidationError, build_model
from storefront.models import (
    ActivationType,
    CartDiscount,
    CartLine,
    CouponValidation,
    DiscountType,
    Product,
    Promotion,
    PromotionBanner,
    PromotionScope,
    PromotionUsage,
    round_money,
    utcnow,
)

logger = logging.getLogger("promotions_service")

# Discount types that can be shown as a per-product sale price
PRODUCT_DISCOUNT_TYPES = {
    DiscountType.PERCENTAGE.value,
    DiscountType.FIXED_AMOUNT.value,
    DiscountType.FIXED_PRICE.value,
}

MAX_BANNERS = 5
COUPON_ALPHABET = string.ascii_uppercase + string.digits


# =============================================================================
# Pricing helpers
# =============================================================================

def calculate_sale_price(original_price: float, discount_type: str, discount_value: Optional[float]) -> float:
    """
    Price after applying a product-level discount.

    percentage: original * (1 - value/100)
    fixed_amount: original - value, never below zero
    fixed_price: the value itself
    any other type leaves the price unchanged
    """
    value = discount_value or 0.0
    if discount_type == DiscountType.PERCENTAGE:
        sale = original_price * (1 - value / 100)
    elif discount_type == DiscountType.FIXED_AMOUNT:
        sale = max(0.0, original_price - value)
    elif discount_type == DiscountType.FIXED_PRICE:
        sale = value
    else:
        sale = original_price
    return round_money(sale)


def calculate_savings(original_price: float, sale_price: float) -> tuple[float, int]:
    """Savings as (amount, whole percent)."""
    amount = round_money(original_price - sale_price)
    if original_price <= 0:
        return amount, 0
    return amount, round(amount / original_price * 100)


def format_discount_description(discount_type: str, discount_value: Optional[float]) -> str:
    value = discount_value or 0.0
    if discount_type == DiscountType.PERCENTAGE:
        return f"{value:g}% off"
    if discount_type == DiscountType.FIXED_AMOUNT:
        return f"${value:.2f} off"
    if discount_type == DiscountType.FIXED_PRICE:
        return f"Now ${value:.2f}"
    if discount_type == DiscountType.FREE_SHIPPING:
        return "Free shipping"
    return "Special offer"


def generate_coupon_code(length: int = 8) -> str:
    return "".join(secrets.choice(COUPON_ALPHABET) for _ in range(length))


def _cart_description(promotion: Promotion) -> str:
    if promotion.discount_type in (
        DiscountType.PERCENTAGE,
        DiscountType.FIXED_AMOUNT,
        DiscountType.FREE_SHIPPING,
    ):
        return format_discount_description(promotion.discount_type, promotion.discount_value)
    return promotion.name


def _buy_x_get_y_discount(promotion: Promotion, lines: list[CartLine]) -> float:
    """
    For every full group of buy+get units, the cheapest `get` units are
    discounted by get_discount_percent (a free item by default).
    """
    buy = promotion.buy_quantity or 0
    get = promotion.get_quantity or 0
    if buy < 1 or get < 1:
        return 0.0

    unit_prices = sorted(
        (line.price for line in lines for _ in range(line.quantity)),
        reverse=True,
    )
    groups = len(unit_prices) // (buy + get)
    discounted_units = groups * get
    if discounted_units == 0:
        return 0.0

    percent = promotion.get_discount_percent if promotion.get_discount_percent is not None else 100.0
    cheapest = unit_prices[-discounted_units:]
    return sum(cheapest) * percent / 100


def calculate_discount_amount(promotion: Promotion, eligible_lines: list[CartLine]) -> float:
    """Discount a promotion gives on the eligible cart lines, in dollars."""
    eligible_total = sum(line.price * line.quantity for line in eligible_lines)
    value = promotion.discount_value or 0.0
    discount_type = promotion.discount_type

    if discount_type == DiscountType.PERCENTAGE:
        discount = eligible_total * value / 100
        if promotion.maximum_discount_amount is not None:
            discount = min(discount, promotion.maximum_discount_amount)
    elif discount_type == DiscountType.FIXED_AMOUNT:
        discount = min(value, eligible_total)
    elif discount_type == DiscountType.FIXED_PRICE:
        discount = sum(max(0.0, line.price - value) * line.quantity for line in eligible_lines)
    elif discount_type == DiscountType.BUY_X_GET_Y:
        discount = _buy_x_get_y_discount(promotion, eligible_lines)
    else:
        # free shipping is applied to the shipping cost, not the items
        discount = 0.0

    return round_money(min(discount, eligible_total))


# =============================================================================
# Service
# =============================================================================

class PromotionsService:
    """
    Reads and manages promotions.

    Example:
        service = PromotionsService()
        result = service.calculate_cart_discount(lines, coupon_code="spring20")
        if not result.valid:
            show_error(result.message)
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        data_store: Optional[DataStore] = None,
    ):
        self.event_bus = event_bus or get_event_bus()
        self.data_store = data_store or get_data_store()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_promotion(self, promotion_id: str) -> Promotion:
        promotion = self.data_store.get_promotion(promotion_id)
        if not promotion:
            raise NotFoundError("Promotion", promotion_id)
        return promotion

    def list_promotions(self, active_only: bool = False, now: Optional[datetime] = None) -> list[Promotion]:
        promotions = self.data_store.get_promotions()
        if active_only:
            now = now or utcnow()
            promotions = [p for p in promotions if p.is_running(now)]
        return sorted(promotions, key=lambda p: (-p.priority, p.name))

    def _running(self, now: datetime) -> list[Promotion]:
        return [p for p in self.data_store.get_promotions() if p.is_running(now)]

    def _category_of(self, product_id: str, category_id: Optional[str] = None) -> Optional[str]:
        if category_id is not None:
            return category_id
        product = self.data_store.get_product(product_id)
        return product.category_id if product else None

    # -------------------------------------------------------------------------
    # Product promotions
    # -------------------------------------------------------------------------

    def applies_to_product(self, promotion: Promotion, product: Product) -> bool:
        """Whether a promotion's scope covers a product (customer scope never does)."""
        if product.category_id and product.category_id in promotion.excluded_category_ids:
            return False
        if promotion.scope == PromotionScope.SITE:
            return True
        if promotion.scope == PromotionScope.PRODUCT:
            return product.id in promotion.product_ids
        if promotion.scope == PromotionScope.CATEGORY:
            return product.category_id is not None and product.category_id in promotion.category_ids
        return False

    def get_product_promotion(self, product_id: str, now: Optional[datetime] = None) -> Optional[Promotion]:
        """Best running automatic promotion for a product, if any."""
        product = self.data_store.get_product(product_id)
        if not product:
            return None
        return self._best_product_promotion(product, self._running(now or utcnow()))

    def get_products_promotions(
        self,
        product_ids: Iterable[str],
        now: Optional[datetime] = None,
    ) -> dict[str, Promotion]:
        """Best promotion per product; products without one are omitted."""
        running = self._running(now or utcnow())
        result = {}
        for product_id in product_ids:
            product = self.data_store.get_product(product_id)
            if not product:
                continue
            promotion = self._best_product_promotion(product, running)
            if promotion:
                result[product_id] = promotion
        return result

    def _best_product_promotion(self, product: Product, running: list[Promotion]) -> Optional[Promotion]:
        candidates = [
            p for p in running
            if p.applies_automatically()
            and p.discount_type in PRODUCT_DISCOUNT_TYPES
            and self.applies_to_product(p, product)
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda p: (p.priority, p.discount_value or 0.0), reverse=True)
        return candidates[0]

    # -------------------------------------------------------------------------
    # Cart discount
    # -------------------------------------------------------------------------

    def calculate_cart_discount(
        self,
        items: list[CartLine],
        coupon_code: Optional[str] = None,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CartDiscount:
        """
        Work out the discount for a cart.

        With a coupon code, that promotion must exist and be running. Without
        one, the best automatic site-wide promotion whose minimum is met is
        used; having none is not an error.
        """
        now = now or utcnow()
        subtotal = round_money(sum(line.price * line.quantity for line in items))
        running = self._running(now)
        code = (coupon_code or "").strip().upper()

        if code:
            matches = [
                p for p in running
                if p.accepts_coupon() and p.coupon_code and p.coupon_code.upper() == code
            ]
            if not matches:
                logger.info(f"Rejected coupon code '{code}'")
                return CartDiscount(valid=False, message="Invalid or expired coupon code")
            promotion = matches[0]
        else:
            candidates = [
                p for p in running
                if p.applies_automatically()
                and p.scope == PromotionScope.SITE
                and (p.minimum_order_amount is None or p.minimum_order_amount <= subtotal)
            ]
            if not candidates:
                return CartDiscount(valid=True, discount=0.0)
            candidates.sort(key=self._automatic_rank, reverse=True)
            promotion = candidates[0]

        rejection = self._check_cart_requirements(promotion, items, subtotal, customer_id, customer_email)
        if rejection:
            return CartDiscount(
                valid=False,
                promotion_id=promotion.id,
                promotion_name=promotion.name,
                message=rejection,
            )

        eligible_lines = [line for line in items if self._line_is_eligible(promotion, line)]
        eligible_total = round_money(sum(line.price * line.quantity for line in eligible_lines))
        discount = calculate_discount_amount(promotion, eligible_lines)

        return CartDiscount(
            valid=True,
            discount=discount,
            promotion_id=promotion.id,
            promotion_name=promotion.name,
            promotion_code=promotion.coupon_code,
            discount_type=promotion.discount_type,
            discount_value=promotion.discount_value,
            eligible_total=eligible_total,
            description=_cart_description(promotion),
            free_shipping=promotion.discount_type == DiscountType.FREE_SHIPPING,
        )

    @staticmethod
    def _automatic_rank(promotion: Promotion) -> tuple[int, float]:
        if promotion.discount_type == DiscountType.FREE_SHIPPING:
            return promotion.priority, 0.0
        return promotion.priority, promotion.discount_value or 0.0

    def _check_cart_requirements(
        self,
        promotion: Promotion,
        items: list[CartLine],
        subtotal: float,
        customer_id: Optional[str],
        customer_email: Optional[str],
    ) -> Optional[str]:
        """Message explaining why the cart does not qualify, or None."""
        if promotion.minimum_order_amount is not None and subtotal < promotion.minimum_order_amount:
            return f"Minimum order of ${promotion.minimum_order_amount:.2f} required"

        if promotion.minimum_quantity is not None:
            quantity = sum(line.quantity for line in items)
            if quantity < promotion.minimum_quantity:
                return f"Minimum of {promotion.minimum_quantity} items required"

        email = (customer_email or "").strip().lower()

        if promotion.scope == PromotionScope.CUSTOMER:
            allowed_emails = {e.strip().lower() for e in promotion.customer_emails}
            if not (
                (customer_id and customer_id in promotion.customer_ids)
                or (email and email in allowed_emails)
            ):
                return "This promotion is not available for your account"

        if promotion.max_uses_per_customer is not None and (customer_id or email):
            used = self.count_customer_usage(promotion.id, customer_id, email)
            if used >= promotion.max_uses_per_customer:
                return "You have already used this promotion"

        return None

    def _line_is_eligible(self, promotion: Promotion, line: CartLine) -> bool:
        category_id = self._category_of(line.product_id, line.category_id)
        if category_id and category_id in promotion.excluded_category_ids:
            return False
        if promotion.scope == PromotionScope.CATEGORY:
            return category_id is not None and category_id in promotion.category_ids
        if promotion.scope == PromotionScope.PRODUCT:
            return line.product_id in promotion.product_ids
        return True

    def count_customer_usage(
        self,
        promotion_id: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> int:
        email = (customer_email or "").strip().lower()
        count = 0
        for usage in self.data_store.get_promotion_usage(promotion_id):
            if customer_id and usage.customer_id == customer_id:
                count += 1
            elif email and usage.customer_email and usage.customer_email.lower() == email:
                count += 1
        return count

    # -------------------------------------------------------------------------
    # Coupons and banners
    # -------------------------------------------------------------------------

    def validate_coupon_code(self, code: Optional[str], now: Optional[datetime] = None) -> CouponValidation:
        """Check a coupon code on its own, before it is applied to a cart."""
        if not code or not code.strip():
            return CouponValidation(valid=False, message="Please enter a coupon code")

        promotion = self.data_store.find_promotion_by_code(code)
        if not promotion or not promotion.accepts_coupon():
            return CouponValidation(valid=False, message="Invalid coupon code")

        now = now or utcnow()
        if not promotion.is_active:
            return CouponValidation(valid=False, message="This coupon is no longer active")
        if not promotion.has_started(now):
            return CouponValidation(valid=False, message="This coupon is not yet active")
        if promotion.has_ended(now):
            return CouponValidation(valid=False, message="This coupon has expired")
        if promotion.usage_exhausted():
            return CouponValidation(valid=False, message="This coupon has reached its usage limit")

        return CouponValidation(
            valid=True,
            promotion_id=promotion.id,
            promotion_name=promotion.name,
            discount_type=promotion.discount_type,
            discount_value=promotion.discount_value,
            minimum_order_amount=promotion.minimum_order_amount,
            description=_cart_description(promotion),
        )

    def get_active_banners(self, now: Optional[datetime] = None) -> list[PromotionBanner]:
        now = now or utcnow()
        promotions = [
            p for p in self.data_store.get_promotions()
            if p.is_active
            and p.show_banner
            and p.banner_text
            and p.has_started(now)
            and not p.has_ended(now)
        ]
        promotions.sort(key=lambda p: (p.priority, p.created_at), reverse=True)
        return [
            PromotionBanner(
                promotion_id=p.id,
                name=p.name,
                banner_text=p.banner_text,
                banner_bg_color=p.banner_bg_color,
                banner_text_color=p.banner_text_color,
                code=p.coupon_code,
                ends_at=p.ends_at,
                priority=p.priority,
            )
            for p in promotions[:MAX_BANNERS]
        ]

    def record_promotion_usage(
        self,
        promotion_id: str,
        order_id: Optional[str],
        discount_amount: float,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> PromotionUsage:
        promotion = self.get_promotion(promotion_id)
        usage = PromotionUsage(
            id=new_id("usage"),
            promotion_id=promotion_id,
            order_id=order_id,
            customer_id=customer_id,
            customer_email=customer_email.strip().lower() if customer_email else None,
            discount_amount=discount_amount,
        )
        self.data_store.save("promotion_usage", usage)

        promotion.times_used += 1
        promotion.total_discount_given = round_money(promotion.total_discount_given + discount_amount)
        self.data_store.save_promotion(promotion)

        logger.info(
            f"Recorded use of promotion {promotion.name} on order {order_id}: "
            f"${discount_amount:.2f} ({promotion.times_used} uses)"
        )
        return usage

    # -------------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------------

    def validate_promotion(self, promotion: Promotion) -> dict[str, str]:
        """Field errors for a promotion about to be saved; empty when valid."""
        errors: dict[str, str] = {}

        if not promotion.name or not promotion.name.strip():
            errors["name"] = "Name is required"

        value = promotion.discount_value
        if promotion.discount_type == DiscountType.PERCENTAGE:
            if value is None or not 0 < value <= 100:
                errors["discount_value"] = "Percentage must be between 0 and 100"
        elif promotion.discount_type in (DiscountType.FIXED_AMOUNT, DiscountType.FIXED_PRICE):
            if value is None or value <= 0:
                errors["discount_value"] = "Discount value must be greater than 0"
        elif promotion.discount_type == DiscountType.BUY_X_GET_Y:
            if not promotion.buy_quantity or promotion.buy_quantity < 1:
                errors["buy_quantity"] = "Buy quantity must be at least 1"
            if not promotion.get_quantity or promotion.get_quantity < 1:
                errors["get_quantity"] = "Get quantity must be at least 1"
            percent = promotion.get_discount_percent
            if percent is not None and not 0 < percent <= 100:
                errors["get_discount_percent"] = "Percentage must be between 0 and 100"

        if promotion.activation_type in (ActivationType.COUPON, ActivationType.BOTH):
            if not promotion.coupon_code:
                errors["coupon_code"] = "Coupon code is required for coupon promotions"
        if promotion.coupon_code:
            existing = self.data_store.find_promotion_by_code(promotion.coupon_code)
            if existing and existing.id != promotion.id:
                errors["coupon_code"] = "This coupon code is already in use"

        if promotion.ends_at is not None and promotion.ends_at <= promotion.starts_at:
            errors["ends_at"] = "End date must be after start date"

        if promotion.scope == PromotionScope.CATEGORY and not promotion.category_ids:
            errors["category_ids"] = "Select at least one category"
        elif promotion.scope == PromotionScope.PRODUCT and not promotion.product_ids:
            errors["product_ids"] = "Select at least one product"
        elif promotion.scope == PromotionScope.CUSTOMER and not (
            promotion.customer_ids or promotion.customer_emails
        ):
            errors["customer_ids"] = "Select at least one customer"

        return errors

    def _save_validated(self, promotion: Promotion) -> Promotion:
        errors = self.validate_promotion(promotion)
        if errors:
            logger.warning(f"Promotion '{promotion.name}' rejected: {errors}")
            raise ValidationError(errors)
        return self.data_store.save_promotion(promotion)

    def create_promotion(self, data: dict[str, Any]) -> Promotion:
        data = dict(data)
        if data.get("coupon_code"):
            data["coupon_code"] = data["coupon_code"].strip().upper()
        promotion = build_model(Promotion, {**data, "id": new_id("promo")})
        self._save_validated(promotion)
        logger.info(f"Created promotion {promotion.id} '{promotion.name}'")
        return promotion

    def update_promotion(self, promotion_id: str, changes: dict[str, Any]) -> Promotion:
        current = self.get_promotion(promotion_id)
        merged = current.model_dump()
        merged.update(changes)
        merged["id"] = promotion_id
        if merged.get("coupon_code"):
            merged["coupon_code"] = merged["coupon_code"].strip().upper()
        promotion = build_model(Promotion, merged)
        self._save_validated(promotion)
        logger.info(f"Updated promotion {promotion_id}: {sorted(changes)}")
        return promotion

    def deactivate_promotion(self, promotion_id: str) -> Promotion:
        promotion = self.get_promotion(promotion_id)
        promotion.is_active = False
        self.data_store.save_promotion(promotion)
        logger.info(f"Deactivated promotion {promotion_id}")
        return promotion

    def activate_promotion(self, promotion_id: str) -> Promotion:
        """Switch a promotion on and announce it."""
        promotion = self.get_promotion(promotion_id)
        if promotion.is_active:
            return promotion
        promotion.is_active = True
        self.data_store.save_promotion(promotion)
        logger.info(f"Activated promotion {promotion_id}")

        description = _cart_description(promotion)
        self.event_bus.publish(promotion_activated(promotion, description=description))
        return promotion
