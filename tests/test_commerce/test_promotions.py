"""
Tests for the promotions service.

These tests cover the pricing helpers, product-level promotions, the cart
discount calculation, coupon validation, banners and the admin operations.
"""

from datetime import datetime, timezone

import pytest

from commerce.events import EventTypes
from commerce.services.promotions import (
    PromotionsService,
    calculate_discount_amount,
    calculate_sale_price,
    calculate_savings,
    format_discount_description,
    generate_coupon_code,
)
from storefront.errors import NotFoundError, ValidationError
from storefront.models import CartLine, Promotion


def fern_and_monstera() -> list[CartLine]:
    """Alice's saved cart, priced."""
    return [
        CartLine(product_id="prod-fern", name="Boston Fern", price=24.99, quantity=2, category_id="cat-ferns"),
        CartLine(product_id="prod-monstera", name="Monstera Deliciosa", price=39.99, quantity=1),
    ]


def seed_packets(quantity: int) -> list[CartLine]:
    return [CartLine(product_id="prod-tomato-seeds", name="Heirloom Tomato Seeds", price=4.50, quantity=quantity)]


class TestPricingHelpers:
    """Tests for the pure pricing functions."""

    def test_sale_price(self):
        assert calculate_sale_price(24.99, "percentage", 15) == 21.24
        assert calculate_sale_price(10.0, "fixed_amount", 15) == 0.0
        assert calculate_sale_price(24.99, "fixed_price", 19.99) == 19.99
        assert calculate_sale_price(24.99, "free_shipping", None) == 24.99

    def test_savings(self):
        assert calculate_savings(24.99, 21.24) == (3.75, 15)
        assert calculate_savings(0.0, 0.0) == (0.0, 0)

    def test_discount_descriptions(self):
        assert format_discount_description("percentage", 20) == "20% off"
        assert format_discount_description("fixed_amount", 10) == "$10.00 off"
        assert format_discount_description("fixed_price", 5) == "Now $5.00"
        assert format_discount_description("free_shipping", None) == "Free shipping"
        assert format_discount_description("buy_x_get_y", None) == "Special offer"

    def test_coupon_code_alphabet(self):
        code = generate_coupon_code()
        assert len(code) == 8
        assert code.isalnum() and code.upper() == code

    def test_coupon_code_uses_secrets(self, monkeypatch):
        monkeypatch.setattr("commerce.services.promotions.secrets.choice", lambda alphabet: "Z")
        assert generate_coupon_code(4) == "ZZZZ"

    def test_percentage_capped_by_maximum(self):
        promotion = Promotion(
            id="p", name="Big", discount_type="percentage", discount_value=50, maximum_discount_amount=20
        )
        lines = [CartLine(product_id="x", price=100, quantity=1)]
        assert calculate_discount_amount(promotion, lines) == 20.0

    def test_fixed_amount_never_exceeds_total(self):
        promotion = Promotion(id="p", name="Ten off", discount_type="fixed_amount", discount_value=10)
        lines = [CartLine(product_id="x", price=4.50, quantity=1)]
        assert calculate_discount_amount(promotion, lines) == 4.50

    def test_fixed_price_per_unit(self):
        promotion = Promotion(id="p", name="All $10", discount_type="fixed_price", discount_value=10)
        lines = [
            CartLine(product_id="a", price=24.99, quantity=2),
            CartLine(product_id="b", price=8.00, quantity=1),
        ]
        assert calculate_discount_amount(promotion, lines) == 29.98

    def test_buy_x_get_y_discounts_cheapest_units(self):
        promotion = Promotion(
            id="p", name="B2G1", discount_type="buy_x_get_y", buy_quantity=2, get_quantity=1
        )
        lines = [
            CartLine(product_id="a", price=20.0, quantity=2),
            CartLine(product_id="b", price=5.0, quantity=1),
        ]
        assert calculate_discount_amount(promotion, lines) == 5.0

    def test_buy_x_get_y_partial_discount(self):
        promotion = Promotion(
            id="p", name="B1G1 half", discount_type="buy_x_get_y",
            buy_quantity=1, get_quantity=1, get_discount_percent=50,
        )
        lines = [CartLine(product_id="a", price=10.0, quantity=2)]
        assert calculate_discount_amount(promotion, lines) == 5.0


class TestProductPromotions:
    def test_category_promotion_applies(self, promotions: PromotionsService, now):
        promotion = promotions.get_product_promotion("prod-fern", now=now)
        assert promotion is not None
        assert promotion.id == "promo-ferns15"

    def test_no_promotion(self, promotions: PromotionsService, now):
        assert promotions.get_product_promotion("prod-pothos", now=now) is None
        assert promotions.get_product_promotion("prod-missing", now=now) is None

    def test_batch_lookup_omits_products_without_promotion(self, promotions: PromotionsService, now):
        result = promotions.get_products_promotions(["prod-fern", "prod-pothos", "prod-missing"], now=now)
        assert list(result) == ["prod-fern"]

    def test_excluded_category(self, promotions: PromotionsService, data_store):
        promotion = Promotion(
            id="p", name="Site", discount_type="percentage", discount_value=10,
            excluded_category_ids=["cat-ferns"],
        )
        assert not promotions.applies_to_product(promotion, data_store.get_product("prod-fern"))
        assert promotions.applies_to_product(promotion, data_store.get_product("prod-monstera"))


class TestCartDiscount:
    """Tests for calculate_cart_discount."""

    def test_percentage_coupon(self, promotions: PromotionsService, alice_customer_id, now):
        result = promotions.calculate_cart_discount(
            fern_and_monstera(), coupon_code=" spring20 ", customer_id=alice_customer_id, now=now
        )

        assert result.valid is True
        assert result.discount == 17.99
        assert result.promotion_id == "promo-spring20"
        assert result.promotion_code == "SPRING20"
        assert result.eligible_total == 89.97
        assert result.description == "20% off"

    def test_automatic_free_shipping_over_minimum(self, promotions: PromotionsService, now):
        result = promotions.calculate_cart_discount(fern_and_monstera(), now=now)

        assert result.valid is True
        assert result.promotion_id == "promo-freeship"
        assert result.free_shipping is True
        assert result.discount == 0.0

    def test_no_automatic_promotion_below_minimum(self, promotions: PromotionsService, now):
        result = promotions.calculate_cart_discount(seed_packets(2), now=now)

        assert result.valid is True
        assert result.promotion_id is None
        assert result.discount == 0.0

    def test_unknown_or_expired_coupon(self, promotions: PromotionsService, now):
        for code in ("NOPE", "SUMMER24", "CLEAR50", "FLASH"):
            result = promotions.calculate_cart_discount(fern_and_monstera(), coupon_code=code, now=now)
            assert result.valid is False
            assert result.message == "Invalid or expired coupon code"

    def test_customer_scoped_coupon_with_cap(self, promotions: PromotionsService, carol_customer_id, now):
        lines = [CartLine(product_id="prod-maple", name="Japanese Maple", price=89.00, quantity=2)]
        result = promotions.calculate_cart_discount(
            lines, coupon_code="VIP25", customer_id=carol_customer_id, now=now
        )
        assert result.valid is True
        assert result.discount == 30.0

    def test_customer_scope_matches_email_case_insensitively(self, promotions: PromotionsService, now):
        result = promotions.calculate_cart_discount(
            fern_and_monstera(), coupon_code="VIP25", customer_email="vip.gardener@EXAMPLE.com", now=now
        )
        assert result.valid is True

    def test_customer_scope_rejects_others(self, promotions: PromotionsService, bob_customer_id, now):
        result = promotions.calculate_cart_discount(
            fern_and_monstera(), coupon_code="VIP25", customer_id=bob_customer_id, now=now
        )
        assert result.valid is False
        assert result.message == "This promotion is not available for your account"

    def test_buy_two_get_one_seed_coupon(self, promotions: PromotionsService, now):
        result = promotions.calculate_cart_discount(seed_packets(6), coupon_code="SEEDS", now=now)
        assert result.valid is True
        assert result.discount == 9.0

    def test_minimum_quantity(self, promotions: PromotionsService, now):
        result = promotions.calculate_cart_discount(seed_packets(2), coupon_code="SEEDS", now=now)
        assert result.valid is False
        assert result.message == "Minimum of 3 items required"

    def test_category_coupon_only_discounts_matching_lines(self, promotions: PromotionsService, now):
        lines = seed_packets(3) + fern_and_monstera()
        result = promotions.calculate_cart_discount(lines, coupon_code="SEEDS", now=now)
        assert result.eligible_total == 13.5
        assert result.discount == 4.5

    def test_minimum_order_amount(self, promotions: PromotionsService, bob_customer_id, now):
        result = promotions.calculate_cart_discount(
            seed_packets(2), coupon_code="WELCOME10", customer_id=bob_customer_id, now=now
        )
        assert result.valid is False
        assert result.message == "Minimum order of $50.00 required"

    def test_per_customer_limit(self, promotions: PromotionsService, alice_customer_id, bob_customer_id, now):
        used = promotions.calculate_cart_discount(
            fern_and_monstera(), coupon_code="WELCOME10", customer_id=alice_customer_id, now=now
        )
        fresh = promotions.calculate_cart_discount(
            fern_and_monstera(), coupon_code="WELCOME10", customer_id=bob_customer_id, now=now
        )

        assert used.valid is False
        assert used.message == "You have already used this promotion"
        assert fresh.valid is True
        assert fresh.discount == 10.0


class TestCouponValidation:
    @pytest.mark.parametrize("code, message", [
        ("", "Please enter a coupon code"),
        ("NOPE", "Invalid coupon code"),
        ("SUMMER24", "This coupon has expired"),
        ("HOLIDAY99", "This coupon is not yet active"),
        ("CLEAR50", "This coupon is no longer active"),
        ("FLASH", "This coupon has reached its usage limit"),
    ])
    def test_rejections(self, promotions: PromotionsService, now, code, message):
        result = promotions.validate_coupon_code(code, now=now)
        assert result.valid is False
        assert result.message == message

    def test_automatic_promotion_has_no_coupon(self, promotions: PromotionsService, now):
        assert promotions.validate_coupon_code("promo-freeship", now=now).valid is False

    def test_valid_coupon(self, promotions: PromotionsService, now):
        result = promotions.validate_coupon_code("welcome10", now=now)

        assert result.valid is True
        assert result.promotion_id == "promo-welcome10"
        assert result.minimum_order_amount == 50
        assert result.description == "$10.00 off"


class TestBanners:
    def test_active_banners_by_priority(self, promotions: PromotionsService, now):
        banners = promotions.get_active_banners(now=now)

        assert [b.promotion_id for b in banners] == ["promo-spring20", "promo-freeship"]
        assert banners[0].code == "SPRING20"
        assert banners[0].banner_bg_color == "#166534"


class TestPromotionAdmin:
    def test_get_missing(self, promotions: PromotionsService):
        with pytest.raises(NotFoundError):
            promotions.get_promotion("promo-missing")

    def test_list_active_only(self, promotions: PromotionsService, now):
        ids = [p.id for p in promotions.list_promotions(active_only=True, now=now)]
        assert ids[0] == "promo-spring20"
        assert "promo-summer24" not in ids
        assert "promo-clearance" not in ids

    def test_create_normalizes_code(self, promotions: PromotionsService, data_store):
        promotion = promotions.create_promotion({
            "name": "Autumn Bulbs",
            "coupon_code": " bulbs10 ",
            "discount_type": "percentage",
            "discount_value": 10,
            "activation_type": "coupon",
        })
        assert promotion.coupon_code == "BULBS10"
        assert data_store.find_promotion_by_code("bulbs10").id == promotion.id

    def test_create_rejects_invalid_fields(self, promotions: PromotionsService):
        with pytest.raises(ValidationError) as exc_info:
            promotions.create_promotion({
                "name": "Broken",
                "coupon_code": "spring20",
                "discount_type": "percentage",
                "discount_value": 150,
                "scope": "category",
                "starts_at": datetime(2026, 10, 1, tzinfo=timezone.utc),
                "ends_at": datetime(2026, 9, 1, tzinfo=timezone.utc),
            })

        errors = exc_info.value.errors
        assert errors["discount_value"] == "Percentage must be between 0 and 100"
        assert errors["coupon_code"] == "This coupon code is already in use"
        assert errors["ends_at"] == "End date must be after start date"
        assert errors["category_ids"] == "Select at least one category"

    def test_missing_required_fields(self, promotions: PromotionsService, data_store):
        count = len(data_store.get_promotions())
        with pytest.raises(ValidationError) as exc_info:
            promotions.create_promotion({"discount_value": 10})

        assert exc_info.value.errors == {
            "name": "This field is required",
            "discount_type": "This field is required",
        }
        assert len(data_store.get_promotions()) == count

    def test_coupon_promotion_needs_code(self, promotions: PromotionsService):
        with pytest.raises(ValidationError) as exc_info:
            promotions.create_promotion({
                "name": "No code", "discount_type": "fixed_amount", "discount_value": 5,
                "activation_type": "coupon",
            })
        assert "coupon_code" in exc_info.value.errors

    def test_update_keeps_own_code(self, promotions: PromotionsService):
        updated = promotions.update_promotion("promo-spring20", {"discount_value": 25})
        assert updated.discount_value == 25
        assert updated.coupon_code == "SPRING20"

    def test_activate_publishes_event(self, promotions: PromotionsService, event_bus):
        promotion = promotions.activate_promotion("promo-clearance")

        assert promotion.is_active is True
        events = event_bus.get_event_log(EventTypes.PROMOTION_ACTIVATED)
        assert len(events) == 1
        assert events[0].payload["coupon_code"] == "CLEAR50"
        assert events[0].payload["description"] == "50% off"

    def test_activate_already_active_is_silent(self, promotions: PromotionsService, event_bus):
        promotions.activate_promotion("promo-spring20")
        assert event_bus.get_event_log(EventTypes.PROMOTION_ACTIVATED) == []

    def test_deactivate(self, promotions: PromotionsService, now):
        promotions.deactivate_promotion("promo-spring20")
        result = promotions.validate_coupon_code("SPRING20", now=now)
        assert result.message == "This coupon is no longer active"

    def test_record_usage(self, promotions: PromotionsService, data_store):
        promotions.record_promotion_usage(
            "promo-spring20", "ord-2000", 12.5, customer_email=" Carol.Davis@Example.com "
        )

        promotion = data_store.get_promotion("promo-spring20")
        assert promotion.times_used == 2
        assert promotion.total_discount_given == 23.1
        assert promotions.count_customer_usage("promo-spring20", customer_email="carol.davis@example.com") == 1
