"""
Tests for the catalog service.
"""

import pytest

from commerce.events import EventTypes
from commerce.services.catalog import CatalogService
from storefront.errors import NotFoundError, ValidationError


class TestCatalogReads:
    def test_list_products_hides_inactive(self, catalog: CatalogService):
        ids = [p.id for p in catalog.list_products()]
        assert "prod-cactus" not in ids
        assert "prod-cactus" in [p.id for p in catalog.list_products(active_only=False)]

    def test_category_includes_children(self, catalog: CatalogService):
        """Listing a parent category also lists products of its subcategories."""
        names = [p.name for p in catalog.list_products(category_id="cat-houseplants")]
        assert names == ["Boston Fern", "Golden Pothos", "Monstera Deliciosa", "Snake Plant"]

    def test_search(self, catalog: CatalogService):
        assert [p.id for p in catalog.list_products(search="SHADE")] == ["prod-fern"]

    def test_category_tree(self, catalog: CatalogService):
        tree = catalog.get_category_tree()
        houseplants = tree[0]
        assert houseplants["category"].id == "cat-houseplants"
        assert [c.id for c in houseplants["children"]] == ["cat-ferns"]
        assert len(tree) == 4

    def test_missing_product(self, catalog: CatalogService):
        with pytest.raises(NotFoundError):
            catalog.get_product("prod-missing")

    def test_low_stock(self, catalog: CatalogService):
        products = catalog.get_low_stock_products()
        assert [p.id for p in products] == ["prod-snake", "prod-monstera", "prod-maple"]
        assert [p.id for p in catalog.get_low_stock_products(threshold=0)] == ["prod-snake"]


class TestProductListing:
    def test_sale_price_from_category_promotion(self, catalog: CatalogService):
        listing = catalog.get_product_listing("prod-fern")

        assert listing.price == 24.99
        assert listing.sale_price == 21.24
        assert listing.savings_amount == 3.75
        assert listing.savings_percent == 15
        assert listing.badge_text == "15% OFF"
        assert listing.promotion_id == "promo-ferns15"

    def test_no_promotion(self, catalog: CatalogService):
        listing = catalog.get_product_listing("prod-pothos")

        assert listing.sale_price is None
        assert listing.compare_at_price == 22.00
        assert listing.stock_status == "in_stock"

    def test_stock_status_and_pickup_flag(self, catalog: CatalogService):
        assert catalog.get_product_listing("prod-snake").stock_status == "out_of_stock"
        maple = catalog.get_product_listing("prod-maple")
        assert maple.stock_status == "low_stock"
        assert maple.local_pickup_only is True


class TestPriceUpdates:
    def test_update_price_publishes_event(self, catalog: CatalogService, event_bus):
        product = catalog.update_price("prod-monstera", 34.995)

        assert product.price == 35.0
        events = event_bus.get_event_log(EventTypes.PRICE_CHANGED)
        assert len(events) == 1
        assert events[0].payload["previous_price"] == 39.99
        assert events[0].payload["is_decrease"] is True

    def test_unchanged_price_publishes_nothing(self, catalog: CatalogService, event_bus):
        catalog.update_price("prod-monstera", 39.99)
        assert event_bus.get_event_log() == []

    def test_negative_price_rejected(self, catalog: CatalogService):
        with pytest.raises(ValidationError) as exc_info:
            catalog.update_price("prod-monstera", -1)
        assert exc_info.value.errors == {"price": "Price cannot be negative"}


class TestStockUpdates:
    def test_restock_publishes_back_in_stock(self, catalog: CatalogService, event_bus):
        product = catalog.adjust_stock("prod-snake", 12, reason="restock")

        assert product.stock_quantity == 12
        event = event_bus.get_event_log(EventTypes.STOCK_CHANGED)[0]
        assert event.payload["back_in_stock"] is True
        assert event.payload["reason"] == "restock"

    def test_cannot_go_negative(self, catalog: CatalogService, event_bus):
        with pytest.raises(ValidationError):
            catalog.adjust_stock("prod-monstera", -6)
        assert catalog.get_product("prod-monstera").stock_quantity == 5
        assert event_bus.get_event_log() == []

    def test_untracked_products_may_go_negative(self, catalog: CatalogService):
        assert catalog.adjust_stock("prod-trowel", -2).stock_quantity == -2

    def test_set_stock(self, catalog: CatalogService, event_bus):
        catalog.set_stock("prod-fern", 30)
        assert event_bus.get_event_log() == []

        catalog.set_stock("prod-fern", 18, reason="count")
        assert catalog.get_product("prod-fern").stock_quantity == 18
