"""
Catalog service: products, categories, prices and stock.

Price and stock changes are published on the event bus. The catalog does not
know who reacts to them; back-in-stock emails, for example, are sent by the
notification service when a StockChanged event shows stock returning.
"""

import logging
from typing import Optional

from commerce.event_bus import EventBus, get_event_bus
from commerce.events import price_changed, stock_changed
from commerce.services.promotions import PromotionsService, calculate_sale_price, calculate_savings
from storefront.config import get_settings
from storefront.data_store import DataStore, get_data_store
from storefront.errors import NotFoundError, ValidationError
from storefront.models import Category, Product, ProductListing, round_money

logger = logging.getLogger("catalog_service")


class CatalogService:
    """
    Catalog reads and inventory/price updates.

    Example:
        catalog = CatalogService()
        catalog.adjust_stock("prod-fern", 24, reason="restock")
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        data_store: Optional[DataStore] = None,
        promotions: Optional[PromotionsService] = None,
    ):
        self.event_bus = event_bus or get_event_bus()
        self.data_store = data_store or get_data_store()
        self.promotions = promotions or PromotionsService(self.event_bus, self.data_store)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_product(self, product_id: str) -> Product:
        product = self.data_store.get_product(product_id)
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    def list_products(
        self,
        category_id: Optional[str] = None,
        active_only: bool = True,
        search: Optional[str] = None,
    ) -> list[Product]:
        products = self.data_store.get_products()
        if active_only:
            products = [p for p in products if p.is_active]
        if category_id:
            category_ids = {category_id} | {c.id for c in self._children_of(category_id)}
            products = [p for p in products if p.category_id in category_ids]
        if search:
            term = search.strip().lower()
            products = [
                p for p in products
                if term in p.name.lower() or (p.description and term in p.description.lower())
            ]
        return sorted(products, key=lambda p: p.name)

    def list_categories(self) -> list[Category]:
        return self.data_store.get_categories()

    def _children_of(self, category_id: str) -> list[Category]:
        return [c for c in self.data_store.get_categories() if c.parent_id == category_id]

    def get_category_tree(self) -> list[dict]:
        """Top-level categories, each with its direct children."""
        categories = self.data_store.get_categories()
        return [
            {"category": parent, "children": self._children_of(parent.id)}
            for parent in categories
            if parent.parent_id is None
        ]

    def get_low_stock_products(self, threshold: Optional[int] = None) -> list[Product]:
        """Active, inventory-tracked products at or below the threshold, lowest stock first."""
        if threshold is None:
            threshold = get_settings().LOW_STOCK_THRESHOLD
        products = [
            p for p in self.data_store.get_products()
            if p.is_active and p.track_inventory and p.stock_quantity <= threshold
        ]
        return sorted(products, key=lambda p: (p.stock_quantity, p.name))

    def get_product_listing(self, product_id: str) -> ProductListing:
        """Storefront view of a product, including any automatic sale price."""
        product = self.get_product(product_id)
        listing = ProductListing(
            product_id=product.id,
            name=product.name,
            price=product.price,
            compare_at_price=product.compare_at_price,
            stock_status=product.get_stock_status(get_settings().LOW_STOCK_THRESHOLD),
            local_pickup_only=product.local_pickup_only,
        )

        promotion = self.promotions.get_product_promotion(product_id)
        if promotion:
            sale_price = calculate_sale_price(product.price, promotion.discount_type, promotion.discount_value)
            if sale_price < product.price:
                amount, percent = calculate_savings(product.price, sale_price)
                listing.sale_price = sale_price
                listing.savings_amount = amount
                listing.savings_percent = percent
                listing.badge_text = promotion.badge_text
                listing.promotion_id = promotion.id
        return listing

    # =========================================================================
    # Updates
    # =========================================================================

    def update_price(self, product_id: str, new_price: float) -> Product:
        if new_price < 0:
            raise ValidationError({"price": "Price cannot be negative"})

        product = self.get_product(product_id)
        previous_price = product.price
        new_price = round_money(new_price)

        if previous_price == new_price:
            logger.info(f"Price unchanged for {product_id}: ${new_price:.2f}")
            return product

        product.price = new_price
        self.data_store.save_product(product)

        change_type = "decreased" if new_price < previous_price else "increased"
        logger.info(
            f"Price {change_type} for {product.name}: "
            f"${previous_price:.2f} -> ${new_price:.2f}"
        )
        self.event_bus.publish(price_changed(product, previous_price, new_price))
        return product

    def adjust_stock(self, product_id: str, delta: int, reason: str = "adjustment") -> Product:
        """Add (positive delta) or remove (negative delta) units."""
        product = self.get_product(product_id)
        return self._apply_stock(product, product.stock_quantity + delta, reason)

    def set_stock(self, product_id: str, quantity: int, reason: str = "count") -> Product:
        product = self.get_product(product_id)
        return self._apply_stock(product, quantity, reason)

    def _apply_stock(self, product: Product, new_quantity: int, reason: str) -> Product:
        if product.track_inventory and new_quantity < 0:
            raise ValidationError(
                {"stock_quantity": f"Only {product.stock_quantity} units of {product.name} in stock"}
            )

        previous_quantity = product.stock_quantity
        if previous_quantity == new_quantity:
            return product

        product.stock_quantity = new_quantity
        self.data_store.save_product(product)
        logger.info(f"Stock for {product.name}: {previous_quantity} -> {new_quantity} ({reason})")

        self.event_bus.publish(stock_changed(product, previous_quantity, new_quantity, reason))
        return product
