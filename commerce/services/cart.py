"""
Shopping carts, one per customer.
"""

import logging
from typing import Optional

from storefront.data_store import DataStore, get_data_store
from storefront.errors import NotFoundError, ValidationError
from storefront.models import Cart, CartItem, CartLine, round_money, utcnow

logger = logging.getLogger("cart_service")


class CartService:
    def __init__(self, data_store: Optional[DataStore] = None):
        self.data_store = data_store or get_data_store()

    def get_cart(self, customer_id: str) -> Cart:
        """The customer's cart; an empty one if they have none yet."""
        return self.data_store.get_cart(customer_id) or Cart(customer_id=customer_id)

    def _save(self, cart: Cart) -> Cart:
        cart.updated_at = utcnow()
        return self.data_store.save_cart(cart)

    def add_item(self, customer_id: str, product_id: str, quantity: int = 1) -> Cart:
        if quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1"})

        product = self.data_store.get_product(product_id)
        if not product or not product.is_active:
            raise NotFoundError("Product", product_id)

        cart = self.get_cart(customer_id)
        for item in cart.items:
            if item.product_id == product_id:
                item.quantity += quantity
                break
        else:
            cart.items.append(CartItem(product_id=product_id, quantity=quantity))

        logger.info(f"Added {quantity} x {product_id} to cart of {customer_id}")
        return self._save(cart)

    def update_quantity(self, customer_id: str, product_id: str, quantity: int) -> Cart:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            return self.remove_item(customer_id, product_id)

        cart = self.get_cart(customer_id)
        for item in cart.items:
            if item.product_id == product_id:
                item.quantity = quantity
                return self._save(cart)
        raise NotFoundError("Cart item", product_id)

    def remove_item(self, customer_id: str, product_id: str) -> Cart:
        cart = self.get_cart(customer_id)
        cart.items = [item for item in cart.items if item.product_id != product_id]
        return self._save(cart)

    def clear_cart(self, customer_id: str) -> Cart:
        cart = self.get_cart(customer_id)
        cart.items = []
        logger.info(f"Cleared cart of {customer_id}")
        return self._save(cart)

    def cart_lines(self, cart: Cart) -> list[CartLine]:
        """
        Price each cart item at the current catalog price.

        Items whose product has been removed from the catalog are skipped.
        """
        lines = []
        for item in cart.items:
            product = self.data_store.get_product(item.product_id)
            if not product:
                logger.warning(f"Cart of {cart.customer_id} references missing product {item.product_id}")
                continue
            lines.append(CartLine(
                product_id=product.id,
                name=product.name,
                price=product.price,
                quantity=item.quantity,
                category_id=product.category_id,
            ))
        return lines

    def cart_subtotal(self, cart: Cart) -> float:
        return round_money(sum(line.line_total for line in self.cart_lines(cart)))
