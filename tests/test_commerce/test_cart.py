"""
Tests for the cart service.
"""

import pytest

from commerce.services.cart import CartService
from storefront.errors import NotFoundError, ValidationError


class TestCartService:
    def test_saved_cart(self, carts: CartService, alice_customer_id):
        cart = carts.get_cart(alice_customer_id)
        assert [item.product_id for item in cart.items] == ["prod-fern", "prod-monstera"]
        assert cart.item_count == 3

    def test_missing_cart_is_empty(self, carts: CartService, david_customer_id):
        cart = carts.get_cart(david_customer_id)
        assert cart.items == []

    def test_add_merges_existing_line(self, carts: CartService, alice_customer_id):
        cart = carts.add_item(alice_customer_id, "prod-fern", 1)
        assert cart.items[0].quantity == 3
        assert len(cart.items) == 2

    def test_add_new_line(self, carts: CartService, david_customer_id, data_store):
        carts.add_item(david_customer_id, "prod-lavender", 2)
        assert data_store.get_cart(david_customer_id).item_count == 2

    def test_add_rejects_inactive_and_bad_quantity(self, carts: CartService, david_customer_id):
        with pytest.raises(NotFoundError):
            carts.add_item(david_customer_id, "prod-cactus")
        with pytest.raises(ValidationError):
            carts.add_item(david_customer_id, "prod-fern", 0)

    def test_update_quantity(self, carts: CartService, alice_customer_id):
        cart = carts.update_quantity(alice_customer_id, "prod-monstera", 4)
        assert cart.item_count == 6

    def test_update_to_zero_removes_line(self, carts: CartService, alice_customer_id):
        cart = carts.update_quantity(alice_customer_id, "prod-monstera", 0)
        assert [item.product_id for item in cart.items] == ["prod-fern"]

    def test_update_missing_line(self, carts: CartService, alice_customer_id):
        with pytest.raises(NotFoundError):
            carts.update_quantity(alice_customer_id, "prod-lavender", 2)

    def test_clear(self, carts: CartService, alice_customer_id):
        assert carts.clear_cart(alice_customer_id).items == []


class TestCartPricing:
    def test_lines_priced_from_catalog(self, carts: CartService, alice_customer_id):
        lines = carts.cart_lines(carts.get_cart(alice_customer_id))

        assert [(l.product_id, l.price, l.quantity) for l in lines] == [
            ("prod-fern", 24.99, 2),
            ("prod-monstera", 39.99, 1),
        ]
        assert lines[0].category_id == "cat-ferns"

    def test_subtotal(self, carts: CartService, alice_customer_id):
        assert carts.cart_subtotal(carts.get_cart(alice_customer_id)) == 89.97

    def test_missing_products_skipped(self, carts: CartService, alice_customer_id, data_store):
        data_store.delete("products", "prod-monstera")
        assert carts.cart_subtotal(carts.get_cart(alice_customer_id)) == 49.98
