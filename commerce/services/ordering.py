"""
Checkout and order lifecycle.

This service turns a cart into an order and moves orders through their
statuses. It publishes OrderPlaced and OrderStatusChanged events; customer
emails are sent by the notification service in response, not from here.

Checkout order of operations:
1. Price the cart and check stock for every line
2. Check shipping eligibility and pick the carrier service (or validate
   the pickup window)
3. Apply the cart promotion, shipping cost and sales tax
4. Reserve the pickup slot, save the order, take the stock, record
   promotion usage and clear the cart
5. Publish OrderPlaced

Anything that can be rejected is checked before the first write, so a
failed checkout leaves no partial state behind.
"""

import logging
from typing import Optional

from commerce.event_bus import EventBus, get_event_bus
from commerce.events import order_placed, order_status_changed
from commerce.services.cart import CartService
from commerce.services.catalog import CatalogService
from commerce.services.pickup import PickupService
from commerce.services.promotions import PromotionsService
from commerce.services.shipping import ShippingService, calculate_tax
from storefront.data_store import DataStore, get_data_store, new_id
from storefront.errors import (
    InsufficientStockError,
    NotFoundError,
    ShippingNotAllowedError,
    SlotUnavailableError,
    ValidationError,
)
from storefront.models import (
    Cart,
    CartDiscount,
    CartItem,
    CartLine,
    CheckoutRequest,
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    ShippingOption,
    can_transition,
    get_order_status_label,
    round_money,
    utcnow,
)

logger = logging.getLogger("ordering_service")


class OrderingService:
    """
    Places orders and changes their status.

    Example:
        ordering = OrderingService()
        order = ordering.place_order(CheckoutRequest(
            customer_id="cust-001", shipping_state="GA", coupon_code="SPRING20",
        ))
        ordering.update_order_status(order.id, "shipped", tracking_number="1Z999")
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        data_store: Optional[DataStore] = None,
    ):
        self.event_bus = event_bus or get_event_bus()
        self.data_store = data_store or get_data_store()
        self.promotions = PromotionsService(self.event_bus, self.data_store)
        self.catalog = CatalogService(self.event_bus, self.data_store, self.promotions)
        self.carts = CartService(self.data_store)
        self.shipping = ShippingService(self.data_store)
        self.pickup = PickupService(self.data_store)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_order(self, order_id: str) -> Order:
        order = self.data_store.get_order(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(
        self,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> list[Order]:
        orders = self.data_store.get_orders()
        if status:
            orders = [o for o in orders if o.status == status]
        if customer_id:
            orders = [o for o in orders if o.customer_id == customer_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    # =========================================================================
    # Checkout
    # =========================================================================

    def place_order(self, request: CheckoutRequest) -> Order:
        """
        Create an order from a cart.

        Raises:
            ValidationError: empty cart, invalid coupon, missing shipping or pickup details
            InsufficientStockError: a line asks for more than is in stock
            ShippingNotAllowedError: the destination cannot be shipped to
            SlotUnavailableError: the pickup window is full or does not exist
        """
        customer = self._resolve_customer(request)
        email = customer.email if customer else request.guest_email.strip().lower()

        cart = self._checkout_cart(request)
        lines = self.carts.cart_lines(cart)
        if not lines:
            raise ValidationError({"cart": "Your cart is empty"})
        self._check_stock(lines)

        option: Optional[ShippingOption] = None
        if request.is_pickup:
            tax_state = self._check_pickup(request)
        else:
            option = self._choose_shipping(request, lines)
            tax_state = request.shipping_state.strip().upper()

        discount = self.promotions.calculate_cart_discount(
            lines,
            coupon_code=request.coupon_code,
            customer_id=customer.id if customer else None,
            customer_email=email,
        )
        if not discount.valid:
            if request.coupon_code and request.coupon_code.strip():
                raise ValidationError({"coupon_code": discount.message or "Invalid coupon code"})
            # an automatic promotion the customer no longer qualifies for
            discount = CartDiscount(valid=True)

        subtotal = round_money(sum(line.price * line.quantity for line in lines))
        shipping_cost = 0.0 if option is None or discount.free_shipping else option.rate
        taxable = round_money(subtotal - discount.discount)
        tax = calculate_tax(
            taxable,
            tax_state,
            tax_exempt=customer.is_tax_exempt if customer else False,
            tax_exempt_reason=customer.tax_exempt_reason if customer else None,
        )

        order_id = new_id("ord")
        order = Order(
            id=order_id,
            order_number=self.data_store.next_order_number(),
            customer_id=customer.id if customer else None,
            guest_email=None if customer else email,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price=line.price,
                    line_total=line.line_total,
                )
                for line in lines
            ],
            subtotal=subtotal,
            discount_amount=discount.discount,
            shipping_cost=shipping_cost,
            tax_amount=tax.amount,
            total=round_money(taxable + shipping_cost + tax.amount),
            status=OrderStatus.PROCESSING.value,
            promotion_id=discount.promotion_id,
            promotion_code=discount.promotion_code,
            discount_description=discount.description,
            is_pickup=request.is_pickup,
            shipping_state=None if request.is_pickup else tax_state,
            shipping_service=option.service_code if option else None,
            carrier=option.carrier_code if option else None,
            attribution_source=request.attribution_source,
        )

        if request.is_pickup:
            reservation = self.pickup.reserve_pickup(
                order_id,
                request.pickup_location_id,
                request.pickup_schedule_id,
                request.pickup_date,
            )
            order.pickup_location_id = reservation.location_id
            order.pickup_date = reservation.pickup_date
            order.pickup_time_start = reservation.pickup_time_start
            order.pickup_time_end = reservation.pickup_time_end

        self.data_store.save_order(order)

        for line in lines:
            product = self.data_store.get_product(line.product_id)
            if product.track_inventory:
                self.catalog.adjust_stock(product.id, -line.quantity, reason=f"order #{order.order_number}")

        if discount.promotion_id:
            self.promotions.record_promotion_usage(
                discount.promotion_id,
                order.id,
                discount.discount,
                customer_id=order.customer_id,
                customer_email=email,
            )

        if customer and not request.items:
            self.carts.clear_cart(customer.id)

        logger.info(
            f"Order #{order.order_number} placed: {order.item_count} items, "
            f"total ${order.total:.2f} ({'pickup' if order.is_pickup else order.shipping_service})"
        )
        self.event_bus.publish(order_placed(order))
        return order

    def _resolve_customer(self, request: CheckoutRequest) -> Optional[Customer]:
        if not request.customer_id:
            return None
        customer = self.data_store.get_customer(request.customer_id)
        if not customer:
            raise NotFoundError("Customer", request.customer_id)
        return customer

    def _checkout_cart(self, request: CheckoutRequest) -> Cart:
        """The cart being bought, one line per product."""
        if request.items:
            quantities: dict[str, int] = {}
            for item in request.items:
                quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
            items = [CartItem(product_id=pid, quantity=qty) for pid, qty in quantities.items()]
            return Cart(customer_id=request.customer_id or "guest", items=items)
        if request.customer_id:
            return self.carts.get_cart(request.customer_id)
        return Cart(customer_id="guest")

    def _check_stock(self, lines: list[CartLine]) -> None:
        shortages = {}
        for line in lines:
            product = self.data_store.get_product(line.product_id)
            if not product.is_active:
                raise ValidationError({"items": f"{product.name} is no longer available"})
            if product.track_inventory and product.stock_quantity < line.quantity:
                shortages[product.id] = max(product.stock_quantity, 0)
        if shortages:
            logger.warning(f"Checkout rejected, insufficient stock: {shortages}")
            raise InsufficientStockError(shortages)

    def _choose_shipping(self, request: CheckoutRequest, lines: list[CartLine]) -> ShippingOption:
        if not request.shipping_state or not request.shipping_state.strip():
            raise ValidationError({"shipping_state": "Shipping state is required"})

        pickup_only = [
            line.name for line in lines
            if self.data_store.get_product(line.product_id).local_pickup_only
        ]
        if pickup_only:
            raise ValidationError({"items": f"Available for local pickup only: {', '.join(pickup_only)}"})

        state = request.shipping_state.strip().upper()
        eligibility = self.shipping.check_shipping_eligibility(state)
        if not eligibility.allowed:
            raise ShippingNotAllowedError(state, eligibility.message)

        options = self.shipping.get_shipping_options(state)
        if not options:
            raise ShippingNotAllowedError(state, f"No shipping services are available to {state}")

        if not request.shipping_service:
            return options[0]
        for option in options:
            if option.service_code == request.shipping_service:
                return option
        raise ValidationError({"shipping_service": f"{request.shipping_service} is not available to {state}"})

    def _check_pickup(self, request: CheckoutRequest) -> str:
        """Validate the pickup details and return the location's state for tax."""
        errors = {}
        if not request.pickup_location_id:
            errors["pickup_location_id"] = "Select a pickup location"
        if not request.pickup_schedule_id:
            errors["pickup_schedule_id"] = "Select a pickup time"
        if not request.pickup_date:
            errors["pickup_date"] = "Select a pickup date"
        if errors:
            raise ValidationError(errors)

        location = self.data_store.get_pickup_location(request.pickup_location_id)
        if not location or not location.is_active:
            raise SlotUnavailableError(f"Pickup location is not available: {request.pickup_location_id}")
        return location.state

    # =========================================================================
    # Status changes
    # =========================================================================

    def update_order_status(
        self,
        order_id: str,
        new_status: str,
        tracking_number: Optional[str] = None,
        carrier: Optional[str] = None,
    ) -> Order:
        """
        Move an order to a new status.

        Shipping stamps shipped_at, completion stamps delivered_at and
        cancellation puts the stock back and frees the pickup slot.
        """
        order = self.get_order(order_id)
        try:
            new_status = OrderStatus(new_status).value
        except ValueError:
            raise ValidationError({"status": f"Unknown order status: {new_status}"}) from None
        previous_status = order.status

        if previous_status == new_status:
            logger.info(f"Order {order_id} already {new_status}")
            return order

        if not can_transition(previous_status, new_status):
            raise ValidationError({
                "status": (
                    f"Cannot change order from {get_order_status_label(previous_status)} "
                    f"to {get_order_status_label(new_status)}"
                )
            })

        now = utcnow()
        order.status = new_status
        order.updated_at = now
        if tracking_number:
            order.tracking_number = tracking_number
        if carrier:
            order.carrier = carrier

        if new_status == OrderStatus.SHIPPED:
            order.shipped_at = order.shipped_at or now
        elif new_status == OrderStatus.COMPLETED:
            order.delivered_at = now
        elif new_status == OrderStatus.CANCELLED:
            self._restock(order)
            if order.is_pickup:
                self.pickup.cancel_for_order(order.id)

        self.data_store.save_order(order)
        logger.info(f"Order #{order.order_number}: {previous_status} -> {new_status}")

        self.event_bus.publish(order_status_changed(order, previous_status, new_status))
        return order

    def _restock(self, order: Order) -> None:
        for item in order.items:
            product = self.data_store.get_product(item.product_id)
            if product and product.track_inventory:
                self.catalog.adjust_stock(
                    product.id, item.quantity, reason=f"order #{order.order_number} cancelled"
                )
