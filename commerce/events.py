"""
Domain events published by the storefront services.

Events are named in the past tense and carry everything a subscriber needs,
so the notification service rarely has to query back for context.
"""

from typing import Optional

from commerce.event_bus import Event
from storefront.models import Order, Product, Promotion, round_money


class EventTypes:
    """Event type names."""
    ORDER_PLACED = "OrderPlaced"
    ORDER_STATUS_CHANGED = "OrderStatusChanged"
    STOCK_CHANGED = "StockChanged"
    PRICE_CHANGED = "PriceChanged"
    PROMOTION_ACTIVATED = "PromotionActivated"


# =============================================================================
# Orders
# =============================================================================

def order_placed(order: Order, source: str = "ordering-service") -> Event:
    """Published once an order has been created and stock reserved."""
    return Event(
        event_type=EventTypes.ORDER_PLACED,
        source=source,
        payload={
            "order_id": order.id,
            "order_number": order.order_number,
            "customer_id": order.customer_id,
            "guest_email": order.guest_email,
            "total": order.total,
            "is_pickup": order.is_pickup,
            "promotion_id": order.promotion_id,
        },
    )


def order_status_changed(
    order: Order,
    previous_status: str,
    new_status: str,
    source: str = "ordering-service",
) -> Event:
    """
    Published on every status transition.

    Both statuses are included so subscribers can react to specific
    transitions (processing -> shipped) without tracking state themselves.
    """
    return Event(
        event_type=EventTypes.ORDER_STATUS_CHANGED,
        source=source,
        payload={
            "order_id": order.id,
            "order_number": order.order_number,
            "customer_id": order.customer_id,
            "guest_email": order.guest_email,
            "previous_status": previous_status,
            "new_status": new_status,
            "tracking_number": order.tracking_number,
        },
    )


# =============================================================================
# Catalog
# =============================================================================

def stock_changed(
    product: Product,
    previous_quantity: int,
    new_quantity: int,
    reason: str,
    source: str = "catalog-service",
) -> Event:
    return Event(
        event_type=EventTypes.STOCK_CHANGED,
        source=source,
        payload={
            "product_id": product.id,
            "product_name": product.name,
            "previous_quantity": previous_quantity,
            "new_quantity": new_quantity,
            "reason": reason,
            "back_in_stock": previous_quantity <= 0 < new_quantity,
        },
    )


def price_changed(
    product: Product,
    previous_price: float,
    new_price: float,
    source: str = "catalog-service",
) -> Event:
    return Event(
        event_type=EventTypes.PRICE_CHANGED,
        source=source,
        payload={
            "product_id": product.id,
            "product_name": product.name,
            "previous_price": previous_price,
            "new_price": new_price,
            "price_difference": round_money(new_price - previous_price),
            "is_decrease": new_price < previous_price,
        },
    )


# =============================================================================
# Promotions
# =============================================================================

def promotion_activated(
    promotion: Promotion,
    description: Optional[str] = None,
    source: str = "promotions-service",
) -> Event:
    return Event(
        event_type=EventTypes.PROMOTION_ACTIVATED,
        source=source,
        payload={
            "promotion_id": promotion.id,
            "promotion_name": promotion.name,
            "description": description or promotion.description,
            "coupon_code": promotion.coupon_code,
            "ends_at": promotion.ends_at.isoformat() if promotion.ends_at else None,
        },
    )
