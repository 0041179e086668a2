"""
Sales and operational reports for the admin dashboard.

Every report covers an inclusive date range and looks at orders created in
it, ignoring cancelled orders. Figures are plain aggregates; the dashboard
charts them with the geometry helpers in commerce.charts.
"""

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from storefront.config import get_settings
from storefront.data_store import DataStore, get_data_store
from storefront.models import Order, OrderStatus, round_money, utcnow

logger = logging.getLogger("reports_service")

TOP_N = 10
STALLED_SHIPMENT_DAYS = 7
EXCEPTION_STATUSES = {OrderStatus.ON_HOLD.value, OrderStatus.FAILED.value}


# =============================================================================
# Report models
# =============================================================================

class SalesSummary(BaseModel):
    total_revenue: float
    total_orders: int
    average_order_value: float


class DailySales(BaseModel):
    date: date
    revenue: float
    orders: int


class SalesReport(BaseModel):
    start_date: date
    end_date: date
    summary: SalesSummary
    daily_sales: list[DailySales]


class ProductSales(BaseModel):
    product_id: str
    name: str
    units_sold: int
    revenue: float


class LowStockItem(BaseModel):
    product_id: str
    name: str
    stock_quantity: int
    threshold: int


class CategorySales(BaseModel):
    category: str
    units_sold: int
    revenue: float


class ProductsReport(BaseModel):
    best_sellers: list[ProductSales]
    low_stock: list[LowStockItem]
    category_breakdown: list[CategorySales]


class TopCustomer(BaseModel):
    key: str
    name: str
    email: Optional[str] = None
    orders: int
    total_spent: float


class AttributionSource(BaseModel):
    source: str
    count: int
    percentage: float


class CustomersReport(BaseModel):
    new_customers: int
    returning_customers: int
    top_customers: list[TopCustomer]
    attribution: list[AttributionSource]


class CarrierStats(BaseModel):
    carrier: str
    shipments: int
    avg_transit_days: float


class DeliveryException(BaseModel):
    order_id: str
    order_number: str
    status: str
    issue: str
    created_at: datetime


class ShippingReport(BaseModel):
    status_breakdown: dict[str, int]
    carrier_stats: list[CarrierStats]
    avg_transit_days: float
    delivery_exceptions: list[DeliveryException]


class LocationPickups(BaseModel):
    location_id: str
    location_name: str
    total: int
    by_status: dict[str, int] = Field(default_factory=dict)


class PickupReport(BaseModel):
    locations: list[LocationPickups]
    total_reservations: int


# =============================================================================
# Service
# =============================================================================

def _range_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.max, tzinfo=timezone.utc),
    )


class ReportsService:
    def __init__(self, data_store: Optional[DataStore] = None):
        self.data_store = data_store or get_data_store()

    def orders_in_range(self, start: date, end: date) -> list[Order]:
        """Non-cancelled orders created between start 00:00 and end 23:59:59.999999."""
        lower, upper = _range_bounds(start, end)
        return [
            o for o in self.data_store.get_orders()
            if lower <= o.created_at <= upper and o.status != OrderStatus.CANCELLED
        ]

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    def sales_report(self, start: date, end: date) -> SalesReport:
        orders = self.orders_in_range(start, end)

        by_day: dict[date, list[Order]] = defaultdict(list)
        for order in orders:
            by_day[order.created_at.date()].append(order)

        daily = []
        current = start
        while current <= end:
            day_orders = by_day.get(current, [])
            daily.append(DailySales(
                date=current,
                revenue=round_money(sum(o.total for o in day_orders)),
                orders=len(day_orders),
            ))
            current += timedelta(days=1)

        revenue = round_money(sum(o.total for o in orders))
        count = len(orders)
        return SalesReport(
            start_date=start,
            end_date=end,
            summary=SalesSummary(
                total_revenue=revenue,
                total_orders=count,
                average_order_value=round_money(revenue / count) if count else 0.0,
            ),
            daily_sales=daily,
        )

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    def products_report(self, start: date, end: date, low_stock_threshold: Optional[int] = None) -> ProductsReport:
        if low_stock_threshold is None:
            low_stock_threshold = get_settings().LOW_STOCK_THRESHOLD

        units: Counter = Counter()
        revenue: dict[str, float] = defaultdict(float)
        names: dict[str, str] = {}
        for order in self.orders_in_range(start, end):
            for item in order.items:
                units[item.product_id] += item.quantity
                revenue[item.product_id] += item.line_total
                names[item.product_id] = item.name

        best_sellers = [
            ProductSales(
                product_id=product_id,
                name=names[product_id],
                units_sold=sold,
                revenue=round_money(revenue[product_id]),
            )
            for product_id, sold in sorted(units.items(), key=lambda kv: (-kv[1], names[kv[0]]))[:TOP_N]
        ]

        low_stock = sorted(
            (
                p for p in self.data_store.get_products()
                if p.is_active and p.track_inventory and p.stock_quantity <= low_stock_threshold
            ),
            key=lambda p: (p.stock_quantity, p.name),
        )[:TOP_N]

        categories: dict[str, list[float]] = defaultdict(lambda: [0, 0.0])
        for product_id, sold in units.items():
            product = self.data_store.get_product(product_id)
            category = self.data_store.get_category(product.category_id) if product and product.category_id else None
            bucket = categories[category.name if category else "Uncategorized"]
            bucket[0] += sold
            bucket[1] += revenue[product_id]

        return ProductsReport(
            best_sellers=best_sellers,
            low_stock=[
                LowStockItem(
                    product_id=p.id,
                    name=p.name,
                    stock_quantity=p.stock_quantity,
                    threshold=low_stock_threshold,
                )
                for p in low_stock
            ],
            category_breakdown=sorted(
                (
                    CategorySales(category=name, units_sold=int(sold), revenue=round_money(total))
                    for name, (sold, total) in categories.items()
                ),
                key=lambda c: -c.revenue,
            ),
        )

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    @staticmethod
    def _customer_key(order: Order) -> Optional[str]:
        if order.customer_id:
            return order.customer_id
        return order.guest_email.lower() if order.guest_email else None

    def customers_report(self, start: date, end: date) -> CustomersReport:
        orders = self.orders_in_range(start, end)
        lower, _ = _range_bounds(start, end)

        earlier_keys = {
            self._customer_key(o)
            for o in self.data_store.get_orders()
            if o.created_at < lower and o.status != OrderStatus.CANCELLED
        }

        spend: dict[str, TopCustomer] = {}
        for order in orders:
            key = self._customer_key(order)
            if key is None:
                continue
            if key not in spend:
                customer = self.data_store.get_customer(order.customer_id) if order.customer_id else None
                spend[key] = TopCustomer(
                    key=key,
                    name=customer.name if customer else key,
                    email=customer.email if customer else order.guest_email,
                    orders=0,
                    total_spent=0.0,
                )
            spend[key].orders += 1
            spend[key].total_spent = round_money(spend[key].total_spent + order.total)

        returning = sum(1 for key in spend if key in earlier_keys)

        sources = Counter(o.attribution_source or "direct" for o in orders)
        total = sum(sources.values())
        attribution = [
            AttributionSource(source=source, count=count, percentage=round(count / total * 100, 1))
            for source, count in sorted(sources.items(), key=lambda kv: (-kv[1], kv[0]))
        ]

        return CustomersReport(
            new_customers=len(spend) - returning,
            returning_customers=returning,
            top_customers=sorted(spend.values(), key=lambda c: -c.total_spent)[:TOP_N],
            attribution=attribution,
        )

    # -------------------------------------------------------------------------
    # Shipping and pickup
    # -------------------------------------------------------------------------

    def shipping_report(self, start: date, end: date, now: Optional[datetime] = None) -> ShippingReport:
        now = now or utcnow()
        orders = self.orders_in_range(start, end)

        status_breakdown = dict(Counter(o.status for o in orders).most_common())

        shipments: Counter = Counter()
        transit: dict[str, list[float]] = defaultdict(list)
        for order in orders:
            if order.is_pickup or not order.shipped_at:
                continue
            carrier = order.carrier or "unknown"
            shipments[carrier] += 1
            if order.delivered_at:
                transit[carrier].append((order.delivered_at - order.shipped_at).total_seconds() / 86400)

        carrier_stats = [
            CarrierStats(
                carrier=carrier,
                shipments=count,
                avg_transit_days=round(sum(transit[carrier]) / len(transit[carrier]), 1) if transit[carrier] else 0.0,
            )
            for carrier, count in shipments.most_common()
        ]
        all_transit = [days for values in transit.values() for days in values]

        stalled_before = now - timedelta(days=STALLED_SHIPMENT_DAYS)
        exceptions = []
        for order in sorted(orders, key=lambda o: o.created_at):
            if order.status in EXCEPTION_STATUSES:
                issue = f"Order {order.status.replace('_', ' ')}"
            elif (
                order.status == OrderStatus.SHIPPED
                and order.shipped_at
                and not order.delivered_at
                and order.shipped_at < stalled_before
            ):
                issue = f"Shipped more than {STALLED_SHIPMENT_DAYS} days ago without delivery"
            else:
                continue
            exceptions.append(DeliveryException(
                order_id=order.id,
                order_number=order.order_number,
                status=order.status,
                issue=issue,
                created_at=order.created_at,
            ))

        return ShippingReport(
            status_breakdown=status_breakdown,
            carrier_stats=carrier_stats,
            avg_transit_days=round(sum(all_transit) / len(all_transit), 1) if all_transit else 0.0,
            delivery_exceptions=exceptions,
        )

    def pickup_report(self, start: date, end: date) -> PickupReport:
        reservations = self.data_store.get_pickup_reservations(start_date=start, end_date=end)

        by_location: dict[str, LocationPickups] = {}
        for reservation in reservations:
            entry = by_location.get(reservation.location_id)
            if entry is None:
                location = self.data_store.get_pickup_location(reservation.location_id)
                entry = by_location[reservation.location_id] = LocationPickups(
                    location_id=reservation.location_id,
                    location_name=location.name if location else reservation.location_id,
                    total=0,
                )
            entry.total += 1
            entry.by_status[reservation.status] = entry.by_status.get(reservation.status, 0) + 1

        return PickupReport(
            locations=sorted(by_location.values(), key=lambda l: (-l.total, l.location_name)),
            total_reservations=len(reservations),
        )
