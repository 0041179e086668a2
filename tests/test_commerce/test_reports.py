"""
Tests for the admin reports.

September 2026 holds five non-cancelled orders in the fixtures:
#1002, #1003, #1004 (pickup), #1005 (on hold) and #1007.
"""

from datetime import date, datetime, timezone

import pytest

from commerce.services.reports import ReportsService

SEPT_START = date(2026, 9, 1)
SEPT_END = date(2026, 9, 30)


class TestOrdersInRange:
    def test_excludes_cancelled(self, reports: ReportsService):
        ids = {o.id for o in reports.orders_in_range(SEPT_START, SEPT_END)}
        assert ids == {"ord-1002", "ord-1003", "ord-1004", "ord-1005", "ord-1007"}

    def test_end_date_is_inclusive(self, reports: ReportsService):
        ids = [o.id for o in reports.orders_in_range(date(2026, 9, 22), date(2026, 9, 22))]
        assert ids == ["ord-1007"]


class TestSalesReport:
    def test_summary(self, reports: ReportsService):
        report = reports.sales_report(SEPT_START, SEPT_END)

        assert report.summary.total_revenue == 382.26
        assert report.summary.total_orders == 5
        assert report.summary.average_order_value == 76.45

    def test_daily_rows_cover_every_day(self, reports: ReportsService):
        report = reports.sales_report(SEPT_START, SEPT_END)

        assert len(report.daily_sales) == 30
        by_day = {row.date: row for row in report.daily_sales}
        assert by_day[date(2026, 9, 3)].revenue == 104.84
        assert by_day[date(2026, 9, 4)].orders == 0

    def test_empty_range(self, reports: ReportsService):
        report = reports.sales_report(date(2025, 1, 1), date(2025, 1, 2))
        assert report.summary.total_orders == 0
        assert report.summary.average_order_value == 0.0


class TestProductsReport:
    def test_best_sellers(self, reports: ReportsService):
        report = reports.products_report(SEPT_START, SEPT_END)

        assert [(p.name, p.units_sold) for p in report.best_sellers] == [
            ("Heirloom Tomato Seeds", 4),
            ("Boston Fern", 3),
            ("Hand Trowel", 2),
            ("Monstera Deliciosa", 2),
            ("English Lavender", 1),
            ("Golden Pothos", 1),
            ("Japanese Maple", 1),
        ]
        assert report.best_sellers[1].revenue == 74.97

    def test_category_breakdown(self, reports: ReportsService):
        report = reports.products_report(SEPT_START, SEPT_END)

        assert [(c.category, c.revenue) for c in report.category_breakdown] == [
            ("Houseplants", 97.98),
            ("Outdoor Plants", 89.0),
            ("Ferns", 74.97),
            ("Tools & Supplies", 28.0),
            ("Seeds", 18.0),
            ("Uncategorized", 16.0),
        ]

    def test_low_stock(self, reports: ReportsService):
        report = reports.products_report(SEPT_START, SEPT_END)

        assert [(p.product_id, p.stock_quantity) for p in report.low_stock] == [
            ("prod-snake", 0), ("prod-monstera", 5), ("prod-maple", 8),
        ]
        assert report.low_stock[0].threshold == 10


class TestCustomersReport:
    def test_new_and_returning(self, reports: ReportsService):
        report = reports.customers_report(SEPT_START, SEPT_END)

        assert report.new_customers == 3
        assert report.returning_customers == 1

    def test_top_customers(self, reports: ReportsService):
        report = reports.customers_report(SEPT_START, SEPT_END)

        assert [(c.key, c.total_spent) for c in report.top_customers] == [
            ("cust-001", 104.84),
            ("cust-002", 96.26),
            ("guest.gardener@example.com", 95.23),
            ("cust-003", 85.93),
        ]
        assert report.top_customers[0].name == "Alice Johnson"
        assert report.top_customers[1].orders == 2

    def test_attribution(self, reports: ReportsService):
        report = reports.customers_report(SEPT_START, SEPT_END)

        assert [(a.source, a.count, a.percentage) for a in report.attribution] == [
            ("instagram", 2, 40.0),
            ("direct", 1, 20.0),
            ("google", 1, 20.0),
            ("newsletter", 1, 20.0),
        ]


class TestShippingReport:
    @pytest.fixture
    def report(self, reports: ReportsService, now):
        return reports.shipping_report(SEPT_START, SEPT_END, now=now)

    def test_status_breakdown(self, report):
        assert report.status_breakdown == {"completed": 2, "shipped": 1, "processing": 1, "on_hold": 1}

    def test_carrier_stats(self, report):
        assert len(report.carrier_stats) == 1
        ups = report.carrier_stats[0]
        assert (ups.carrier, ups.shipments, ups.avg_transit_days) == ("ups", 3, 2.5)
        assert report.avg_transit_days == 2.5

    def test_delivery_exceptions(self, report):
        assert [(e.order_number, e.issue) for e in report.delivery_exceptions] == [
            ("1003", "Shipped more than 7 days ago without delivery"),
            ("1005", "Order on hold"),
        ]

    def test_recent_shipment_is_not_stalled(self, reports: ReportsService):
        report = reports.shipping_report(
            SEPT_START, SEPT_END, now=datetime(2026, 9, 10, tzinfo=timezone.utc)
        )
        assert [e.order_number for e in report.delivery_exceptions] == ["1005"]


class TestPickupReport:
    def test_by_location(self, reports: ReportsService):
        report = reports.pickup_report(date(2026, 11, 1), date(2026, 11, 30))

        assert report.total_reservations == 4
        farm, market = report.locations
        assert farm.location_name == "Green Acres Farm Store"
        assert farm.total == 3
        assert farm.by_status == {"scheduled": 2, "cancelled": 1}
        assert market.location_id == "loc-market"
        assert market.total == 1

    def test_picked_up(self, reports: ReportsService):
        report = reports.pickup_report(SEPT_START, SEPT_END)
        assert report.locations[0].by_status == {"picked_up": 1}
