# Overview: Pytest coverage for realized-revenue reports.

"""
Reporting tests

Realized revenue = completed orders, excluding unpaid debt, dated by
COALESCE(debt_paid_at, updated_at).
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from laundrypos.errors import ValidationError
from laundrypos.models import Customer, Order
from laundrypos.services import order_service, report_service
from laundrypos.services.scope_service import ChainScope, EmptyScope, StoreScope
from laundrypos.time_utils import today, utcnow

from conftest import principal_for


def _completed(chain, product, employer="employer_s1", quantity=1, payment="cash", phone="0901234567"):
    principal = principal_for(chain[employer])
    order = order_service.create_order(principal, {
        "customer_name": "Lan",
        "customer_phone": phone,
        "items": [{"product_id": product.id, "quantity": quantity}],
    })
    if payment is not None:
        order_service.change_status(StoreScope(chain[employer].store_id), principal, order.id, "completed", payment)
    return order


def _today_entry(result):
    key = today().isoformat()
    return next(entry for entry in result["data"] if entry["date"] == key)


class TestRevenueByPeriod:

    def test_only_completed_orders_count(self, db_session, chain, product_s1):
        _completed(chain, product_s1, quantity=2)
        _completed(chain, product_s1, payment=None)

        rows = report_service.revenue_by_period(ChainScope(chain["admin_a"].id), "day")

        assert rows == [{"period": today().isoformat(), "total_revenue": 100000.0, "total_orders": 1}]

    def test_unpaid_debt_is_excluded_until_paid(self, db_session, chain, product_s1):
        order = _completed(chain, product_s1)
        scope = StoreScope(chain["s1"].id)
        principal = principal_for(chain["employer_s1"])

        order_service.mark_debt(scope, principal, order.id)
        assert report_service.revenue_by_period(scope, "month") == []

        order_service.mark_debt_paid(scope, principal, order.id)
        rows = report_service.revenue_by_period(scope, "month")
        assert rows[0]["total_revenue"] == 50000.0

    def test_paid_debt_dated_by_payment(self, db_session, chain, product_s1):
        order = _completed(chain, product_s1)
        scope = StoreScope(chain["s1"].id)
        principal = principal_for(chain["employer_s1"])
        order_service.mark_debt(scope, principal, order.id)
        order_service.mark_debt_paid(scope, principal, order.id)

        # Move the completion into last year; the payment date still wins
        stored = db_session.get(Order, order.id)
        stored.updated_at = utcnow() - timedelta(days=400)
        db_session.commit()

        rows = report_service.revenue_by_period(scope, "year")
        assert [r["period"] for r in rows] == [str(today().year)]

    def test_other_chain_is_invisible(self, db_session, chain, product_s1, product_s2):
        _completed(chain, product_s1)
        _completed(chain, product_s2, employer="employer_s2", phone="0912345678")

        rows = report_service.revenue_by_period(ChainScope(chain["admin_b"].id), "day")
        assert rows[0]["total_revenue"] == 20000.0

    def test_legacy_orders_are_included(self, db_session, chain, product_s1):
        order = _completed(chain, product_s1)
        stored = db_session.get(Order, order.id)
        stored.store_id = None
        db_session.commit()

        rows = report_service.revenue_by_period(ChainScope(chain["admin_a"].id), "day")
        assert rows[0]["total_orders"] == 1

    def test_invalid_period(self, db_session, chain):
        with pytest.raises(ValidationError):
            report_service.revenue_by_period(ChainScope(chain["admin_a"].id), "week")

    def test_root_is_empty(self, db_session, chain, product_s1):
        _completed(chain, product_s1)
        assert report_service.revenue_by_period(EmptyScope(), "day") == []


class TestRevenueDaily:

    def test_cash_transfer_split(self, db_session, chain, product_s1):
        _completed(chain, product_s1, quantity=2, payment="cash")
        _completed(chain, product_s1, quantity=1, payment="transfer", phone="0909999999")

        result = report_service.revenue_daily(StoreScope(chain["s1"].id), today().month, today().year)

        entry = _today_entry(result)
        assert entry["total_revenue"] == 150000.0
        assert entry["cash_revenue"] == 100000.0
        assert entry["transfer_revenue"] == 50000.0
        assert entry["total_orders"] == 2
        assert len(result["data"]) == result["days_in_month"]
        assert result["data"][0]["day"] == result["days_in_month"]
        assert result["summary"]["total_revenue"] == 150000.0
        assert result["summary"]["total_cash"] == 100000.0
        assert result["summary"]["total_orders"] == 2

    def test_missing_payment_method_counts_as_cash(self, db_session, chain, product_s1):
        order = _completed(chain, product_s1)
        stored = db_session.get(Order, order.id)
        stored.payment_method = None
        db_session.commit()

        entry = _today_entry(report_service.revenue_daily(StoreScope(chain["s1"].id), today().month, today().year))
        assert entry["cash_revenue"] == 50000.0

    @pytest.mark.parametrize("month,year", [(13, 2025), (0, 2025), (5, 1999), ("x", 2025)])
    def test_bad_month_year(self, db_session, chain, month, year):
        with pytest.raises(ValidationError):
            report_service.revenue_daily(ChainScope(chain["admin_a"].id), month, year)


class TestBreakdowns:

    def test_by_product_and_employee(self, db_session, chain, product_s1, product_s3):
        _completed(chain, product_s1, quantity=2)
        _completed(chain, product_s3, employer="employer_s3", quantity=3, phone="0987654321")

        scope = ChainScope(chain["admin_a"].id)
        products = report_service.revenue_by_product(scope)
        assert [(p["name"], p["total_revenue"]) for p in products] == [("Wash and fold", 100000.0), ("Ironing", 30000.0)]

        employees = report_service.revenue_by_employee(scope)
        assert [e["id"] for e in employees] == [chain["employer_s1"].id, chain["employer_s3"].id]

    def test_top_customers(self, db_session, chain, product_s1):
        _completed(chain, product_s1, quantity=1)
        _completed(chain, product_s1, quantity=3, phone="0909999999")

        top = report_service.top_customers(StoreScope(chain["s1"].id), limit=1)
        assert len(top) == 1
        assert top[0]["phone"] == "0909999999"
        assert top[0]["total_spent"] == 150000.0


class TestStoreAndProductReports:

    def test_revenue_by_store_groups_each_store_by_day(self, db_session, chain, product_s1, product_s3):
        _completed(chain, product_s1, quantity=2)
        _completed(chain, product_s3, employer="employer_s3", quantity=3, phone="0987654321")

        rows = report_service.revenue_by_store(ChainScope(chain["admin_a"].id), today().month, today().year)

        assert [(r["store_name"], r["total_revenue"], r["total_orders"]) for r in rows] == [
            ("Store S1", 100000.0, 1),
            ("Store S3", 30000.0, 1),
        ]
        assert rows[0]["store_id"] == chain["s1"].id
        assert rows[0]["daily_revenue"] == {today().isoformat(): 100000.0}

    def test_revenue_by_store_keeps_legacy_orders(self, db_session, chain, product_s1):
        order = _completed(chain, product_s1)
        stored = db_session.get(Order, order.id)
        stored.store_id = None
        db_session.commit()

        rows = report_service.revenue_by_store(ChainScope(chain["admin_a"].id), today().month, today().year)
        assert [(r["store_id"], r["store_name"], r["total_revenue"]) for r in rows] == [(None, None, 50000.0)]

    def test_revenue_by_store_other_month_is_empty(self, db_session, chain, product_s1):
        _completed(chain, product_s1)
        rows = report_service.revenue_by_store(ChainScope(chain["admin_a"].id), today().month, today().year - 1)
        assert rows == []

    def test_revenue_by_store_hides_other_chain(self, db_session, chain, product_s1, product_s2):
        _completed(chain, product_s1)
        _completed(chain, product_s2, employer="employer_s2", phone="0912345678")

        rows = report_service.revenue_by_store(ChainScope(chain["admin_b"].id), today().month, today().year)
        assert [r["store_id"] for r in rows] == [chain["s2"].id]

    def test_top_products_spreads_order_discount(self, db_session, chain, product_s1, product_s3, promo_s1):
        principal = principal_for(chain["employer_s1"])
        order = order_service.create_order(principal, {
            "customer_name": "Lan",
            "customer_phone": "0901234567",
            "items": [{"product_id": product_s1.id, "quantity": 2}],
            "promotion_id": promo_s1.id,
        })
        assert order.final_amount == Decimal("80000.00")
        order_service.change_status(StoreScope(chain["s1"].id), principal, order.id, "completed", "cash")
        _completed(chain, product_s3, employer="employer_s3", quantity=3, phone="0987654321")

        top = report_service.top_products(ChainScope(chain["admin_a"].id))

        assert [(p["name"], p["revenue"]) for p in top] == [("Wash and fold", 80000.0), ("Ironing", 30000.0)]
        assert top[0]["total_quantity"] == 2.0
        assert top[0]["total_orders"] == 1

    def test_top_products_limit(self, db_session, chain, product_s1, product_s3):
        _completed(chain, product_s1)
        _completed(chain, product_s3, employer="employer_s3", phone="0987654321")

        scope = ChainScope(chain["admin_a"].id)
        assert len(report_service.top_products(scope, limit=1)) == 1
        assert len(report_service.top_products(scope, limit=500)) == 2
        with pytest.raises(ValidationError):
            report_service.top_products(scope, limit="0")

    def test_top_products_skips_unpaid_debt(self, db_session, chain, product_s1):
        order = _completed(chain, product_s1)
        order_service.mark_debt(StoreScope(chain["s1"].id), principal_for(chain["employer_s1"]), order.id)
        assert report_service.top_products(ChainScope(chain["admin_a"].id)) == []


class TestReportRoutes:

    def test_employer_can_read_revenue(self, client, chain, product_s1, employer_s1_headers):
        _completed(chain, product_s1)
        resp = client.get("/api/reports/revenue?period=day", headers=employer_s1_headers)
        assert resp.status_code == 200
        assert resp.json["data"][0]["total_revenue"] == 50000.0

    def test_employer_cannot_read_breakdowns(self, client, chain, employer_s1_headers):
        for path in ("/api/reports/revenue-by-product", "/api/reports/revenue-by-employee",
                     "/api/reports/top-customers", "/api/reports/top-products",
                     "/api/reports/revenue-by-store?month=1&year=2025"):
            assert client.get(path, headers=employer_s1_headers).status_code == 403

    def test_admin_foreign_store_is_forbidden(self, client, chain, admin_a_headers):
        resp = client.get(f"/api/reports/revenue-daily?month=1&year=2025&store_id={chain['s2'].id}",
                          headers=admin_a_headers)
        assert resp.status_code == 403

    def test_bad_date_range_is_400(self, client, chain, admin_a_headers):
        resp = client.get("/api/reports/revenue?start_date=2025-02-01&end_date=2025-01-01", headers=admin_a_headers)
        assert resp.status_code == 400

    def test_customer_stats_unaffected_by_reports(self, db_session, client, chain, product_s1, admin_a_headers):
        _completed(chain, product_s1)
        client.get("/api/reports/top-customers", headers=admin_a_headers)
        assert db_session.query(Customer).one().total_spent == Decimal("50000.00")

    def test_admin_reads_store_and_product_reports(self, client, chain, product_s1, admin_a_headers):
        _completed(chain, product_s1)

        by_store = client.get(f"/api/reports/revenue-by-store?month={today().month}&year={today().year}",
                              headers=admin_a_headers)
        assert by_store.status_code == 200
        assert by_store.json["data"][0]["store_id"] == chain["s1"].id

        top = client.get("/api/reports/top-products?limit=5", headers=admin_a_headers)
        assert top.status_code == 200
        assert top.json["data"][0]["revenue"] == 50000.0

    def test_revenue_by_store_requires_month(self, client, chain, admin_a_headers):
        resp = client.get("/api/reports/revenue-by-store?year=2025", headers=admin_a_headers)
        assert resp.status_code == 400
