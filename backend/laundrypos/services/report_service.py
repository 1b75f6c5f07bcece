# Overview: Service-layer operations for reporting; scoped revenue aggregations.

"""
Reporting Service

Realized revenue only:
- status = completed
- unpaid debt (is_debt and no debt_paid_at) is excluded
- a collected debt counts on its payment date, so every report dates
  revenue by COALESCE(debt_paid_at, updated_at)

Every query is filtered through scope_service.order_clause, legacy
store_id IS NULL orders included.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal

from sqlalchemy import Float, case, cast, func

from ..extensions import db
from ..models import Customer, Order, OrderItem, Product, Store, User
from ..models.orders import ORDER_STATUS_COMPLETED, PAYMENT_CASH, PAYMENT_TRANSFER
from ..validation import money, parse_enum, parse_month_year, parse_positive_int, to_number, validate_date_range
from .scope_service import AccessScope, is_empty, order_clause


PERIOD_FORMATS = {
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
    "year": "%Y",
}

MAX_TOP_LIMIT = 100


def revenue_date():
    return func.coalesce(Order.debt_paid_at, Order.updated_at)


def realized_filters(scope: AccessScope) -> list:
    """WHERE terms shared by every revenue query."""
    return [
        Order.status == ORDER_STATUS_COMPLETED,
        db.or_(
            Order.is_debt.is_(False),
            Order.is_debt.is_(None),
            Order.debt_paid_at.isnot(None),
        ),
        order_clause(scope),
    ]


def _amount(value) -> float:
    if value is None:
        return 0.0
    return to_number(money(Decimal(str(value))))


def _clamp_top_limit(limit) -> int:
    limit = parse_positive_int(limit if limit not in (None, "") else 10, "limit")
    return min(limit, MAX_TOP_LIMIT)


def _date_range_filters(start_date: date | None, end_date: date | None) -> list:
    filters = []
    day = func.date(revenue_date())
    if start_date and end_date:
        validate_date_range(start_date, end_date)
    if start_date:
        filters.append(day >= start_date.isoformat())
    if end_date:
        filters.append(day <= end_date.isoformat())
    return filters


def revenue_by_period(
    scope: AccessScope,
    period: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    period = parse_enum(period, tuple(PERIOD_FORMATS), "period")
    if is_empty(scope):
        return []

    period_expr = func.strftime(PERIOD_FORMATS[period], revenue_date())
    rows = (
        db.session.query(
            period_expr.label("period"),
            func.coalesce(func.sum(Order.final_amount), 0).label("total_revenue"),
            func.count(Order.id).label("total_orders"),
        )
        .filter(*realized_filters(scope), *_date_range_filters(start_date, end_date))
        .group_by("period")
        .order_by("period")
        .all()
    )
    return [
        {
            "period": row.period,
            "total_revenue": _amount(row.total_revenue),
            "total_orders": int(row.total_orders or 0),
        }
        for row in rows
    ]


def revenue_daily(scope: AccessScope, month, year) -> dict:
    """
    Every day of a month (latest first) with a cash / transfer split.

    Orders without a payment method count as cash.
    """
    month_num, year_num = parse_month_year(month, year)
    days_in_month = calendar.monthrange(year_num, month_num)[1]

    by_day = {}
    if not is_empty(scope):
        day_expr = func.date(revenue_date())
        cash = case(
            (db.or_(Order.payment_method == PAYMENT_CASH, Order.payment_method.is_(None)), Order.final_amount),
            else_=0,
        )
        transfer = case((Order.payment_method == PAYMENT_TRANSFER, Order.final_amount), else_=0)
        rows = (
            db.session.query(
                day_expr.label("day"),
                func.coalesce(func.sum(Order.final_amount), 0).label("total_revenue"),
                func.coalesce(func.sum(cash), 0).label("cash_revenue"),
                func.coalesce(func.sum(transfer), 0).label("transfer_revenue"),
                func.count(Order.id).label("total_orders"),
            )
            .filter(
                *realized_filters(scope),
                func.strftime("%Y-%m", revenue_date()) == f"{year_num:04d}-{month_num:02d}",
            )
            .group_by("day")
            .all()
        )
        by_day = {row.day: row for row in rows}

    data = []
    totals = {"total_revenue": Decimal("0"), "total_cash": Decimal("0"), "total_transfer": Decimal("0")}
    total_orders = 0
    for day in range(days_in_month, 0, -1):
        key = f"{year_num:04d}-{month_num:02d}-{day:02d}"
        row = by_day.get(key)
        entry = {
            "date": key,
            "day": day,
            "total_revenue": _amount(row.total_revenue) if row else 0.0,
            "cash_revenue": _amount(row.cash_revenue) if row else 0.0,
            "transfer_revenue": _amount(row.transfer_revenue) if row else 0.0,
            "total_orders": int(row.total_orders) if row else 0,
        }
        totals["total_revenue"] += Decimal(str(entry["total_revenue"]))
        totals["total_cash"] += Decimal(str(entry["cash_revenue"]))
        totals["total_transfer"] += Decimal(str(entry["transfer_revenue"]))
        total_orders += entry["total_orders"]
        data.append(entry)

    return {
        "data": data,
        "summary": {
            "total_revenue": _amount(totals["total_revenue"]),
            "total_cash": _amount(totals["total_cash"]),
            "total_transfer": _amount(totals["total_transfer"]),
            "total_orders": total_orders,
            "average_daily_revenue": _amount(totals["total_revenue"] / days_in_month),
        },
        "month": month_num,
        "year": year_num,
        "days_in_month": days_in_month,
    }


def revenue_by_product(
    scope: AccessScope,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """Gross line revenue (before order discounts) per product."""
    if is_empty(scope):
        return []
    line_total = OrderItem.quantity * OrderItem.unit_price
    rows = (
        db.session.query(
            Product.id,
            Product.name,
            Product.unit,
            func.coalesce(func.sum(OrderItem.quantity), 0).label("total_quantity"),
            func.coalesce(func.sum(line_total), 0).label("total_revenue"),
            func.count(func.distinct(OrderItem.order_id)).label("total_orders"),
        )
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(*realized_filters(scope), *_date_range_filters(start_date, end_date))
        .group_by(Product.id, Product.name, Product.unit)
        .order_by(func.sum(line_total).desc())
        .all()
    )
    return [
        {
            "id": row.id,
            "name": row.name,
            "unit": row.unit,
            "total_quantity": float(row.total_quantity or 0),
            "total_revenue": _amount(row.total_revenue),
            "total_orders": int(row.total_orders or 0),
        }
        for row in rows
    ]


def revenue_by_employee(
    scope: AccessScope,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    if is_empty(scope):
        return []
    rows = (
        db.session.query(
            User.id,
            User.name,
            func.coalesce(func.sum(Order.final_amount), 0).label("total_revenue"),
            func.count(Order.id).label("total_orders"),
        )
        .join(Order, Order.assigned_to == User.id)
        .filter(*realized_filters(scope), *_date_range_filters(start_date, end_date))
        .group_by(User.id, User.name)
        .order_by(func.sum(Order.final_amount).desc())
        .all()
    )
    return [
        {
            "id": row.id,
            "name": row.name,
            "total_revenue": _amount(row.total_revenue),
            "total_orders": int(row.total_orders or 0),
        }
        for row in rows
    ]


def top_customers(scope: AccessScope, limit=10) -> list[dict]:
    limit = _clamp_top_limit(limit)
    if is_empty(scope):
        return []
    rows = (
        db.session.query(
            Customer.id,
            Customer.name,
            Customer.phone,
            func.coalesce(func.sum(Order.final_amount), 0).label("total_spent"),
            func.count(Order.id).label("total_orders"),
        )
        .join(Order, Order.customer_id == Customer.id)
        .filter(*realized_filters(scope))
        .group_by(Customer.id, Customer.name, Customer.phone)
        .order_by(func.sum(Order.final_amount).desc(), Customer.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": row.id,
            "name": row.name,
            "phone": row.phone,
            "total_spent": _amount(row.total_spent),
            "total_orders": int(row.total_orders or 0),
        }
        for row in rows
    ]


def revenue_by_store(scope: AccessScope, month, year) -> list[dict]:
    """
    One month of realized revenue per store, broken down by day.

    daily_revenue only lists days with revenue. Legacy orders without a
    store are grouped under store_id None.
    """
    month_num, year_num = parse_month_year(month, year)
    if is_empty(scope):
        return []

    day_expr = func.date(revenue_date())
    rows = (
        db.session.query(
            Order.store_id,
            Store.name.label("store_name"),
            day_expr.label("day"),
            func.coalesce(func.sum(Order.final_amount), 0).label("revenue"),
            func.count(Order.id).label("orders"),
        )
        .outerjoin(Store, Order.store_id == Store.id)
        .filter(
            *realized_filters(scope),
            func.strftime("%Y-%m", revenue_date()) == f"{year_num:04d}-{month_num:02d}",
        )
        .group_by(Order.store_id, Store.name, "day")
        .order_by(Order.store_id, "day")
        .all()
    )

    stores = {}
    for row in rows:
        entry = stores.setdefault(row.store_id, {
            "store_id": row.store_id,
            "store_name": row.store_name,
            "daily_revenue": {},
            "total_revenue": Decimal("0"),
            "total_orders": 0,
        })
        entry["daily_revenue"][row.day] = _amount(row.revenue)
        entry["total_revenue"] += Decimal(str(row.revenue))
        entry["total_orders"] += int(row.orders or 0)

    result = []
    for entry in stores.values():
        entry["total_revenue"] = _amount(entry["total_revenue"])
        result.append(entry)
    result.sort(key=lambda item: item["total_revenue"], reverse=True)
    return result


def top_products(scope: AccessScope, limit=10) -> list[dict]:
    """
    Best selling products by net revenue.

    Each line is weighted by its order's final/total ratio, so order
    discounts are spread over the lines pro rata.
    """
    limit = _clamp_top_limit(limit)
    if is_empty(scope):
        return []

    share = case(
        (Order.total_amount > 0, cast(Order.final_amount, Float) / Order.total_amount),
        else_=1,
    )
    net_line = OrderItem.unit_price * OrderItem.quantity * share
    rows = (
        db.session.query(
            Product.id,
            Product.name,
            Product.unit,
            func.coalesce(func.sum(net_line), 0).label("revenue"),
            func.coalesce(func.sum(OrderItem.quantity), 0).label("total_quantity"),
            func.count(func.distinct(Order.id)).label("total_orders"),
        )
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(*realized_filters(scope))
        .group_by(Product.id, Product.name, Product.unit)
        .order_by(func.sum(net_line).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": row.id,
            "name": row.name,
            "unit": row.unit,
            "revenue": _amount(row.revenue),
            "total_quantity": float(row.total_quantity or 0),
            "total_orders": int(row.total_orders or 0),
        }
        for row in rows
    ]
