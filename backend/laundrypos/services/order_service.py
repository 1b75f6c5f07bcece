# Overview: Order lifecycle; creation transaction, updates, status machine and debt toggles.

"""
Order Service

CREATION (create_order) runs as one unit of work:
1. resolve the customer (find-or-create by phone, or a walk-in placeholder)
2. price every item from the product snapshot
3. optimistic promotion check against the subtotal
4. resolve assignee and store
5. confirm the promotion against the resolved store
6. persist order, items, the initial 'created' history row and the
   customer's lifetime counters

Any failure rolls the whole unit back: no customer, order, item or
counter change survives a failed attempt.

STATE MACHINE:
- created, washing, drying, waiting_pickup move freely among themselves
  and into completed or cancelled
- completed and cancelled have no outgoing status transitions
- every transition appends one OrderStatusHistory row

DEBT (completed orders only):
- mark_debt: is_debt False -> True, debt_paid_at cleared
- mark_debt_paid: is_debt True -> False, debt_paid_at = now

SCOPING: every single-order operation loads the order through the caller's
access scope; an order outside it is reported as not found.
"""

from __future__ import annotations

import random
import secrets
import string
import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import Customer, Order, OrderItem, OrderStatusHistory, Product, User
from ..models.customers import TEMP_PHONE_PREFIX
from ..models.orders import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CREATED,
    ORDER_STATUSES,
    PAYMENT_METHODS,
    TERMINAL_STATUSES,
)
from ..models.products import PRODUCT_STATUS_ACTIVE
from ..validation import (
    clean_string,
    money,
    parse_bool_flag,
    parse_enum,
    parse_id,
    parse_optional_date,
    parse_positive_decimal,
    validate_date_range,
)
from .concurrency import atomic, lock_for_update, run_with_retry
from .promotion_service import confirm_quote, final_amount, quote_promotion
from .scope_service import (
    AccessScope,
    ChainScope,
    Principal,
    is_empty,
    order_clause,
    product_clause,
    resolve_scope,
    staff_clause,
)
from laundrypos.time_utils import today, utcnow


DEFAULT_CUSTOMER_NAME = "Walk-in customer"
ORDER_CODE_PREFIX = "DH"

# Targets accepted by the dedicated status endpoint
QUICK_STATUS_TARGETS = (ORDER_STATUS_CREATED, ORDER_STATUS_COMPLETED)


@dataclass
class PricedLine:
    product: Product
    quantity: Decimal
    unit_price: Decimal
    note: str | None

    @property
    def line_total(self) -> Decimal:
        return money(self.quantity * self.unit_price)


@dataclass
class OrderFilters:
    status: str | None = None
    assigned_to: int | None = None
    customer_phone: str | None = None
    my_orders: bool = False
    on_date: date | None = None
    debt_only: bool = False
    start_date: date | None = None
    end_date: date | None = None


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------

def generate_order_code() -> str:
    """
    DH + YYMMDD + 4 random digits, checked for uniqueness.

    Check-then-insert with a bounded number of attempts; the unique index
    on orders.code is the final guard.
    """
    attempts = current_app.config.get("MAX_ORDER_CODE_ATTEMPTS", 10)
    stamp = today().strftime("%y%m%d")
    for _ in range(attempts):
        code = f"{ORDER_CODE_PREFIX}{stamp}{random.randint(0, 9999):04d}"
        exists = db.session.query(Order.id).filter(Order.code == code).first()
        if not exists:
            return code
    raise RuntimeError("Could not generate a unique order code")


def generate_temp_phone() -> str:
    """Unique placeholder phone for walk-in customers: temp_<ms>_<9 alnum>."""
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"{TEMP_PHONE_PREFIX}{int(time.time() * 1000)}_{suffix}"


# ---------------------------------------------------------------------------
# Creation steps
# ---------------------------------------------------------------------------

def _resolve_customer(name: str, phone: str) -> Customer:
    if not phone:
        customer = Customer(name=name or DEFAULT_CUSTOMER_NAME, phone=generate_temp_phone())
        db.session.add(customer)
        return customer

    if phone.startswith(TEMP_PHONE_PREFIX):
        raise ValidationError("Invalid customer phone")

    customer = db.session.query(Customer).filter_by(phone=phone).first()
    if customer is None:
        customer = Customer(name=name or DEFAULT_CUSTOMER_NAME, phone=phone)
        db.session.add(customer)
    elif name and name != customer.name:
        customer.name = name
    return customer


def _price_items(items: list, scope: AccessScope) -> list[PricedLine]:
    """Validate items and snapshot product prices; any bad item rejects all."""
    lines = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} is malformed")
        product_id = parse_id(raw.get("product_id"), f"items[{index}].product_id")

        product = db.session.query(Product).filter(
            Product.id == product_id,
            product_clause(scope),
        ).first()
        if product is None or product.status != PRODUCT_STATUS_ACTIVE:
            raise ValidationError(
                f"Product {product_id} does not exist or is inactive",
                {"product_id": product_id},
            )

        quantity = parse_positive_decimal(raw.get("quantity"), f"Quantity for {product.name}")
        lines.append(PricedLine(
            product=product,
            quantity=quantity,
            unit_price=money(product.price),
            note=clean_string(raw.get("note"), "note") or None,
        ))
    return lines


def _resolve_assignment(principal: Principal, assigned_to) -> tuple[int | None, int | None]:
    """
    Return (assigned_to, store_id) for a new order.

    admin: explicit assignee must be an employer of the chain; otherwise the
    first employer of the selected store (or of the chain) is picked.
    employer: defaults to self; an explicit assignee must share the store.
    The store follows the assignee, then the principal's own store.
    """
    assignee = None

    if principal.is_admin:
        if assigned_to not in (None, ""):
            assignee_id = parse_id(assigned_to, "assigned_to")
            assignee = db.session.query(User).filter(
                User.id == assignee_id,
                staff_clause(ChainScope(admin_id=principal.user_id)),
            ).first()
            if assignee is None:
                raise ForbiddenError("Assignee does not belong to your store chain")
        else:
            q = db.session.query(User).filter(staff_clause(ChainScope(admin_id=principal.user_id)))
            if principal.store_id is not None:
                q = q.filter(User.store_id == principal.store_id)
            assignee = q.order_by(User.id.asc()).first()
    else:
        if assigned_to in (None, "") or str(assigned_to) == str(principal.user_id):
            assignee = db.session.get(User, principal.user_id)
        else:
            assignee_id = parse_id(assigned_to, "assigned_to")
            assignee = db.session.get(User, assignee_id)
            if (
                assignee is None
                or principal.store_id is None
                or assignee.store_id != principal.store_id
            ):
                raise ForbiddenError("Assignee does not belong to your store")

    store_id = assignee.store_id if assignee and assignee.store_id else principal.store_id
    if principal.is_admin and store_id is None:
        raise ValidationError("Select a store or an assignee before creating orders")
    return (assignee.id if assignee else None), store_id


def create_order(principal: Principal, data: dict) -> Order:
    """
    Create an order with its items as one atomic unit.

    Raises:
        ValidationError: empty item list, bad quantity, unknown or inactive
            product, unknown promotion
        ForbiddenError: root caller, or assignee outside the caller's chain
    """
    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")
    if principal.is_root:
        raise ForbiddenError("Root accounts cannot create orders")

    customer_name = clean_string(data.get("customer_name"), "customer_name", max_length=128)
    customer_phone = clean_string(data.get("customer_phone"), "customer_phone", max_length=32)
    note = clean_string(data.get("note"), "note") or None
    promotion_id = data.get("promotion_id")
    promotion_id = None if promotion_id in (None, "") else parse_id(promotion_id, "promotion_id")

    scope = resolve_scope(principal)

    def _create() -> Order:
        with atomic():
            customer = _resolve_customer(customer_name, customer_phone)
            lines = _price_items(items, scope)
            subtotal = money(sum((line.line_total for line in lines), Decimal("0")))

            quote = quote_promotion(promotion_id, subtotal) if promotion_id else None

            assignee_id, store_id = _resolve_assignment(principal, data.get("assigned_to"))

            quote = confirm_quote(quote, store_id)
            discount = quote.discount if quote else Decimal("0")

            order = Order(
                code=generate_order_code(),
                customer=customer,
                status=ORDER_STATUS_CREATED,
                assigned_to=assignee_id,
                created_by=principal.user_id,
                store_id=store_id,
                total_amount=subtotal,
                discount_amount=discount,
                final_amount=final_amount(subtotal, discount),
                promotion_id=quote.promotion.id if quote else None,
                note=note,
            )
            for line in lines:
                order.items.append(OrderItem(
                    product_id=line.product.id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    note=line.note,
                ))
            order.status_history.append(OrderStatusHistory(
                status=ORDER_STATUS_CREATED,
                changed_by=principal.user_id,
            ))
            db.session.add(order)

            customer.total_orders = (customer.total_orders or 0) + 1
            customer.total_spent = money(Decimal(customer.total_spent or 0) + order.final_amount)
        return order

    order = run_with_retry(_create)
    current_app.logger.info(
        "Order %s created by user %s (store=%s, final=%s)",
        order.code, principal.user_id, order.store_id, order.final_amount,
    )
    return order


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_orders(scope: AccessScope, principal: Principal, filters: OrderFilters) -> list[Order]:
    """
    Scoped order list, newest first.

    Debt orders are hidden unless debt_only is set, which shows only them.
    Items are loaded in one batched query.
    """
    if is_empty(scope):
        return []

    q = (
        db.session.query(Order)
        .join(Customer, Order.customer_id == Customer.id)
        .filter(order_clause(scope))
        .options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.customer),
            selectinload(Order.assignee),
        )
    )

    if filters.my_orders and principal.is_employer:
        q = q.filter(Order.assigned_to == principal.user_id)
    if filters.status:
        q = q.filter(Order.status == parse_enum(filters.status, ORDER_STATUSES, "status"))
    if filters.assigned_to:
        q = q.filter(Order.assigned_to == filters.assigned_to)
    if filters.customer_phone:
        q = q.filter(Customer.phone.contains(filters.customer_phone, autoescape=True))
    if filters.on_date:
        q = q.filter(db.func.date(Order.created_at) == filters.on_date.isoformat())

    if filters.debt_only:
        q = q.filter(Order.is_debt.is_(True))
    else:
        q = q.filter(db.or_(Order.is_debt.is_(False), Order.is_debt.is_(None)))

    if filters.start_date and filters.end_date:
        validate_date_range(filters.start_date, filters.end_date)
        q = q.filter(
            db.func.date(Order.created_at) >= filters.start_date.isoformat(),
            db.func.date(Order.created_at) <= filters.end_date.isoformat(),
        )

    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def parse_filters(args) -> OrderFilters:
    """Build OrderFilters from query-string arguments."""
    assigned_to = args.get("assigned_to")
    return OrderFilters(
        status=args.get("status") or None,
        assigned_to=parse_id(assigned_to, "assigned_to") if assigned_to else None,
        customer_phone=(args.get("customer_phone") or "").strip() or None,
        my_orders=parse_bool_flag(args.get("my_orders")),
        on_date=parse_optional_date(args.get("date"), "date"),
        debt_only=parse_bool_flag(args.get("debt_only")),
        start_date=parse_optional_date(args.get("start_date"), "start_date"),
        end_date=parse_optional_date(args.get("end_date"), "end_date"),
    )


def get_order(scope: AccessScope, order_id: int, *, for_update: bool = False) -> Order:
    """Load one order inside the scope, or raise NotFoundError."""
    if is_empty(scope):
        raise NotFoundError("Order not found")
    q = db.session.query(Order).filter(Order.id == order_id, order_clause(scope))
    if for_update:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def _check_transition(order: Order, new_status: str) -> None:
    if new_status == order.status:
        raise ValidationError(f"Order is already {new_status}")
    if order.status in TERMINAL_STATUSES:
        raise ValidationError(f"Order is {order.status} and can no longer change status")


def _append_history(order: Order, status: str, user_id: int) -> None:
    order.status_history.append(OrderStatusHistory(status=status, changed_by=user_id))


def update_order(scope: AccessScope, principal: Principal, order_id: int, data: dict) -> Order:
    """
    Partial update: status, assigned_to, note, payment_method and full item
    replacement.

    Replacing items recomputes total_amount and final_amount; the
    discount and promotion captured at creation are kept.
    """
    order = get_order(scope, order_id, for_update=True)

    new_status = None
    if data.get("status") is not None:
        new_status = parse_enum(data["status"], ORDER_STATUSES, "status")
        _check_transition(order, new_status)

    payment_method = None
    if data.get("payment_method") not in (None, ""):
        payment_method = parse_enum(data["payment_method"], PAYMENT_METHODS, "payment_method")

    assignee_id = order.assigned_to
    if "assigned_to" in data:
        assignee_id = _validate_reassignment(principal, scope, data["assigned_to"])

    note = order.note
    if "note" in data:
        note = clean_string(data["note"], "note") or None

    items = data.get("items")
    if items is not None:
        if not isinstance(items, list) or not items:
            raise ValidationError("Order must contain at least one item")
        if order.is_terminal:
            raise ValidationError(f"Items of a {order.status} order cannot be changed")

    with atomic():
        if items is not None:
            lines = _price_items(items, scope)
            order.items.clear()
            db.session.flush()
            for line in lines:
                order.items.append(OrderItem(
                    product_id=line.product.id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    note=line.note,
                ))
            order.total_amount = money(sum((line.line_total for line in lines), Decimal("0")))
            order.final_amount = final_amount(order.total_amount, Decimal(order.discount_amount))

        if new_status is not None:
            order.status = new_status
            if new_status == ORDER_STATUS_COMPLETED and payment_method:
                order.payment_method = payment_method
            _append_history(order, new_status, principal.user_id)

        order.assigned_to = assignee_id
        order.note = note
        order.updated_by = principal.user_id
    return order


def _validate_reassignment(principal: Principal, scope: AccessScope, assigned_to) -> int | None:
    if assigned_to in (None, ""):
        return None
    assignee_id = parse_id(assigned_to, "assigned_to")
    assignee = db.session.query(User).filter(
        User.id == assignee_id,
        staff_clause(scope),
    ).first()
    if assignee is None:
        raise ForbiddenError("Assignee is outside your access scope")
    return assignee.id


def change_status(
    scope: AccessScope,
    principal: Principal,
    order_id: int,
    status,
    payment_method=None,
) -> Order:
    """
    Status-only transition (created or completed).

    Completing an order requires a payment method (cash or transfer).
    """
    if status in (None, ""):
        raise ValidationError("status is required")
    if status not in QUICK_STATUS_TARGETS:
        raise ValidationError('Invalid status. Only "created" and "completed" are allowed.')
    if status == ORDER_STATUS_COMPLETED:
        payment_method = parse_enum(payment_method, PAYMENT_METHODS, "payment_method")

    order = get_order(scope, order_id, for_update=True)
    _check_transition(order, status)

    with atomic():
        order.status = status
        if status == ORDER_STATUS_COMPLETED:
            order.payment_method = payment_method
        order.updated_by = principal.user_id
        _append_history(order, status, principal.user_id)
    return order


def mark_debt(scope: AccessScope, principal: Principal, order_id: int) -> Order:
    """Defer payment of a completed order."""
    order = get_order(scope, order_id, for_update=True)
    if order.status != ORDER_STATUS_COMPLETED:
        raise ValidationError("Only completed orders can be marked as debt")
    if order.is_debt:
        raise ValidationError("Order is already marked as debt")

    with atomic():
        order.is_debt = True
        order.debt_paid_at = None
        order.updated_by = principal.user_id
    return order


def mark_debt_paid(scope: AccessScope, principal: Principal, order_id: int) -> Order:
    """Settle a debt; revenue is attributed to the payment date."""
    order = get_order(scope, order_id, for_update=True)
    if not order.is_debt:
        raise ValidationError("Order is not marked as debt")

    with atomic():
        order.is_debt = False
        order.debt_paid_at = utcnow()
        order.updated_by = principal.user_id
    return order


def delete_order(scope: AccessScope, principal: Principal, order_id: int) -> dict:
    """
    Hard delete (admin only). Items and status history go with the order;
    customer counters are lifetime totals and are left as they are.
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can delete orders")
    order = get_order(scope, order_id, for_update=True)
    snapshot = order.to_dict()

    with atomic():
        db.session.delete(order)

    current_app.logger.info("Order %s deleted by user %s", snapshot["code"], principal.user_id)
    return snapshot
