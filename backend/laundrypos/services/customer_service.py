# Overview: Scoped customer lookups and registration (customers are visible through their orders).

from __future__ import annotations

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import Customer, Order
from ..models.customers import TEMP_PHONE_PREFIX
from ..validation import clean_string, require_string
from .concurrency import atomic, run_with_retry
from .scope_service import AccessScope, Principal, customer_clause, is_empty, order_clause


DEFAULT_LIMIT = 20
MAX_LIMIT = 50


def _clamp_limit(limit: str | int | None) -> int:
    try:
        value = int(limit) if limit not in (None, "") else DEFAULT_LIMIT
    except (TypeError, ValueError):
        value = DEFAULT_LIMIT
    if value <= 0:
        value = DEFAULT_LIMIT
    return min(value, MAX_LIMIT)


def list_customers(
    scope: AccessScope,
    phone: str | None = None,
    search: str | None = None,
    limit: str | int | None = None,
) -> list[Customer]:
    """Customers with at least one order in scope; best spenders first."""
    if is_empty(scope):
        return []

    q = db.session.query(Customer).filter(customer_clause(scope))
    if phone or search:
        # Walk-in placeholders are never found by phone or name
        q = q.filter(~Customer.is_walk_in)
    if phone:
        q = q.filter(Customer.phone.contains(phone, autoescape=True))
    if search:
        q = q.filter(db.or_(
            Customer.name.contains(search, autoescape=True),
            Customer.phone.contains(search, autoescape=True),
        ))

    return (
        q.order_by(Customer.total_spent.desc(), Customer.created_at.desc(), Customer.id.desc())
        .limit(_clamp_limit(limit))
        .all()
    )


def find_by_phone(scope: AccessScope, phone: str) -> Customer | None:
    """
    Exact phone lookup for order-form autofill.

    Walk-in placeholders (temp_*) are never resolved by phone.
    """
    phone = (phone or "").strip()
    if not phone or phone.startswith(TEMP_PHONE_PREFIX) or is_empty(scope):
        return None
    return db.session.query(Customer).filter(
        Customer.phone == phone,
        customer_clause(scope),
    ).first()


def get_customer(scope: AccessScope, customer_id: int) -> Customer:
    if is_empty(scope):
        raise NotFoundError("Customer not found")
    customer = db.session.query(Customer).filter(
        Customer.id == customer_id,
        customer_clause(scope),
    ).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def customer_orders(scope: AccessScope, customer_id: int) -> list[Order]:
    """The customer's orders that fall inside the scope, newest first."""
    if is_empty(scope):
        return []
    return (
        db.session.query(Order)
        .filter(Order.customer_id == customer_id, order_clause(scope))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def _parse_phone(value) -> str:
    phone = require_string(value, "phone", max_length=32)
    if phone.startswith(TEMP_PHONE_PREFIX):
        raise ValidationError("Invalid customer phone")
    return phone


def _apply_details(customer: Customer, data: dict) -> None:
    if "name" in data:
        customer.name = require_string(data["name"], "name", max_length=128)
    if "address" in data:
        customer.address = clean_string(data["address"], "address", max_length=255) or None
    if "note" in data:
        customer.note = clean_string(data["note"], "note") or None


def _is_editable(scope: AccessScope, customer: Customer) -> bool:
    if db.session.query(Order.id).filter(Order.customer_id == customer.id).first() is None:
        return True
    return db.session.query(Customer.id).filter(
        Customer.id == customer.id,
        customer_clause(scope),
    ).first() is not None


def save_customer(principal: Principal, scope: AccessScope, data: dict) -> tuple[Customer, bool]:
    """
    Register a customer ahead of their first order, keyed by phone.

    A phone that already belongs to a customer in scope (or to one that
    has no orders yet) updates that customer instead. Returns
    (customer, created).
    """
    if principal.is_root:
        raise ForbiddenError("Root accounts do not manage customers")
    phone = _parse_phone(data.get("phone"))
    if "name" not in data:
        raise ValidationError("name is required")

    def unit_of_work():
        with atomic():
            customer = db.session.query(Customer).filter(Customer.phone == phone).first()
            created = customer is None
            if created:
                customer = Customer(phone=phone, total_orders=0, total_spent=0)
                db.session.add(customer)
            elif not _is_editable(scope, customer):
                raise ValidationError("A customer with this phone already exists")
            _apply_details(customer, data)
        return customer, created

    return run_with_retry(unit_of_work)


def update_customer(principal: Principal, scope: AccessScope, customer_id: int, data: dict) -> Customer:
    """
    Edit name, phone, address and note of a customer in scope.

    Giving a walk-in customer a real phone makes them searchable.
    """
    if principal.is_root:
        raise ForbiddenError("Root accounts do not manage customers")
    customer = get_customer(scope, customer_id)

    phone = _parse_phone(data["phone"]) if "phone" in data else None
    if not any(key in data for key in ("name", "phone", "address", "note")):
        raise ValidationError("No fields to update")
    if phone and phone != customer.phone:
        taken = db.session.query(Customer.id).filter(Customer.phone == phone, Customer.id != customer.id).first()
        if taken:
            raise ValidationError("A customer with this phone already exists")

    with atomic():
        if phone:
            customer.phone = phone
        _apply_details(customer, data)
    return customer
