# Overview: Promotion evaluation (discount math, eligibility) and promotion management.

"""
Promotion Service

EVALUATION:
- compute_discount(): percentage (capped by max_discount_amount) or fixed
- quote_promotion(): optimistic eligibility check at order creation,
  before the order's store is known
- confirm_quote(): second pass once the store is resolved; a store
  mismatch zeroes the discount instead of failing the order

Order creation takes one promotion id proposed by the client and verifies
it; only the /applicable discovery endpoint lists candidates, ordered by
their threshold descending.

MANAGEMENT: admin-only CRUD scoped to the admin's chain (store promotions
of owned stores plus global promotions the admin created).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import case

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import Customer, Order, Promotion, Store
from ..models.promotions import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    DISCOUNT_TYPES,
    PROMO_STATUS_ACTIVE,
    PROMO_STATUSES,
    PROMO_TYPE_BILL_AMOUNT,
    PROMO_TYPE_ORDER_COUNT,
    PROMO_TYPES,
)
from ..validation import (
    clean_string,
    money,
    parse_date,
    parse_enum,
    parse_positive_decimal,
    parse_positive_int,
    require_string,
    validate_date_range,
)
from .concurrency import atomic
from .scope_service import (
    AccessScope,
    Principal,
    applicable_promotion_clause,
    is_empty,
    promotion_clause,
    require_owned_store,
    resolve_scope,
)
from laundrypos.time_utils import today


ZERO = Decimal("0")


@dataclass(frozen=True)
class PromotionQuote:
    """A promotion that passed the optimistic check, with its discount."""
    promotion: Promotion
    discount: Decimal


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def compute_discount(promotion: Promotion, subtotal: Decimal) -> Decimal:
    """
    Discount granted by a promotion on a subtotal.

    percentage: subtotal * value / 100, clamped to max_discount_amount
    fixed: value (the cap does not apply)
    """
    value = Decimal(promotion.discount_value)
    if promotion.discount_type == DISCOUNT_PERCENTAGE:
        discount = subtotal * value / Decimal(100)
        if promotion.max_discount_amount is not None:
            cap = Decimal(promotion.max_discount_amount)
            if discount > cap:
                discount = cap
    elif promotion.discount_type == DISCOUNT_FIXED:
        discount = value
    else:
        discount = ZERO
    return money(discount)


def final_amount(subtotal: Decimal, discount: Decimal) -> Decimal:
    return money(max(ZERO, subtotal - discount))


def is_eligible(promotion: Promotion, subtotal: Decimal, on_date: date | None = None) -> bool:
    """Store-independent eligibility of a bill_amount promotion."""
    on_date = on_date or today()
    if promotion.type != PROMO_TYPE_BILL_AMOUNT:
        return False
    if promotion.status != PROMO_STATUS_ACTIVE:
        return False
    if not (promotion.start_date <= on_date <= promotion.end_date):
        return False
    if promotion.min_bill_amount is None:
        return False
    return Decimal(promotion.min_bill_amount) <= subtotal


def store_matches(promotion: Promotion, store_id: int | None) -> bool:
    """Global promotions fit any store; store promotions only their own."""
    if promotion.store_id is None:
        return True
    return store_id is not None and promotion.store_id == store_id


def quote_promotion(promotion_id: int, subtotal: Decimal) -> PromotionQuote | None:
    """
    Optimistic pass: check the proposed promotion before the store is known.

    An unknown id is a client error; an ineligible promotion is simply
    not applied.
    """
    promotion = db.session.get(Promotion, promotion_id)
    if promotion is None:
        raise ValidationError("Promotion not found", {"promotion_id": promotion_id})
    if not is_eligible(promotion, subtotal):
        return None
    return PromotionQuote(promotion=promotion, discount=compute_discount(promotion, subtotal))


def confirm_quote(quote: PromotionQuote | None, store_id: int | None) -> PromotionQuote | None:
    """Confirm pass: drop the quote when the resolved store does not match."""
    if quote is None:
        return None
    if not store_matches(quote.promotion, store_id):
        return None
    return quote


def customer_order_count(customer_id: int | None = None, customer_phone: str | None = None) -> int:
    customer = None
    if customer_id:
        customer = db.session.get(Customer, customer_id)
    elif customer_phone:
        customer = db.session.query(Customer).filter_by(phone=customer_phone).first()
    return customer.total_orders if customer else 0


def find_applicable(
    scope: AccessScope,
    bill_amount: Decimal,
    order_count: int = 0,
    on_date: date | None = None,
) -> list[Promotion]:
    """
    Discovery list: active, in-date promotions whose threshold is met,
    restricted to the scope's store(s) plus global promotions and ordered
    by threshold descending.
    """
    if is_empty(scope):
        return []

    on_date = on_date or today()
    threshold = case(
        (Promotion.type == PROMO_TYPE_ORDER_COUNT, Promotion.min_order_count),
        (Promotion.type == PROMO_TYPE_BILL_AMOUNT, Promotion.min_bill_amount),
    )

    return (
        db.session.query(Promotion)
        .filter(
            Promotion.status == PROMO_STATUS_ACTIVE,
            Promotion.start_date <= on_date,
            Promotion.end_date >= on_date,
            db.or_(
                db.and_(Promotion.type == PROMO_TYPE_ORDER_COUNT, Promotion.min_order_count <= order_count),
                db.and_(Promotion.type == PROMO_TYPE_BILL_AMOUNT, Promotion.min_bill_amount <= bill_amount),
            ),
            applicable_promotion_clause(scope),
        )
        .order_by(threshold.desc(), Promotion.id.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Management
# ---------------------------------------------------------------------------

def list_promotions(
    scope: AccessScope,
    status: str | None = None,
    promo_type: str | None = None,
) -> list[Promotion]:
    if is_empty(scope):
        return []
    q = db.session.query(Promotion).filter(promotion_clause(scope))
    if status:
        q = q.filter(Promotion.status == parse_enum(status, PROMO_STATUSES, "status"))
    if promo_type:
        q = q.filter(Promotion.type == parse_enum(promo_type, PROMO_TYPES, "type"))
    return q.order_by(Promotion.created_at.desc(), Promotion.id.desc()).all()


def get_promotion(scope: AccessScope, promotion_id: int) -> Promotion:
    if is_empty(scope):
        raise NotFoundError("Promotion not found")
    promotion = db.session.query(Promotion).filter(
        Promotion.id == promotion_id,
        promotion_clause(scope),
    ).first()
    if promotion is None:
        raise NotFoundError("Promotion not found")
    return promotion


def _default_store_id(principal: Principal) -> int | None:
    if principal.store_id is not None:
        return principal.store_id
    first = (
        db.session.query(Store.id)
        .filter(Store.admin_id == principal.user_id)
        .order_by(Store.id.asc())
        .first()
    )
    return first[0] if first else None


def _parse_thresholds(promo_type: str, min_bill_amount, min_order_count) -> tuple[Decimal | None, int | None]:
    """Each type keeps only its own threshold."""
    if promo_type == PROMO_TYPE_BILL_AMOUNT:
        return money(parse_positive_decimal(min_bill_amount, "min_bill_amount")), None
    return None, parse_positive_int(min_order_count, "min_order_count")


def _parse_max_discount(value) -> Decimal | None:
    if value is None or value == "":
        return None
    return money(parse_positive_decimal(value, "max_discount_amount"))


def _check_percentage(discount_type: str, value: Decimal) -> None:
    if discount_type == DISCOUNT_PERCENTAGE and Decimal(value) > 100:
        raise ValidationError("Percentage discount must not exceed 100")


def create_promotion(principal: Principal, data: dict) -> Promotion:
    """
    Create a promotion for the admin's chain.

    Without an explicit store_id, the selected store (then the first
    owned store) is used.
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can create promotions")

    name = require_string(data.get("name"), "name", max_length=255)
    promo_type = parse_enum(data.get("type") or PROMO_TYPE_BILL_AMOUNT, PROMO_TYPES, "type")
    discount_type = parse_enum(data.get("discount_type"), DISCOUNT_TYPES, "discount_type")
    discount_value = parse_positive_decimal(data.get("discount_value"), "discount_value")
    _check_percentage(discount_type, discount_value)
    min_bill_amount, min_order_count = _parse_thresholds(
        promo_type, data.get("min_bill_amount"), data.get("min_order_count"),
    )

    if not data.get("start_date") or not data.get("end_date"):
        raise ValidationError("start_date and end_date are required")
    start_date = parse_date(data.get("start_date"), "start_date")
    end_date = parse_date(data.get("end_date"), "end_date")
    validate_date_range(start_date, end_date)

    status = parse_enum(data.get("status") or PROMO_STATUS_ACTIVE, PROMO_STATUSES, "status")

    store_id = data.get("store_id")
    if store_id in (None, ""):
        store_id = _default_store_id(principal)
    else:
        store_id = parse_positive_int(store_id, "store_id")
    if store_id is not None:
        require_owned_store(principal.user_id, store_id)

    promotion = Promotion(
        name=name,
        description=clean_string(data.get("description"), "description") or None,
        type=promo_type,
        min_bill_amount=min_bill_amount,
        min_order_count=min_order_count,
        discount_type=discount_type,
        discount_value=money(discount_value),
        max_discount_amount=_parse_max_discount(data.get("max_discount_amount")),
        start_date=start_date,
        end_date=end_date,
        status=status,
        store_id=store_id,
        created_by=principal.user_id,
    )
    with atomic():
        db.session.add(promotion)
    return promotion


def update_promotion(principal: Principal, promotion_id: int, data: dict) -> Promotion:
    """
    Partial update; only fields present in data change.

    Everything is validated before the row is touched.
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can update promotions")
    promotion = get_promotion(resolve_scope(principal), promotion_id)

    changes = {}
    if "name" in data:
        changes["name"] = require_string(data["name"], "name", max_length=255)
    if "description" in data:
        changes["description"] = clean_string(data["description"], "description") or None
    if "type" in data:
        changes["type"] = parse_enum(data["type"], PROMO_TYPES, "type")
    if "discount_type" in data:
        changes["discount_type"] = parse_enum(data["discount_type"], DISCOUNT_TYPES, "discount_type")
    if "discount_value" in data:
        changes["discount_value"] = money(parse_positive_decimal(data["discount_value"], "discount_value"))
    if "max_discount_amount" in data:
        changes["max_discount_amount"] = _parse_max_discount(data["max_discount_amount"])
    if "start_date" in data:
        changes["start_date"] = parse_date(data["start_date"], "start_date")
    if "end_date" in data:
        changes["end_date"] = parse_date(data["end_date"], "end_date")
    if "status" in data:
        changes["status"] = parse_enum(data["status"], PROMO_STATUSES, "status")

    if "type" in data or "min_bill_amount" in data or "min_order_count" in data:
        changes["min_bill_amount"], changes["min_order_count"] = _parse_thresholds(
            changes.get("type", promotion.type),
            data.get("min_bill_amount", promotion.min_bill_amount),
            data.get("min_order_count", promotion.min_order_count),
        )

    if not changes:
        raise ValidationError("No fields to update")

    _check_percentage(
        changes.get("discount_type", promotion.discount_type),
        changes.get("discount_value", promotion.discount_value),
    )
    validate_date_range(
        changes.get("start_date", promotion.start_date),
        changes.get("end_date", promotion.end_date),
    )

    with atomic():
        for key, value in changes.items():
            setattr(promotion, key, value)
    return promotion


def delete_promotion(principal: Principal, promotion_id: int) -> dict:
    """
    Delete a promotion that no order references.

    Orders keep their resolved discount, so a used promotion must be
    deactivated instead.
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can delete promotions")
    promotion = get_promotion(resolve_scope(principal), promotion_id)

    in_use = db.session.query(Order.id).filter(Order.promotion_id == promotion.id).first()
    if in_use:
        raise ValidationError("Promotion is used by existing orders; deactivate it instead")

    snapshot = promotion.to_dict()
    with atomic():
        db.session.delete(promotion)
    return snapshot
