# Overview: Service-layer operations for stores; chain-scoped reads and admin management.

"""
Store Service

MULTI-TENANT: a store belongs to the admin who created it (admin_id).
Admins only ever see and modify their own chain; employers see their own
store; root sees none.

Creating a store can create its employer account in the same unit of
work, so a store is never left without its login when the account is
rejected.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import Order, OrderItem, Product, Promotion, SessionToken, Store, User
from ..models.auth import ROLE_EMPLOYER
from ..models.tenancy import STORE_STATUS_ACTIVE, STORE_STATUSES
from ..validation import clean_string, parse_enum, parse_positive_int, require_string
from .concurrency import atomic
from .scope_service import AccessScope, ChainScope, Principal, is_empty, staff_clause, store_clause
from . import user_service


def list_stores(scope: AccessScope) -> list[Store]:
    if is_empty(scope):
        return []
    return db.session.query(Store).filter(store_clause(scope)).order_by(Store.name.asc(), Store.id.asc()).all()


def get_store(scope: AccessScope, store_id: int) -> Store:
    if is_empty(scope):
        raise NotFoundError("Store not found")
    store = db.session.query(Store).filter(Store.id == store_id, store_clause(scope)).first()
    if store is None:
        raise NotFoundError("Store not found")
    return store


def _validate_shared_account(admin_id: int, shared_account_id) -> int | None:
    if shared_account_id in (None, ""):
        return None
    account_id = parse_positive_int(shared_account_id, "shared_account_id")
    account = db.session.query(User).filter(
        User.id == account_id,
        staff_clause(ChainScope(admin_id=admin_id)),
    ).first()
    if account is None:
        raise ValidationError("Shared account must be an employer of your chain")
    return account.id


def create_store(principal: Principal, data: dict) -> Store:
    """
    Create a store owned by the calling admin.

    data["account"] (optional): {"username", "name", "password"} for the
    store's own employer login, created atomically with the store.
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can create stores")

    name = require_string(data.get("name"), "name", max_length=120)
    account = data.get("account")
    if account is not None and not isinstance(account, dict):
        raise ValidationError("account must be an object")

    store = Store(
        name=name,
        address=clean_string(data.get("address"), "address", max_length=255) or None,
        phone=clean_string(data.get("phone"), "phone", max_length=32) or None,
        admin_id=principal.user_id,
        shared_account_id=_validate_shared_account(principal.user_id, data.get("shared_account_id")),
        status=STORE_STATUS_ACTIVE,
    )

    with atomic():
        db.session.add(store)
        db.session.flush()
        if account:
            user_service.build_user(
                username=account.get("username"),
                name=account.get("name"),
                password=account.get("password"),
                role=ROLE_EMPLOYER,
                store_id=store.id,
                created_by=principal.user_id,
            )
    return store


def update_store(principal: Principal, scope: AccessScope, store_id: int, data: dict) -> Store:
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can update stores")
    store = get_store(scope, store_id)

    changes = {}
    if "name" in data:
        changes["name"] = require_string(data["name"], "name", max_length=120)
    if "address" in data:
        changes["address"] = clean_string(data["address"], "address", max_length=255) or None
    if "phone" in data:
        changes["phone"] = clean_string(data["phone"], "phone", max_length=32) or None
    if "status" in data:
        changes["status"] = parse_enum(data["status"], STORE_STATUSES, "status")
    if "shared_account_id" in data:
        changes["shared_account_id"] = _validate_shared_account(principal.user_id, data["shared_account_id"])
    if not changes:
        raise ValidationError("No fields to update")

    with atomic():
        for key, value in changes.items():
            setattr(store, key, value)
    return store


def delete_store(principal: Principal, scope: AccessScope, store_id: int) -> dict:
    """
    Delete a store together with its products, promotions and employer
    accounts.

    Refused once the store has order history (its orders, or orders that
    used its products, promotions or staff); deactivate it instead.
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can delete stores")
    store = get_store(scope, store_id)

    staff_ids = [row.id for row in db.session.query(User.id).filter(User.store_id == store.id)]
    product_ids = [row.id for row in db.session.query(Product.id).filter(Product.store_id == store.id)]
    promotion_ids = [row.id for row in db.session.query(Promotion.id).filter(Promotion.store_id == store.id)]

    in_use = db.session.query(Order.id).filter(db.or_(
        Order.store_id == store.id,
        Order.promotion_id.in_(promotion_ids),
    )).first()
    if in_use is None and product_ids:
        in_use = db.session.query(OrderItem.id).filter(OrderItem.product_id.in_(product_ids)).first()
    if in_use is not None or user_service.has_order_history(staff_ids):
        raise ValidationError("Store has order history; deactivate it instead")

    snapshot = store.to_dict()
    with atomic():
        user_service.purge_accounts(staff_ids)
        # Admin sessions that selected this store fall back to no store
        db.session.query(SessionToken).filter(SessionToken.store_id == store.id).update(
            {SessionToken.store_id: None}, synchronize_session=False,
        )
        db.session.query(Promotion).filter(Promotion.store_id == store.id).delete(synchronize_session="fetch")
        db.session.query(Product).filter(Product.store_id == store.id).delete(synchronize_session="fetch")
        db.session.query(Store).filter(Store.id == store.id).delete(synchronize_session="fetch")
    return snapshot
