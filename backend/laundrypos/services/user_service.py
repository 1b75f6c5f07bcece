# Overview: Account management; root manages admins, admins manage their employers.

from __future__ import annotations

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import Order, OrderStatusHistory, Promotion, SessionToken, Store, User
from ..models.auth import ROLE_ADMIN, ROLE_EMPLOYER, USER_STATUSES, USER_STATUS_INACTIVE
from ..validation import clean_string, parse_enum, parse_positive_int, require_string
from .auth_service import PasswordValidationError, hash_password
from .concurrency import atomic
from .scope_service import Principal, is_owned_store, resolve_scope, staff_clause
from . import session_service


def _managed_users_query(principal: Principal):
    """Accounts a principal may manage: admins for root, chain employers for admins."""
    if principal.is_root:
        return db.session.query(User).filter(User.role == ROLE_ADMIN)
    if principal.is_admin:
        return db.session.query(User).filter(staff_clause(resolve_scope(principal)))
    raise ForbiddenError("Insufficient permissions")


def list_users(principal: Principal, store_id: int | None = None) -> list[User]:
    q = _managed_users_query(principal)
    if store_id is not None:
        q = q.filter(User.store_id == store_id)
    return q.order_by(User.name.asc(), User.id.asc()).all()


def get_user(principal: Principal, user_id: int) -> User:
    user = _managed_users_query(principal).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def build_user(
    username,
    name,
    password,
    role: str,
    store_id: int | None = None,
    created_by: int | None = None,
) -> User:
    """
    Validate and add a new account to the session (no commit).

    Callers own the transaction.
    """
    username = require_string(username, "username", max_length=64)
    name = require_string(name, "name", max_length=128)
    if db.session.query(User.id).filter(User.username == username).first():
        raise ValidationError("Username already exists")
    try:
        password_hash = hash_password(password)
    except PasswordValidationError as e:
        raise ValidationError(str(e))

    user = User(
        username=username,
        name=name,
        password_hash=password_hash,
        role=role,
        store_id=store_id,
        created_by=created_by,
    )
    db.session.add(user)
    return user


def create_user(principal: Principal, data: dict) -> User:
    """
    root: creates chain admins (no store).
    admin: creates employers pinned to one of their stores.
    """
    if principal.is_root:
        role, store_id = ROLE_ADMIN, None
    elif principal.is_admin:
        role = ROLE_EMPLOYER
        raw_store = data.get("store_id")
        store_id = principal.store_id if raw_store in (None, "") else parse_positive_int(raw_store, "store_id")
        if store_id is None:
            raise ValidationError("store_id is required")
        if not is_owned_store(principal.user_id, store_id):
            raise ForbiddenError("Store does not belong to your chain")
    else:
        raise ForbiddenError("Insufficient permissions")

    with atomic():
        user = build_user(
            username=data.get("username"),
            name=data.get("name"),
            password=data.get("password"),
            role=role,
            store_id=store_id,
            created_by=principal.user_id,
        )
        user.phone = clean_string(data.get("phone"), "phone", max_length=32) or None
    return user


def update_user(principal: Principal, user_id: int, data: dict) -> User:
    """Name, phone, status and password changes. Deactivation revokes sessions."""
    user = get_user(principal, user_id)

    changes = {}
    if "name" in data:
        changes["name"] = require_string(data["name"], "name", max_length=128)
    if "phone" in data:
        changes["phone"] = clean_string(data["phone"], "phone", max_length=32) or None
    if "status" in data:
        changes["status"] = parse_enum(data["status"], USER_STATUSES, "status")
    if data.get("password"):
        try:
            changes["password_hash"] = hash_password(data["password"])
        except PasswordValidationError as e:
            raise ValidationError(str(e))
    if not changes:
        raise ValidationError("No fields to update")

    with atomic():
        for key, value in changes.items():
            setattr(user, key, value)

    if changes.get("status") == USER_STATUS_INACTIVE:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    elif "password_hash" in changes:
        session_service.revoke_all_user_sessions(user.id, reason="Password changed")
    return user


def has_order_history(user_ids: list[int]) -> bool:
    """True when any of the accounts created, took, edited or moved an order."""
    if not user_ids:
        return False
    touched = db.session.query(Order.id).filter(db.or_(
        Order.created_by.in_(user_ids),
        Order.assigned_to.in_(user_ids),
        Order.updated_by.in_(user_ids),
    )).first()
    if touched:
        return True
    moved = db.session.query(OrderStatusHistory.id).filter(OrderStatusHistory.changed_by.in_(user_ids)).first()
    return moved is not None


def purge_accounts(user_ids: list[int]) -> None:
    """
    Delete accounts and their sessions, clearing soft references to them.

    Runs inside the caller's unit of work.
    """
    if not user_ids:
        return
    db.session.query(SessionToken).filter(SessionToken.user_id.in_(user_ids)).delete(synchronize_session=False)
    db.session.query(Store).filter(Store.shared_account_id.in_(user_ids)).update(
        {Store.shared_account_id: None}, synchronize_session=False,
    )
    db.session.query(Promotion).filter(Promotion.created_by.in_(user_ids)).update(
        {Promotion.created_by: None}, synchronize_session=False,
    )
    db.session.query(User).filter(User.created_by.in_(user_ids)).update(
        {User.created_by: None}, synchronize_session=False,
    )
    db.session.query(User).filter(User.id.in_(user_ids)).delete(synchronize_session="fetch")


def delete_user(principal: Principal, user_id: int) -> dict:
    """
    Delete a managed account.

    Accounts that own stores or appear in order history are refused;
    deactivating them keeps the history attributable.
    """
    if user_id == principal.user_id:
        raise ValidationError("You cannot delete your own account")
    user = get_user(principal, user_id)

    if db.session.query(Store.id).filter(Store.admin_id == user.id).first():
        raise ValidationError("User still owns stores; delete them first")
    if has_order_history([user.id]):
        raise ValidationError("User has order history; deactivate the account instead")

    snapshot = user.to_dict()
    with atomic():
        purge_accounts([user.id])
    return snapshot
