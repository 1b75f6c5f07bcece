# Overview: Access scope resolution; turns a principal into composable SQL filters.

"""
Access Scope Resolver

Every store-bound query (orders, products, promotions, customers, reports)
goes through this module instead of assembling its own role branches.

resolve_scope() maps a Principal plus an optional requested store filter to
one of four scope values:

- EmptyScope: root. Root is the software vendor, never a store operator, so
  every store-bound list is empty (explicit early return, not an accident of
  an empty filter).
- ChainScope(admin_id): every store owned by the admin.
- StoreScope(store_id): one store (an employer's store, or an owned store an
  admin asked for explicitly).
- IdentityScope(user_id): employer without a store; matches rows the user is
  assigned to or created.

The *_clause() builders translate a scope into a SQLAlchemy boolean
expression. They are pure: no builder touches the session or mutates state.

LEGACY ROWS: orders with store_id IS NULL are attributed to a store through
their assignee or creator (User.store_id). Every order filter applies that
fallback, reports included.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from sqlalchemy import and_, false, or_, select

from ..extensions import db
from ..errors import ForbiddenError
from ..models import Customer, Order, Product, Promotion, Store, User
from ..models.auth import ROLE_ADMIN, ROLE_EMPLOYER, ROLE_ROOT


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as seen by scoping."""
    user_id: int
    role: str
    # Employer: the pinned store. Admin: the selected store context, if any.
    store_id: int | None = None

    @property
    def is_root(self) -> bool:
        return self.role == ROLE_ROOT

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_employer(self) -> bool:
        return self.role == ROLE_EMPLOYER


@dataclass(frozen=True)
class EmptyScope:
    pass


@dataclass(frozen=True)
class ChainScope:
    admin_id: int


@dataclass(frozen=True)
class StoreScope:
    store_id: int
    # Set when an admin narrowed the chain to one store
    admin_id: int | None = None


@dataclass(frozen=True)
class IdentityScope:
    user_id: int


AccessScope = Union[EmptyScope, ChainScope, StoreScope, IdentityScope]


def is_owned_store(admin_id: int, store_id: int) -> bool:
    return db.session.query(Store.id).filter(
        Store.id == store_id,
        Store.admin_id == admin_id,
    ).first() is not None


def require_owned_store(admin_id: int, store_id: int) -> None:
    """Raise ForbiddenError unless store_id belongs to the admin's chain."""
    if not is_owned_store(admin_id, store_id):
        raise ForbiddenError("Store does not belong to your chain")


def resolve_scope(principal: Principal, requested_store_id: int | None = None) -> AccessScope:
    """
    Compute the access scope for a principal.

    requested_store_id is only honoured for admins, after checking that
    the store is part of their chain. Employers are always pinned to their
    own store whatever they ask for.

    Raises ForbiddenError for an admin asking for a foreign store, or for
    an unknown role.
    """
    if principal.is_root:
        return EmptyScope()

    if principal.is_admin:
        if requested_store_id is None:
            return ChainScope(admin_id=principal.user_id)
        require_owned_store(principal.user_id, requested_store_id)
        return StoreScope(store_id=requested_store_id, admin_id=principal.user_id)

    if principal.is_employer:
        if principal.store_id is None:
            return IdentityScope(user_id=principal.user_id)
        return StoreScope(store_id=principal.store_id)

    raise ForbiddenError("Unknown role")


def is_empty(scope: AccessScope) -> bool:
    return isinstance(scope, EmptyScope)


def chain_store_ids(admin_id: int):
    """Subquery: ids of the stores owned by an admin."""
    return select(Store.id).where(Store.admin_id == admin_id)


def _scope_store_ids(scope: AccessScope):
    """Subquery (or single-element list) of store ids covered by a scope."""
    if isinstance(scope, ChainScope):
        return chain_store_ids(scope.admin_id)
    if isinstance(scope, StoreScope):
        return [scope.store_id]
    return None


def _staff_ids(store_ids):
    return select(User.id).where(User.store_id.in_(store_ids))


def order_clause(scope: AccessScope):
    """Filter on Order, with the legacy store_id IS NULL fallback."""
    if isinstance(scope, EmptyScope):
        return false()

    if isinstance(scope, IdentityScope):
        return or_(
            Order.assigned_to == scope.user_id,
            Order.created_by == scope.user_id,
        )

    store_ids = _scope_store_ids(scope)
    staff = _staff_ids(store_ids)
    legacy_match = or_(
        Order.assigned_to.in_(staff),
        Order.created_by.in_(staff),
    )
    if isinstance(scope, ChainScope):
        legacy_match = or_(legacy_match, Order.created_by == scope.admin_id)

    return or_(
        Order.store_id.in_(store_ids),
        and_(Order.store_id.is_(None), legacy_match),
    )


def product_clause(scope: AccessScope):
    """Filter on Product. Products without a store are sellable everywhere."""
    if isinstance(scope, EmptyScope):
        return false()
    if isinstance(scope, IdentityScope):
        return Product.store_id.is_(None)
    return or_(
        Product.store_id.in_(_scope_store_ids(scope)),
        Product.store_id.is_(None),
    )


def promotion_clause(scope: AccessScope):
    """
    Filter on Promotion for management screens.

    Admins see the promotions of their stores plus the global promotions
    they created; employers see their store's and every global promotion.
    """
    if isinstance(scope, EmptyScope):
        return false()
    if isinstance(scope, IdentityScope):
        return Promotion.store_id.is_(None)

    admin_id = scope.admin_id
    if admin_id is None:
        global_match = Promotion.store_id.is_(None)
    else:
        global_match = and_(Promotion.store_id.is_(None), Promotion.created_by == admin_id)

    return or_(Promotion.store_id.in_(_scope_store_ids(scope)), global_match)


def applicable_promotion_clause(scope: AccessScope):
    """Filter on Promotion for discovery: scoped store(s) or global."""
    if isinstance(scope, EmptyScope):
        return false()
    if isinstance(scope, IdentityScope):
        return Promotion.store_id.is_(None)
    return or_(
        Promotion.store_id.in_(_scope_store_ids(scope)),
        Promotion.store_id.is_(None),
    )


def customer_clause(scope: AccessScope):
    """Customers are visible when at least one of their orders is."""
    if isinstance(scope, EmptyScope):
        return false()
    return Customer.id.in_(select(Order.customer_id).where(order_clause(scope)))


def store_clause(scope: AccessScope):
    if isinstance(scope, EmptyScope) or isinstance(scope, IdentityScope):
        return false()
    if isinstance(scope, ChainScope):
        return Store.admin_id == scope.admin_id
    return Store.id == scope.store_id


def staff_clause(scope: AccessScope):
    """Filter on User: the employers a scope may see or assign work to."""
    if isinstance(scope, EmptyScope):
        return false()
    if isinstance(scope, IdentityScope):
        return User.id == scope.user_id
    return and_(
        User.role == ROLE_EMPLOYER,
        User.store_id.in_(_scope_store_ids(scope)),
    )
