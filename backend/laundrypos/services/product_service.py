# Overview: Service-layer operations for products; scoped reads and admin management.

from __future__ import annotations

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import OrderItem, Product
from ..models.products import PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_INACTIVE, PRODUCT_STATUSES, PRODUCT_UNITS
from ..validation import money, parse_enum, parse_positive_decimal, parse_positive_int, require_string
from .concurrency import atomic
from .scope_service import AccessScope, Principal, is_empty, product_clause, require_owned_store


def list_products(scope: AccessScope, status: str | None = None) -> list[Product]:
    if is_empty(scope):
        return []
    q = db.session.query(Product).filter(product_clause(scope))
    if status:
        q = q.filter(Product.status == parse_enum(status, PRODUCT_STATUSES, "status"))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(scope: AccessScope, product_id: int) -> Product:
    if is_empty(scope):
        raise NotFoundError("Product not found")
    product = db.session.query(Product).filter(
        Product.id == product_id,
        product_clause(scope),
    ).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _parse_eta(value) -> int | None:
    if value is None or value == "":
        return None
    return parse_positive_int(value, "eta_minutes", allow_zero=True)


def create_product(principal: Principal, data: dict) -> Product:
    """Create a product in one of the admin's stores (selected store by default)."""
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can create products")

    name = require_string(data.get("name"), "name", max_length=255)
    unit = parse_enum(data.get("unit"), PRODUCT_UNITS, "unit")
    price = money(parse_positive_decimal(data.get("price"), "price"))
    status = parse_enum(data.get("status") or PRODUCT_STATUS_ACTIVE, PRODUCT_STATUSES, "status")

    store_id = data.get("store_id")
    store_id = principal.store_id if store_id in (None, "") else parse_positive_int(store_id, "store_id")
    if store_id is None:
        raise ValidationError("store_id is required")
    require_owned_store(principal.user_id, store_id)

    product = Product(
        name=name,
        unit=unit,
        price=price,
        eta_minutes=_parse_eta(data.get("eta_minutes")),
        status=status,
        store_id=store_id,
    )
    with atomic():
        db.session.add(product)
    return product


def update_product(principal: Principal, scope: AccessScope, product_id: int, data: dict) -> Product:
    """
    Partial update of a chain product.

    Products without a store are shared by every chain and are read-only
    for admins.
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can update products")
    product = get_product(scope, product_id)
    if product.store_id is None:
        raise ForbiddenError("Shared products cannot be modified")

    changes = {}
    if "name" in data:
        changes["name"] = require_string(data["name"], "name", max_length=255)
    if "unit" in data:
        changes["unit"] = parse_enum(data["unit"], PRODUCT_UNITS, "unit")
    if "price" in data:
        changes["price"] = money(parse_positive_decimal(data["price"], "price"))
    if "eta_minutes" in data:
        changes["eta_minutes"] = _parse_eta(data["eta_minutes"])
    if "status" in data:
        changes["status"] = parse_enum(data["status"], PRODUCT_STATUSES, "status")
    if not changes:
        raise ValidationError("No fields to update")

    with atomic():
        for key, value in changes.items():
            setattr(product, key, value)
    return product


def delete_product(principal: Principal, scope: AccessScope, product_id: int) -> tuple[dict, str]:
    """
    Remove a chain product.

    A product some order line still points at is deactivated instead, so
    past orders keep their item history. Returns (snapshot, action) with
    action "deleted" or "deactivated".
    """
    if not principal.is_admin:
        raise ForbiddenError("Only chain admins can delete products")
    product = get_product(scope, product_id)
    if product.store_id is None:
        raise ForbiddenError("Shared products cannot be modified")

    in_use = db.session.query(OrderItem.id).filter(OrderItem.product_id == product.id).first()
    if in_use:
        with atomic():
            product.status = PRODUCT_STATUS_INACTIVE
        return product.to_dict(), "deactivated"

    snapshot = product.to_dict()
    with atomic():
        db.session.delete(product)
    return snapshot, "deleted"
