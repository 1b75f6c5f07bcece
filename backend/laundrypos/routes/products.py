# Overview: Flask API routes for products; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role, request_scope
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN
from ..services import audit_service, product_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _audit(action: str, product_id: int, after_data: dict | None, store_id: int | None) -> None:
    audit_service.record_audit(
        user_id=g.principal.user_id,
        action=action,
        entity_type="product",
        entity_id=product_id,
        after_data=after_data,
        store_id=store_id,
        ip_address=request.remote_addr,
    )


@products_bp.get("")
@require_auth
def list_products_route():
    """Query: status, store_id"""
    try:
        products = product_service.list_products(request_scope(), status=request.args.get("status"))
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(request_scope(), product_id)
        return jsonify({"product": product.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """Body: name, unit, price, eta_minutes, status, store_id"""
    try:
        data = request.get_json(silent=True) or {}
        product = product_service.create_product(g.principal, data)
        return jsonify({"product": product.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        product = product_service.update_product(g.principal, request_scope(), product_id, data)
        return jsonify({"product": product.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    """Products already sold are deactivated rather than deleted."""
    try:
        snapshot, action = product_service.delete_product(g.principal, request_scope(), product_id)
        _audit("delete" if action == "deleted" else "deactivate", product_id, snapshot, snapshot.get("store_id"))
        if action == "deactivated":
            message = "Product is used by existing orders and was deactivated"
        else:
            message = "Product deleted successfully"
        return jsonify({"message": message, "action": action, "product": snapshot}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
