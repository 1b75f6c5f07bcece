# Overview: Flask API routes for stores; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role, request_scope
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN
from ..services import audit_service, store_service


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


def _audit(action: str, store_id: int, after_data: dict | None) -> None:
    audit_service.record_audit(
        user_id=g.principal.user_id,
        action=action,
        entity_type="store",
        entity_id=store_id,
        after_data=after_data,
        ip_address=request.remote_addr,
    )


@stores_bp.get("")
@require_auth
def list_stores_route():
    try:
        stores = store_service.list_stores(request_scope())
        return jsonify({"stores": [s.to_dict() for s in stores]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stores")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.get("/<int:store_id>")
@require_auth
def get_store_route(store_id: int):
    try:
        store = store_service.get_store(request_scope(), store_id)
        return jsonify({"store": store.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_store_route():
    """
    Body: name, address, phone, shared_account_id,
    account {username, name, password} (optional store login)
    """
    try:
        data = request.get_json(silent=True) or {}
        store = store_service.create_store(g.principal, data)
        return jsonify({"store": store.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.patch("/<int:store_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_store_route(store_id: int):
    try:
        data = request.get_json(silent=True) or {}
        store = store_service.update_store(g.principal, request_scope(), store_id, data)
        return jsonify({"store": store.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.delete("/<int:store_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_store_route(store_id: int):
    """Also deletes the store's products, promotions and employer accounts."""
    try:
        snapshot = store_service.delete_store(g.principal, request_scope(), store_id)
        _audit("delete", store_id, snapshot)
        return jsonify({"message": "Store deleted successfully"}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete store")
        return jsonify({"error": "Internal server error"}), 500
