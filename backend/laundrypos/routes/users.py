# Overview: Flask API routes for user accounts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN
from ..services import audit_service, user_service
from ..validation import parse_store_filter


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    """Root lists admins; an admin lists the employers of the chain."""
    try:
        store_id = parse_store_filter(request.args.get("store_id"))
        users = user_service.list_users(g.principal, store_id=store_id)
        return jsonify({"users": [u.to_dict() for u in users]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(g.principal, user_id)
        return jsonify({"user": user.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """Body: username, name, phone, password, store_id (employers)"""
    try:
        data = request.get_json(silent=True) or {}
        user = user_service.create_user(g.principal, data)
        return jsonify({"user": user.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    """Body: name, phone, status, password"""
    try:
        data = request.get_json(silent=True) or {}
        user = user_service.update_user(g.principal, user_id, data)
        return jsonify({"user": user.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: int):
    """Root deletes admins; an admin deletes the employers of the chain."""
    try:
        snapshot = user_service.delete_user(g.principal, user_id)
        audit_service.record_audit(
            user_id=g.principal.user_id,
            action="delete",
            entity_type="user",
            entity_id=user_id,
            after_data=snapshot,
            ip_address=request.remote_addr,
        )
        return jsonify({"message": "User deleted successfully"}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500
