# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order API routes

Every route resolves the caller's access scope first. Orders outside the
scope answer 404, the same as missing ones.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role, request_scope
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN
from ..services import audit_service, order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _audit(action: str, order_id: int, after_data: dict | None, store_id: int | None) -> None:
    audit_service.record_audit(
        user_id=g.principal.user_id,
        action=action,
        entity_type="order",
        entity_id=order_id,
        after_data=after_data,
        store_id=store_id,
        ip_address=request.remote_addr,
    )


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List orders in scope with their items.

    Query: status, assigned_to, customer_phone, my_orders, date, store_id,
    debt_only, start_date, end_date
    """
    try:
        scope = request_scope()
        filters = order_service.parse_filters(request.args)
        orders = order_service.list_orders(scope, g.principal, filters)
        return jsonify({"orders": [o.to_dict(include_items=True) for o in orders]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    """Single order with items and full status history."""
    try:
        order = order_service.get_order(request_scope(), order_id)
        payload = order.to_dict(include_items=True)
        payload["status_history"] = [
            h.to_dict() for h in sorted(order.status_history, key=lambda h: h.id, reverse=True)
        ]
        return jsonify({"order": payload}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order.

    Body: customer_name, customer_phone, items [{product_id, quantity, note}],
    note, assigned_to, promotion_id
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(g.principal, data)
        payload = order.to_dict(include_items=True)
        _audit("create", order.id, payload, order.store_id)
        return jsonify({"order": payload}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """Body: status, assigned_to, note, payment_method, items (full replacement)."""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.update_order(request_scope(), g.principal, order_id, data)
        payload = order.to_dict(include_items=True)
        _audit("update", order.id, payload, order.store_id)
        return jsonify({"order": payload}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/status")
@require_auth
def change_status_route(order_id: int):
    """Body: status (created|completed), payment_method (cash|transfer when completing)."""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.change_status(
            request_scope(),
            g.principal,
            order_id,
            data.get("status"),
            data.get("payment_method"),
        )
        return jsonify({"order": order.to_dict(include_items=True)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/debt")
@require_auth
def mark_debt_route(order_id: int):
    try:
        order = order_service.mark_debt(request_scope(), g.principal, order_id)
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark order as debt")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/debt/paid")
@require_auth
def mark_debt_paid_route(order_id: int):
    try:
        order = order_service.mark_debt_paid(request_scope(), g.principal, order_id)
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark debt as paid")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_order_route(order_id: int):
    """Hard delete (chain admins only; root is refused)."""
    try:
        snapshot = order_service.delete_order(request_scope(), g.principal, order_id)
        _audit("delete", order_id, snapshot, snapshot.get("store_id"))
        return jsonify({"message": "Order deleted successfully"}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
