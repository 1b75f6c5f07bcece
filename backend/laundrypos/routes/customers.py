# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, request_scope
from ..errors import DomainError
from ..services import audit_service, customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _audit(action: str, customer: dict) -> None:
    audit_service.record_audit(
        user_id=g.principal.user_id,
        action=action,
        entity_type="customer",
        entity_id=customer["id"],
        after_data=customer,
        store_id=g.principal.store_id,
        ip_address=request.remote_addr,
    )


@customers_bp.get("")
@require_auth
def list_customers_route():
    """
    Customers with at least one order in the caller's scope.

    Query: phone, search, store_id, limit (default 20, max 50)
    """
    try:
        customers = customer_service.list_customers(
            request_scope(),
            phone=request.args.get("phone"),
            search=request.args.get("search"),
            limit=request.args.get("limit"),
        )
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/by-phone/<phone>")
@require_auth
def customer_by_phone_route(phone: str):
    """Order-form autofill. Answers {"customer": null} when nothing matches."""
    try:
        customer = customer_service.find_by_phone(request_scope(), phone)
        return jsonify({"customer": customer.to_dict() if customer else None}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to look up customer by phone")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(request_scope(), customer_id)
        return jsonify({"customer": customer.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/orders")
@require_auth
def customer_orders_route(customer_id: int):
    try:
        scope = request_scope()
        customer_service.get_customer(scope, customer_id)
        orders = customer_service.customer_orders(scope, customer_id)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list customer orders")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("")
@require_auth
def save_customer_route():
    """
    Body: phone, name, address, note

    201 for a new customer, 200 when the phone matched an existing one.
    """
    try:
        data = request.get_json(silent=True) or {}
        customer, created = customer_service.save_customer(g.principal, request_scope(), data)
        payload = customer.to_dict()
        _audit("create" if created else "update", payload)
        return jsonify({"customer": payload}), 201 if created else 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.patch("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    """Body: name, phone, address, note"""
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.update_customer(g.principal, request_scope(), customer_id, data)
        payload = customer.to_dict()
        _audit("update", payload)
        return jsonify({"customer": payload}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500
