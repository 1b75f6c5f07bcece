# Overview: Flask API routes for promotions; parses input and returns JSON responses.

"""
Promotion API routes

Management endpoints are admin only. The discovery endpoint
(POST /applicable) is open to every authenticated store operator.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role, request_scope
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN
from ..services import audit_service, promotion_service
from ..validation import parse_optional_id, parse_positive_decimal


promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


def _audit(action: str, promotion_id: int, after_data: dict | None, store_id: int | None) -> None:
    audit_service.record_audit(
        user_id=g.principal.user_id,
        action=action,
        entity_type="promotion",
        entity_id=promotion_id,
        after_data=after_data,
        store_id=store_id,
        ip_address=request.remote_addr,
    )


@promotions_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_promotions_route():
    """Query: status, type, store_id"""
    try:
        promotions = promotion_service.list_promotions(
            request_scope(),
            status=request.args.get("status"),
            promo_type=request.args.get("type"),
        )
        return jsonify({"promotions": [p.to_dict() for p in promotions]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list promotions")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.get("/<int:promotion_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_promotion_route(promotion_id: int):
    try:
        promotion = promotion_service.get_promotion(request_scope(), promotion_id)
        return jsonify({"promotion": promotion.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_promotion_route():
    """
    Body: name, description, type, min_bill_amount | min_order_count,
    discount_type, discount_value, max_discount_amount, start_date,
    end_date, status, store_id
    """
    try:
        data = request.get_json(silent=True) or {}
        promotion = promotion_service.create_promotion(g.principal, data)
        payload = promotion.to_dict()
        _audit("create", promotion.id, payload, promotion.store_id)
        return jsonify({"promotion": payload}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.patch("/<int:promotion_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_promotion_route(promotion_id: int):
    try:
        data = request.get_json(silent=True) or {}
        promotion = promotion_service.update_promotion(g.principal, promotion_id, data)
        payload = promotion.to_dict()
        _audit("update", promotion.id, payload, promotion.store_id)
        return jsonify({"promotion": payload}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.delete("/<int:promotion_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_promotion_route(promotion_id: int):
    try:
        snapshot = promotion_service.delete_promotion(g.principal, promotion_id)
        _audit("delete", promotion_id, snapshot, snapshot.get("store_id"))
        return jsonify({"message": "Promotion deleted successfully"}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.post("/applicable")
@require_auth
def applicable_promotions_route():
    """
    Promotions a prospective bill qualifies for, highest threshold first.

    Body: customer_id | customer_phone, bill_amount, store_id
    """
    try:
        data = request.get_json(silent=True) or {}
        scope = request_scope(source=data)
        bill_amount = parse_positive_decimal(data.get("bill_amount", 0), "bill_amount", allow_zero=True)
        order_count = promotion_service.customer_order_count(
            customer_id=parse_optional_id(data.get("customer_id"), "customer_id"),
            customer_phone=(data.get("customer_phone") or "").strip() or None,
        )

        promotions = promotion_service.find_applicable(scope, bill_amount, order_count)
        return jsonify({
            "promotions": [p.to_dict() for p in promotions],
            "order_count": order_count,
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to find applicable promotions")
        return jsonify({"error": "Internal server error"}), 500
