# Overview: Flask API routes for revenue reports; parses input and returns JSON responses.

"""
Report API routes

All figures are realized revenue: completed orders, excluding unpaid
debt, dated by when the money came in.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role, request_scope
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN, ROLE_EMPLOYER
from ..services import report_service
from ..validation import parse_optional_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_args() -> tuple:
    return (
        parse_optional_date(request.args.get("start_date"), "start_date"),
        parse_optional_date(request.args.get("end_date"), "end_date"),
    )


@reports_bp.get("/revenue")
@require_auth
@require_role(ROLE_ADMIN, ROLE_EMPLOYER)
def revenue_route():
    """Query: period (day|month|year), start_date, end_date, store_id"""
    try:
        start_date, end_date = _date_args()
        data = report_service.revenue_by_period(
            request_scope(),
            request.args.get("period", "day"),
            start_date,
            end_date,
        )
        return jsonify({"data": data}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build revenue report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/revenue-daily")
@require_auth
@require_role(ROLE_ADMIN, ROLE_EMPLOYER)
def revenue_daily_route():
    """Query: month, year, store_id"""
    try:
        result = report_service.revenue_daily(
            request_scope(),
            request.args.get("month"),
            request.args.get("year"),
        )
        return jsonify(result), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build daily revenue report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/revenue-by-product")
@require_auth
@require_role(ROLE_ADMIN)
def revenue_by_product_route():
    try:
        start_date, end_date = _date_args()
        data = report_service.revenue_by_product(request_scope(), start_date, end_date)
        return jsonify({"data": data}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build product revenue report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/revenue-by-employee")
@require_auth
@require_role(ROLE_ADMIN)
def revenue_by_employee_route():
    try:
        start_date, end_date = _date_args()
        data = report_service.revenue_by_employee(request_scope(), start_date, end_date)
        return jsonify({"data": data}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build employee revenue report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-customers")
@require_auth
@require_role(ROLE_ADMIN)
def top_customers_route():
    """Query: limit (default 10, max 100), store_id"""
    try:
        data = report_service.top_customers(request_scope(), request.args.get("limit"))
        return jsonify({"data": data}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build top customers report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/revenue-by-store")
@require_auth
@require_role(ROLE_ADMIN)
def revenue_by_store_route():
    """Query: month, year, store_id"""
    try:
        data = report_service.revenue_by_store(
            request_scope(),
            request.args.get("month"),
            request.args.get("year"),
        )
        return jsonify({"data": data}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build store revenue report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-products")
@require_auth
@require_role(ROLE_ADMIN)
def top_products_route():
    """Query: limit (default 10, max 100), store_id"""
    try:
        data = report_service.top_products(request_scope(), request.args.get("limit"))
        return jsonify({"data": data}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build top products report")
        return jsonify({"error": "Internal server error"}), 500
