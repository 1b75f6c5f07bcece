# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login throttling backed by security events (429 while locked)
- Opaque bearer session tokens
- Admin store context selection
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN
from ..models.security import EVENT_LOGIN_FAILED, EVENT_LOGIN_SUCCESS, EVENT_LOGOUT
from ..services import audit_service, auth_service, login_throttle_service, session_service
from ..services.scope_service import Principal
from ..validation import parse_optional_id


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(username)
        if is_locked:
            minutes_remaining = (seconds_remaining // 60) + 1 if seconds_remaining else 1
            return jsonify({
                "error": "Account temporarily locked due to too many failed login attempts",
                "locked": True,
                "retry_after_seconds": seconds_remaining,
                "retry_after_minutes": minutes_remaining,
            }), 429

        user = auth_service.authenticate(username, password)

        if not user:
            audit_service.log_security_event(
                event_type=EVENT_LOGIN_FAILED,
                success=False,
                username=username,
                reason="Invalid credentials",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        audit_service.log_security_event(
            event_type=EVENT_LOGIN_SUCCESS,
            success=True,
            user_id=user.id,
            username=user.username,
            store_id=user.store_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "store_id": session.store_id,
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    try:
        session_service.revoke_session(g.token, reason="User logout")
        audit_service.log_security_event(
            event_type=EVENT_LOGOUT,
            success=True,
            user_id=g.current_user.id,
            username=g.current_user.username,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, role and effective store context."""
    return jsonify({
        "user": g.current_user.to_dict(),
        "role": g.principal.role,
        "store_id": g.principal.store_id,
        "session": g.session_context.session.to_dict(),
    }), 200


@auth_bp.post("/select-store")
@require_auth
@require_role(ROLE_ADMIN)
def select_store_route():
    """
    Select (or clear with null) the admin's store context.

    Body: store_id
    """
    try:
        if g.principal.is_root:
            return jsonify({"error": "Root accounts have no store context"}), 403

        data = request.get_json(silent=True) or {}
        store_id = parse_optional_id(data.get("store_id"), "store_id")
        session = session_service.select_store(g.session_context.session, g.principal.user_id, store_id)
        g.principal = Principal(user_id=g.principal.user_id, role=g.principal.role, store_id=session.store_id)

        return jsonify({"store_id": session.store_id, "session": session.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to select store")
        return jsonify({"error": "Internal server error"}), 500
