# Overview: Request decorators and helpers for authentication, roles and access scope.

from functools import wraps
from flask import request, jsonify, g

from .errors import ForbiddenError
from .models.auth import ROLE_ADMIN, ROLE_ROOT
from .models.security import EVENT_ACCESS_DENIED
from .services import audit_service, session_service
from .services.scope_service import AccessScope, Principal, resolve_scope
from .validation import parse_store_filter


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'principal')


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.principal: scope_service.Principal (role and store context)
    - g.session_context: The full SessionContext object
    - g.token: The plaintext bearer token (for logout)

    Returns 401 if the header is missing, or the token is invalid,
    expired or revoked, or the account was deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.principal = Principal(
            user_id=context.user.id,
            role=context.user.role,
            store_id=context.store_id,
        )
        g.session_context = context
        g.token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Restrict a route to some roles.

    Root passes every admin gate; root-specific refusals (no store
    operations) happen in the services.
    """
    allowed = set(roles)
    if ROLE_ADMIN in allowed:
        allowed.add(ROLE_ROOT)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.principal.role not in allowed:
                return jsonify({"error": "Insufficient permissions"}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def request_scope(store_param: str = "store_id", source: dict | None = None) -> AccessScope:
    """
    Resolve the caller's access scope for this request.

    The requested store comes from the query string (or from source, a
    JSON body). A denied store request is recorded as a security event
    before the ForbiddenError propagates.
    """
    values = source if source is not None else request.args
    requested = parse_store_filter(values.get(store_param))
    try:
        return resolve_scope(g.principal, requested)
    except ForbiddenError as e:
        audit_service.log_security_event(
            event_type=EVENT_ACCESS_DENIED,
            success=False,
            user_id=g.principal.user_id,
            store_id=requested,
            resource=request.path,
            reason=e.message,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        raise
