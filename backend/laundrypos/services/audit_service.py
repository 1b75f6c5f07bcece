# Overview: Best-effort audit trail and security event logging.

"""
Audit Service

Both writers are best-effort: they run after the primary change has been
committed, and a failure is logged as a warning and rolled back without
failing the request.

SecurityEvent rows are immutable and append-only (logins, denied access).
AuditLog rows capture who changed which entity, with the entity's state
after the change.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog, SecurityEvent
from laundrypos.time_utils import utcnow


def log_security_event(
    event_type: str,
    success: bool,
    user_id: int | None = None,
    username: str | None = None,
    store_id: int | None = None,
    resource: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent | None:
    """
    Append a security event.

    event_type examples:
    - LOGIN_SUCCESS / LOGIN_FAILED
    - LOGOUT
    - ACCESS_DENIED (admin asking for a store outside the chain)
    """
    event = SecurityEvent(
        user_id=user_id,
        username=username,
        store_id=store_id,
        event_type=event_type,
        resource=resource,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    try:
        db.session.add(event)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to record security event %s", event_type, exc_info=True)
        return None
    return event


def record_audit(
    user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    after_data: dict | None = None,
    store_id: int | None = None,
    ip_address: str | None = None,
) -> AuditLog | None:
    """Append an audit row for a committed change."""
    entry = AuditLog(
        user_id=user_id,
        store_id=store_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        after_data=after_data,
        ip_address=ip_address,
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to write audit log for %s %s #%s", action, entity_type, entity_id, exc_info=True,
        )
        return None
    return entry
