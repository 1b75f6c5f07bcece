"""
Login Throttling Service

Prevent brute-force password attacks by limiting failed login attempts.
After too many failures the username is temporarily locked.

The counter lives in the security_events table (LOGIN_FAILED rows), not
in process memory, so every worker process sees the same state.
"""

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent
from ..models.security import EVENT_LOGIN_FAILED
from laundrypos.time_utils import utcnow


def _max_attempts() -> int:
    return current_app.config.get("MAX_LOGIN_ATTEMPTS", 5)


def _lockout_window() -> timedelta:
    return timedelta(minutes=current_app.config.get("LOGIN_LOCKOUT_MINUTES", 30))


def get_recent_failed_attempts(username: str) -> int:
    """Count LOGIN_FAILED events for a username within the lockout window."""
    cutoff = utcnow() - _lockout_window()
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == EVENT_LOGIN_FAILED,
        SecurityEvent.username == username,
        SecurityEvent.occurred_at >= cutoff,
    ).count()


def is_account_locked(username: str) -> tuple[bool, int | None]:
    """
    Check if a username is currently locked.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if get_recent_failed_attempts(username) < _max_attempts():
        return False, None

    most_recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == EVENT_LOGIN_FAILED,
        SecurityEvent.username == username,
    ).order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).first()

    if most_recent:
        lockout_end = most_recent.occurred_at + _lockout_window()
        now = utcnow()
        if now < lockout_end:
            return True, int((lockout_end - now).total_seconds())

    return False, None
