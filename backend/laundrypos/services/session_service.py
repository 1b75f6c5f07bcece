# Overview: Bearer sessions for store operators; issuing, validating, store context and revocation.

"""
Session Service

A login issues an opaque bearer token. Only its SHA-256 digest is kept in
session_tokens; the plaintext leaves the server once, in the login
response.

STORE CONTEXT:
- employer sessions always resolve to User.store_id, even when the
  employer was moved to another store after logging in
- admin sessions start without a store; select_store pins one of the
  admin's own stores as the default for new orders, products and
  promotions
- root sessions never carry a store

EXPIRY: a session dies at expires_at (SESSION_ABSOLUTE_HOURS after login)
or after SESSION_IDLE_HOURS without a request, whichever comes first.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..models.auth import ROLE_EMPLOYER
from .scope_service import require_owned_store
from laundrypos.time_utils import utcnow


TOKEN_BYTES = 32


@dataclass
class SessionContext:
    """What require_auth needs to build a Principal."""
    user: User
    session: SessionToken
    store_id: int | None


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=current_app.config.get(key, default))


def hash_token(token: str) -> str:
    # High-entropy tokens; a fast digest is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_active(token: str) -> SessionToken | None:
    if not token:
        return None
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .first()
    )


def _mark_revoked(sessions: list[SessionToken], reason: str) -> int:
    stamp = utcnow()
    for record in sessions:
        record.is_revoked = True
        record.revoked_at = stamp
        record.revoked_reason = reason
    db.session.commit()
    return len(sessions)


def _store_context(user: User, session: SessionToken) -> int | None:
    if user.role == ROLE_EMPLOYER:
        return user.store_id
    return session.store_id


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Issue a session for an active user.

    Returns (session_record, plaintext_token). Raises ValueError for an
    unknown or inactive user.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is inactive")

    token = secrets.token_hex(TOKEN_BYTES)
    issued_at = utcnow()
    record = SessionToken(
        user_id=user.id,
        store_id=user.store_id if user.role == ROLE_EMPLOYER else None,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + _hours("SESSION_ABSOLUTE_HOURS", 24),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its user and store context.

    Returns None for unknown, revoked, expired or idle tokens and for
    deactivated users. Idle sessions and sessions of deactivated users are
    revoked on the way out. A valid hit refreshes last_used_at.
    """
    record = _find_active(token)
    if record is None:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None
    if now - record.last_used_at > _hours("SESSION_IDLE_HOURS", 8):
        _mark_revoked([record], "Idle timeout")
        return None

    user = record.user
    if user is None or not user.is_active:
        _mark_revoked([record], "User account deactivated")
        return None

    record.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=record, store_id=_store_context(user, record))


def select_store(session: SessionToken, admin_id: int, store_id: int | None) -> SessionToken:
    """
    Pin (or clear, with None) the admin's working store for this session.

    Raises ForbiddenError for a store outside the admin's chain.
    """
    if store_id is not None:
        require_owned_store(admin_id, store_id)
    session.store_id = store_id
    db.session.commit()
    return session


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token matched no live session."""
    record = _find_active(token)
    if record is None:
        return False
    _mark_revoked([record], reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str) -> int:
    live = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    return _mark_revoked(live, reason)


def cleanup_expired_sessions(older_than_days: int = 30) -> int:
    """Delete dead (expired or revoked) sessions created before the cutoff."""
    now = utcnow()
    removed = (
        db.session.query(SessionToken)
        .filter(
            SessionToken.created_at < now - timedelta(days=older_than_days),
            (SessionToken.expires_at < now) | SessionToken.is_revoked.is_(True),
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return removed
