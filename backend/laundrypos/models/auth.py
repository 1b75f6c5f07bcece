from __future__ import annotations

from ..extensions import db
from laundrypos.time_utils import to_utc_z


ROLE_ROOT = "root"
ROLE_ADMIN = "admin"
ROLE_EMPLOYER = "employer"
ROLES = (ROLE_ROOT, ROLE_ADMIN, ROLE_EMPLOYER)

USER_STATUS_ACTIVE = "active"
USER_STATUS_INACTIVE = "inactive"
USER_STATUSES = (USER_STATUS_ACTIVE, USER_STATUS_INACTIVE)


class User(db.Model):
    """
    User accounts for authentication and attribution.

    ROLES:
    - root: software vendor; manages admins, never operates a store
    - admin: owns a chain of stores (Store.admin_id)
    - employer: pinned to exactly one store (store_id)

    WHY: Every order mutation must be attributable. No anonymous writes.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_store_role", "store_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, index=True)

    # Only meaningful for employers (legacy employers may have none)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=USER_STATUS_ACTIVE)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store", foreign_keys=[store_id], backref=db.backref("users", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.status == USER_STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "store_id": self.store_id,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Server-side session for bearer-token authentication.

    The plaintext token is only ever returned to the client; the database
    stores its SHA-256 hash.

    store_id is the store context selected by an admin for this session
    (employers always operate in User.store_id).
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
