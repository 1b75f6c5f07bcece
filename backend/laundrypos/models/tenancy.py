from __future__ import annotations

from ..extensions import db
from laundrypos.time_utils import to_utc_z


STORE_STATUS_ACTIVE = "active"
STORE_STATUS_INACTIVE = "inactive"
STORE_STATUSES = (STORE_STATUS_ACTIVE, STORE_STATUS_INACTIVE)


class Store(db.Model):
    """
    A laundry shop.

    MULTI-TENANT: A store belongs to exactly one chain, identified by the
    owning admin (admin_id). Legacy stores may have no owner.
    Employers are pinned to one store through User.store_id.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.Index("ix_stores_admin_status", "admin_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Owning chain admin (users <-> stores reference each other)
    admin_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", use_alter=True, name="fk_stores_admin_id"),
        nullable=True,
        index=True,
    )
    # Optional employer account shared by the staff of this store
    shared_account_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", use_alter=True, name="fk_stores_shared_account_id"),
        nullable=True,
    )

    status = db.Column(db.String(16), nullable=False, default=STORE_STATUS_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    admin = db.relationship("User", foreign_keys=[admin_id], backref=db.backref("owned_stores", lazy=True))
    shared_account = db.relationship("User", foreign_keys=[shared_account_id])

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} admin_id={self.admin_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "admin_id": self.admin_id,
            "shared_account_id": self.shared_account_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
