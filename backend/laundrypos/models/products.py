from __future__ import annotations

from ..extensions import db
from laundrypos.time_utils import to_utc_z
from laundrypos.validation import to_number


PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_INACTIVE = "inactive"
PRODUCT_STATUSES = (PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_INACTIVE)

# kg, per piece (cai), per set (don)
PRODUCT_UNITS = ("kg", "cai", "don")


class Product(db.Model):
    """
    A priced laundry service (per kg, per item, per set...).

    store_id=NULL marks a legacy product that every store may sell.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="kg")
    price = db.Column(db.Numeric(14, 2), nullable=False)
    eta_minutes = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "unit": self.unit,
            "price": to_number(self.price),
            "eta_minutes": self.eta_minutes,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
