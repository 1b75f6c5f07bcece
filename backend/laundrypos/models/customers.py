from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from laundrypos.time_utils import to_utc_z
from laundrypos.validation import to_number


# Walk-in customers get a synthetic phone with this prefix
TEMP_PHONE_PREFIX = "temp_"


class Customer(db.Model):
    """
    Customer master data, shared across every store.

    Customers carry no store_id; visibility for admins and employers is
    derived from the orders they have in scope.

    Denormalized counters (total_orders, total_spent) are updated when an
    order is created and never decremented.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(64), nullable=False, unique=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)

    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @hybrid_property
    def is_walk_in(self) -> bool:
        return self.phone.startswith(TEMP_PHONE_PREFIX)

    @is_walk_in.inplace.expression
    @classmethod
    def _is_walk_in_expression(cls):
        # "_" is a LIKE wildcard; match the prefix literally
        return cls.phone.startswith(TEMP_PHONE_PREFIX, autoescape=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "note": self.note,
            "is_walk_in": self.is_walk_in,
            "total_orders": self.total_orders,
            "total_spent": to_number(self.total_spent),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
