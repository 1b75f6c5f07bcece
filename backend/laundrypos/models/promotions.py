from __future__ import annotations

from ..extensions import db
from laundrypos.time_utils import to_utc_z, to_iso_date
from laundrypos.validation import to_number


PROMO_TYPE_BILL_AMOUNT = "bill_amount"
PROMO_TYPE_ORDER_COUNT = "order_count"
PROMO_TYPES = (PROMO_TYPE_BILL_AMOUNT, PROMO_TYPE_ORDER_COUNT)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)

PROMO_STATUS_ACTIVE = "active"
PROMO_STATUS_INACTIVE = "inactive"
PROMO_STATUSES = (PROMO_STATUS_ACTIVE, PROMO_STATUS_INACTIVE)


class Promotion(db.Model):
    """
    Order-level discount rules.

    Can be global (store_id=NULL) or store-specific.

    TYPES:
    - bill_amount: applies when the order subtotal reaches min_bill_amount
    - order_count: loyalty rule keyed on min_order_count (listed for
      discovery only; never applied at order creation)

    DISCOUNT:
    - percentage: discount_value is a percent, capped by max_discount_amount
    - fixed: discount_value is an absolute amount
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.Index("ix_promotions_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    type = db.Column(db.String(32), nullable=False, default=PROMO_TYPE_BILL_AMOUNT)
    min_bill_amount = db.Column(db.Numeric(14, 2), nullable=True)
    min_order_count = db.Column(db.Integer, nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)
    discount_value = db.Column(db.Numeric(14, 2), nullable=False)
    max_discount_amount = db.Column(db.Numeric(14, 2), nullable=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PROMO_STATUS_ACTIVE, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("promotions", lazy=True))

    @property
    def is_global(self) -> bool:
        return self.store_id is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "min_bill_amount": to_number(self.min_bill_amount),
            "min_order_count": self.min_order_count,
            "discount_type": self.discount_type,
            "discount_value": to_number(self.discount_value),
            "max_discount_amount": to_number(self.max_discount_amount),
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
