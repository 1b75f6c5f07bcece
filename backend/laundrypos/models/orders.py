from __future__ import annotations

from ..extensions import db
from laundrypos.time_utils import to_utc_z
from laundrypos.validation import money, to_number


ORDER_STATUS_CREATED = "created"
ORDER_STATUS_WASHING = "washing"
ORDER_STATUS_DRYING = "drying"
ORDER_STATUS_WAITING_PICKUP = "waiting_pickup"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_CREATED,
    ORDER_STATUS_WASHING,
    ORDER_STATUS_DRYING,
    ORDER_STATUS_WAITING_PICKUP,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)
TERMINAL_STATUSES = (ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED)

PAYMENT_CASH = "cash"
PAYMENT_TRANSFER = "transfer"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_TRANSFER)


class Order(db.Model):
    """
    A customer's laundry ticket.

    MULTI-TENANT: store_id is the tenancy boundary. Legacy orders may have
    store_id=NULL; they are attributed to a store through the assignee or
    creator (see scope_service.order_clause).

    AMOUNTS:
    - total_amount: subtotal of the items
    - discount_amount: promotion discount resolved at creation
    - final_amount: max(0, total_amount - discount_amount)

    DEBT: is_debt marks a completed order the customer has not paid yet;
    debt_paid_at records settlement and drives revenue attribution.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_store_status_created", "store_id", "status", "created_at"),
        db.Index("ix_orders_debt", "is_debt", "debt_paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    status = db.Column(db.String(32), nullable=False, default=ORDER_STATUS_CREATED, index=True)

    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    final_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True)

    payment_method = db.Column(db.String(16), nullable=True)
    is_debt = db.Column(db.Boolean, nullable=False, default=False)
    debt_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    store = db.relationship("Store")
    promotion = db.relationship("Promotion")
    assignee = db.relationship("User", foreign_keys=[assigned_to])
    creator = db.relationship("User", foreign_keys=[created_by])

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "customer_phone": self.customer.phone if self.customer else None,
            "store_id": self.store_id,
            "status": self.status,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assignee.name if self.assignee else None,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "total_amount": to_number(self.total_amount),
            "discount_amount": to_number(self.discount_amount),
            "final_amount": to_number(self.final_amount),
            "promotion_id": self.promotion_id,
            "payment_method": self.payment_method,
            "is_debt": self.is_debt,
            "debt_paid_at": to_utc_z(self.debt_paid_at) if self.debt_paid_at else None,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    One priced line of an order.

    unit_price is captured from the product at creation time and does not
    follow later price changes.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    @property
    def line_total(self):
        return money(self.quantity * self.unit_price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "unit": self.product.unit if self.product else None,
            "quantity": to_number(self.quantity),
            "unit_price": to_number(self.unit_price),
            "line_total": to_number(self.line_total),
            "note": self.note,
        }


class OrderStatusHistory(db.Model):
    """
    Append-only trail of status changes.

    Creation always writes the initial 'created' row.
    """
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="status_history")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "changed_by": self.changed_by,
            "changed_by_name": self.user.name if self.user else None,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
