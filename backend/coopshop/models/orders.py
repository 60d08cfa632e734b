from __future__ import annotations

from ..extensions import db
from ..money import money_json
from coopshop.time_utils import to_utc_z


# Lifecycle statuses (see order_lifecycle_service for transitions)
STATUS_PENDING = "Pending"
STATUS_POSTED = "Posted"
STATUS_DELIVERED = "Delivered"
STATUS_CANCELLED = "Cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_POSTED, STATUS_DELIVERED, STATUS_CANCELLED)

# Orders in these statuses hold a financial commitment against the member
LIVE_STATUSES = (STATUS_PENDING, STATUS_POSTED, STATUS_DELIVERED)

PAYMENT_SAVINGS = "Savings"
PAYMENT_LOAN = "Loan"
PAYMENT_CASH = "Cash"
PAYMENT_OPTIONS = (PAYMENT_SAVINGS, PAYMENT_LOAN, PAYMENT_CASH)


class Order(db.Model):
    """
    Member order header.

    Member name and category are copied at order time so historical orders
    keep showing what was true when they were placed.

    total_amount always equals the sum of the order's line amounts as of the
    last line edit.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_member_status_payment", "member_id", "status", "payment_option"),
        db.Index("ix_orders_status_delivery_branch", "status", "delivery_branch_id"),
        {"sqlite_autoincrement": True},
    )

    order_id = db.Column(db.Integer, primary_key=True)

    member_id = db.Column(db.String(50), db.ForeignKey("members.member_id"), nullable=False, index=True)
    member_name_snapshot = db.Column(db.String(255), nullable=True)
    member_category_snapshot = db.Column(db.String(50), nullable=True)

    # Home branch of the member at order time, and the fulfilling branch
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    delivery_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    cycle_id = db.Column(db.Integer, db.ForeignKey("cycles.id"), nullable=True, index=True)

    payment_option = db.Column(db.String(16), nullable=False)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_by = db.Column(db.String(100), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_by = db.Column(db.String(100), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(100), nullable=True)
    cancel_reason = db.Column(db.String(500), nullable=True)
    admin_note = db.Column(db.String(1000), nullable=True)

    member = db.relationship("Member")
    home_branch = db.relationship("Branch", foreign_keys=[branch_id])
    delivery_branch = db.relationship("Branch", foreign_keys=[delivery_branch_id])
    department = db.relationship("Department")
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "order_id": self.order_id,
            "member_id": self.member_id,
            "member_name_snapshot": self.member_name_snapshot,
            "member_category_snapshot": self.member_category_snapshot,
            "branch_id": self.branch_id,
            "delivery_branch_id": self.delivery_branch_id,
            "department_id": self.department_id,
            "cycle_id": self.cycle_id,
            "payment_option": self.payment_option,
            "total_amount": money_json(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "posted_at": to_utc_z(self.posted_at),
            "posted_by": self.posted_by,
            "delivered_at": to_utc_z(self.delivered_at),
            "delivered_by": self.delivered_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "admin_note": self.admin_note,
            "delivery": _branch_ref(self.delivery_branch),
            "member_branch": _branch_ref(self.home_branch),
            "department": self.department.name if self.department else None,
        }
        if include_lines:
            data["order_lines"] = [line.to_dict() for line in self.lines]
        return data


def _branch_ref(branch) -> dict | None:
    if branch is None:
        return None
    return {"code": branch.code, "name": branch.name}


class OrderLine(db.Model):
    """
    Priced line on an order.

    unit_price is frozen when the line is written; later changes to
    branch_item_prices never touch existing lines.
    """
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.order_id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.item_id"), nullable=False)
    branch_item_price_id = db.Column(db.Integer, db.ForeignKey("branch_item_prices.id"), nullable=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    order = db.relationship("Order", back_populates="lines")
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "branch_item_price_id": self.branch_item_price_id,
            "qty": self.qty,
            "unit_price": money_json(self.unit_price),
            "amount": money_json(self.amount),
            "items": {"sku": self.item.sku, "name": self.item.name} if self.item else None,
        }


class AuditLog(db.Model):
    """
    Order lifecycle audit trail.

    IMMUTABLE: Never update or delete. Append-only. Deleting an order keeps
    its audit rows (order_id is not a foreign key).
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        db.Index("ix_audit_log_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(100), nullable=False)
    action = db.Column(db.String(32), nullable=False, index=True)  # post, cancel, deliver, edit_lines, delete
    order_id = db.Column(db.Integer, nullable=True)
    cycle_id = db.Column(db.Integer, nullable=True)
    delivery_branch_id = db.Column(db.Integer, nullable=True)
    detail = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor": self.actor,
            "action": self.action,
            "order_id": self.order_id,
            "cycle_id": self.cycle_id,
            "delivery_branch_id": self.delivery_branch_id,
            "detail": self.detail,
            "created_at": to_utc_z(self.created_at),
        }
