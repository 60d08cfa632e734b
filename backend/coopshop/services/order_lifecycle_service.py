# Overview: Service-layer admin/rep operations on existing orders.

"""
Order Lifecycle Service

================================================================================
STATE MACHINE:
    Pending -> Posted -> Delivered
    Pending -> Cancelled
    Pending | Cancelled -> (deleted)

    Pending:    editable; counts toward exposure
    Posted:     finalized by an admin; immutable except delivery metadata
    Delivered:  handed over; terminal
    Cancelled:  terminal; releases the order's exposure

RULES:
1. No transition reverses.
2. The status change itself is done by an order procedure (order_procedures),
   which is atomic. This module validates, calls it, and records metadata
   and the audit row afterwards.
3. A failed procedure is reported verbatim and not retried.
4. Metadata and audit writes after a successful procedure are best-effort:
   if they fail the transition still stands and is reported as success.
================================================================================
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from ..errors import CoopError, DependencyError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Order, OrderLine
from ..models.orders import (
    ORDER_STATUSES,
    STATUS_CANCELLED,
    STATUS_DELIVERED,
    STATUS_PENDING,
    STATUS_POSTED,
)
from ..validation import OrderLineRequest
from coopshop.time_utils import utcnow
from . import order_procedures
from .audit_service import append_audit
from .concurrency import begin_write_lock, lock_for_update, set_statement_timeout
from .pricing_service import get_active_cycle_id, price_lines


logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    (STATUS_PENDING, STATUS_POSTED),
    (STATUS_POSTED, STATUS_DELIVERED),
    (STATUS_PENDING, STATUS_CANCELLED),
}
DELETABLE_STATUSES = {STATUS_PENDING, STATUS_CANCELLED}


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}",
            "INVALID_STATUS",
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """True only for the forward edges of the state machine."""
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def get_order(order_id: int, *, branch_id: int | None = None) -> Order:
    """
    Load an order or raise ORDER_NOT_FOUND.

    branch_id scopes the lookup to one delivery branch (rep sessions); an
    order of another branch reads as not found.
    """
    order = db.session.get(Order, order_id)
    if order is None or (branch_id is not None and order.delivery_branch_id != branch_id):
        raise NotFoundError("Order not found", "ORDER_NOT_FOUND", {"order_id": order_id})
    return order


def edit_lines(
    order_id: int,
    lines: Iterable[OrderLineRequest],
    actor: str,
    *,
    branch_id: int | None = None,
) -> Decimal:
    """
    Replace every line of a Pending order and recompute its total.

    Lines are re-priced at the order's delivery branch using current prices,
    existing lines are deleted and the new set inserted (no diffing), and
    total_amount is overwritten with the new sum. Returns the new total.
    """
    try:
        begin_write_lock()
        set_statement_timeout("write")

        order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
        if order is None or (branch_id is not None and order.delivery_branch_id != branch_id):
            raise NotFoundError("Order not found", "ORDER_NOT_FOUND", {"order_id": order_id})
        if order.status != STATUS_PENDING:
            raise StateConflictError(
                "Only Pending orders can be edited",
                "ORDER_NOT_PENDING",
                {"order_id": order_id, "status": order.status},
            )

        priced = price_lines(order.delivery_branch_id, lines, cycle_id=get_active_cycle_id())
        previous_total = order.total_amount

        order.lines.clear()
        db.session.flush()
        for line in priced.lines:
            order.lines.append(OrderLine(
                item_id=line.item_id,
                branch_item_price_id=line.branch_item_price_id,
                unit_price=line.unit_price,
                qty=line.qty,
                amount=line.amount,
            ))
        order.total_amount = priced.total
        order.updated_at = utcnow()

        append_audit(
            actor=actor,
            action="edit_lines",
            order=order,
            detail={
                "previous_total": str(previous_total),
                "total": str(priced.total),
                "lines": [{"sku": l.sku, "qty": l.qty} for l in priced.lines],
            },
            commit=False,
        )
        db.session.commit()
    except CoopError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        logger.exception("Editing lines of order %s failed", order_id)
        db.session.rollback()
        raise DependencyError("Failed to update order lines")

    logger.info("Order %s lines replaced by %s; total=%s", order_id, actor, priced.total)
    return priced.total


def _transition(
    *,
    order_id: int,
    actor: str,
    action: str,
    procedure: Callable[[int, str], order_procedures.ProcedureResult],
    detail: dict,
    apply_metadata: Callable[[Order], None] | None = None,
    branch_id: int | None = None,
) -> Order:
    order = get_order(order_id, branch_id=branch_id)

    result = procedure(order_id, actor)
    if not result.success:
        raise StateConflictError(result.error or f"{action} failed", "TRANSITION_FAILED", {"order_id": order_id})

    # Secondary writes: never reported as a failure of the transition
    try:
        order = db.session.get(Order, order_id)
        if apply_metadata is not None:
            apply_metadata(order)
        append_audit(actor=actor, action=action, order=order, detail=detail, commit=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Order %s was %s but metadata/audit write failed", order_id, action)

    logger.info("Order %s: %s by %s", order_id, action, actor)
    return order


def post_order(order_id: int, actor: str, admin_note: str | None = None) -> Order:
    """Pending -> Posted."""
    def _note(order: Order) -> None:
        if admin_note:
            order.admin_note = admin_note

    return _transition(
        order_id=order_id,
        actor=actor,
        action="post",
        procedure=order_procedures.post_order,
        detail={"adminNote": admin_note},
        apply_metadata=_note,
    )


def cancel_order(
    order_id: int,
    actor: str,
    reason: str | None = None,
    *,
    branch_id: int | None = None,
) -> Order:
    """Pending -> Cancelled. The order stops counting toward exposure."""
    def _reason(order: Order) -> None:
        order.cancel_reason = reason or None

    return _transition(
        order_id=order_id,
        actor=actor,
        action="cancel",
        procedure=order_procedures.cancel_order,
        detail={"reason": reason},
        apply_metadata=_reason,
        branch_id=branch_id,
    )


def deliver_order(
    order_id: int,
    actor: str,
    delivered_by: str | None = None,
    *,
    branch_id: int | None = None,
) -> Order:
    """Posted -> Delivered, stamping who handed it over and when."""
    handed_over_by = delivered_by or actor

    def _stamp(order: Order) -> None:
        order.delivered_by = handed_over_by
        order.delivered_at = utcnow()

    return _transition(
        order_id=order_id,
        actor=actor,
        action="deliver",
        procedure=order_procedures.deliver_order,
        detail={"deliveredBy": handed_over_by},
        apply_metadata=_stamp,
        branch_id=branch_id,
    )


def delete_order(order_id: int, actor: str, *, branch_id: int | None = None) -> None:
    """Hard delete; only Pending and Cancelled orders qualify."""
    try:
        begin_write_lock()
        set_statement_timeout("write")

        order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
        if order is None or (branch_id is not None and order.delivery_branch_id != branch_id):
            raise NotFoundError("Order not found", "ORDER_NOT_FOUND", {"order_id": order_id})
        if order.status not in DELETABLE_STATUSES:
            raise StateConflictError(
                "Only Pending or Cancelled orders can be deleted",
                "DELETE_NOT_ALLOWED",
                {"order_id": order_id, "status": order.status},
            )

        append_audit(
            actor=actor,
            action="delete",
            order=order,
            detail={"status": order.status, "total": str(order.total_amount)},
            commit=False,
        )
        db.session.delete(order)
        db.session.commit()
    except CoopError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        logger.exception("Deleting order %s failed", order_id)
        db.session.rollback()
        raise DependencyError("Failed to delete order")


def _bulk(order_ids: list[int], op: Callable[[int], Order], done_key: str) -> dict:
    done = []
    failed = []
    for order_id in order_ids:
        try:
            op(order_id)
            done.append(order_id)
        except CoopError as exc:
            failed.append({"id": order_id, "error": exc.message})
        except SQLAlchemyError:
            logger.exception("Bulk %s failed for order %s", done_key, order_id)
            db.session.rollback()
            failed.append({"id": order_id, "error": "Database operation failed"})
    return {"ok": not failed, done_key: done, "failed": failed}


def bulk_post(order_ids: list[int], actor: str) -> dict:
    """Post each order independently; partial success is reported per id."""
    return _bulk(order_ids, lambda oid: post_order(oid, actor), "posted")


def bulk_deliver(order_ids: list[int], actor: str) -> dict:
    return _bulk(order_ids, lambda oid: deliver_order(oid, actor), "delivered")
