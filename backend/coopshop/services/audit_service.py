# Overview: Service-layer operations for the order audit log.

from __future__ import annotations

from typing import Any, Optional

from ..extensions import db
from ..models import AuditLog, Order
"""
Audit Log Invariants

- Append-only: no updates, no deletes.
- One row per lifecycle action (post, cancel, deliver, edit_lines, delete).
- Rows carry the order's cycle and delivery branch as they were at the time
  of the action, so they survive the order being deleted.
"""


def append_audit(
    *,
    actor: str,
    action: str,
    order: Order | None = None,
    order_id: int | None = None,
    detail: Optional[dict[str, Any]] = None,
    commit: bool = True,
) -> AuditLog:
    """Append one audit row. order (or order_id) identifies the subject."""
    entry = AuditLog(
        actor=actor,
        action=action,
        order_id=order.order_id if order is not None else order_id,
        cycle_id=order.cycle_id if order is not None else None,
        delivery_branch_id=order.delivery_branch_id if order is not None else None,
        detail=detail or {},
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return entry


def list_audit(order_id: int) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter_by(order_id=order_id)
        .order_by(AuditLog.id.asc())
        .all()
    )
