# Overview: Atomic order status transitions (post / deliver / cancel).

"""
Order Procedures

The authoritative status change for post, deliver and cancel happens here and
nowhere else. Each procedure is atomic and returns a ProcedureResult instead
of raising for business failures, mirroring the contract of the database
functions post_order(p_order_id, p_admin), deliver_order(...) and
cancel_order(...):

    {"success": true} | {"success": false, "error": "..."}

Two backends:
    local     The transition runs as one SQLAlchemy transaction with the order
              row locked. Used with SQLite and for Postgres deployments that
              do not install the functions.
    database  Calls the stored functions and relays their result verbatim.

Selected by ORDER_PROCEDURE_BACKEND.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order
from ..models.orders import STATUS_CANCELLED, STATUS_DELIVERED, STATUS_PENDING, STATUS_POSTED
from coopshop.time_utils import utcnow
from .concurrency import lock_for_update, set_statement_timeout


logger = logging.getLogger(__name__)

BACKEND_LOCAL = "local"
BACKEND_DATABASE = "database"

# procedure name -> (required current status, new status)
TRANSITIONS = {
    "post_order": (STATUS_PENDING, STATUS_POSTED),
    "deliver_order": (STATUS_POSTED, STATUS_DELIVERED),
    "cancel_order": (STATUS_PENDING, STATUS_CANCELLED),
}


@dataclass(frozen=True)
class ProcedureResult:
    success: bool
    error: str | None = None

    def to_dict(self) -> dict:
        return {"success": self.success, "error": self.error}


def _run_local(procedure: str, order_id: int, actor: str) -> ProcedureResult:
    required, target = TRANSITIONS[procedure]
    try:
        set_statement_timeout("write")
        order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
        if order is None:
            db.session.rollback()
            return ProcedureResult(False, f"Order {order_id} not found")
        if order.status != required:
            current = order.status
            db.session.rollback()
            return ProcedureResult(
                False,
                f"Order {order_id} is {current}; only {required} orders can become {target}",
            )

        now = utcnow()
        order.status = target
        order.updated_at = now
        if target == STATUS_POSTED:
            order.posted_at = now
            order.posted_by = actor
        elif target == STATUS_DELIVERED:
            order.delivered_at = now
            order.delivered_by = actor
        elif target == STATUS_CANCELLED:
            order.cancelled_at = now
            order.cancelled_by = actor

        db.session.commit()
        return ProcedureResult(True)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("%s failed for order %s", procedure, order_id)
        return ProcedureResult(False, f"{procedure} failed: {exc.__class__.__name__}")


def _parse_db_result(raw) -> ProcedureResult:
    # Functions return json/jsonb, a plain text error, or nothing (void)
    if raw is None:
        return ProcedureResult(True)
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return ProcedureResult(False, raw)
    if isinstance(raw, dict):
        if raw.get("success", True):
            return ProcedureResult(True)
        return ProcedureResult(False, raw.get("error") or "Procedure reported failure")
    return ProcedureResult(bool(raw))


def _run_database(procedure: str, order_id: int, actor: str) -> ProcedureResult:
    try:
        set_statement_timeout("write")
        raw = db.session.execute(
            text(f"SELECT {procedure}(:p_order_id, :p_admin)"),
            {"p_order_id": order_id, "p_admin": actor},
        ).scalar()
        result = _parse_db_result(raw)
        if result.success:
            db.session.commit()
        else:
            db.session.rollback()
        return result
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("%s failed for order %s", procedure, order_id)
        # Database error text is the procedure's own failure reason
        message = getattr(exc, "orig", None) or exc
        return ProcedureResult(False, str(message).strip().splitlines()[0])


def call_procedure(procedure: str, order_id: int, actor: str) -> ProcedureResult:
    if procedure not in TRANSITIONS:
        raise ValueError(f"Unknown order procedure '{procedure}'")
    backend = current_app.config.get("ORDER_PROCEDURE_BACKEND", BACKEND_LOCAL)
    if backend == BACKEND_DATABASE:
        return _run_database(procedure, order_id, actor)
    if backend == BACKEND_LOCAL:
        return _run_local(procedure, order_id, actor)
    raise ValueError(f"Unknown ORDER_PROCEDURE_BACKEND '{backend}'")


def post_order(order_id: int, actor: str) -> ProcedureResult:
    return call_procedure("post_order", order_id, actor)


def deliver_order(order_id: int, actor: str) -> ProcedureResult:
    return call_procedure("deliver_order", order_id, actor)


def cancel_order(order_id: int, actor: str) -> ProcedureResult:
    return call_procedure("cancel_order", order_id, actor)
