# Overview: Read-side order queries for members, reps and admins.

from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Branch, Order, OrderLine
from ..money import money_json, to_money
from .concurrency import set_statement_timeout


MAX_PAGE_SIZE = 200


def _with_lines(query):
    return query.options(
        selectinload(Order.lines).selectinload(OrderLine.item),
        selectinload(Order.delivery_branch),
        selectinload(Order.home_branch),
        selectinload(Order.department),
    )


def _clamp_limit(limit: int | None, default: int) -> int:
    if not limit or limit < 1:
        return default
    return min(limit, MAX_PAGE_SIZE)


def list_member_orders(member_id: str, *, status: str | None = None, limit: int | None = None) -> list[Order]:
    set_statement_timeout("read")
    query = _with_lines(db.session.query(Order)).filter(Order.member_id == member_id)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.order_id.desc()).limit(_clamp_limit(limit, 100)).all()


def _filtered(status: str, delivery_branch_id: int | None, payment: str | None, term: str | None):
    query = db.session.query(Order).filter(Order.status == status)
    if delivery_branch_id is not None:
        query = query.filter(Order.delivery_branch_id == delivery_branch_id)
    if payment:
        query = query.filter(Order.payment_option == payment)
    if term:
        like = f"%{term}%"
        query = query.filter(or_(Order.member_id.ilike(like), Order.member_name_snapshot.ilike(like)))
    return query


def list_orders(
    *,
    status: str = "Pending",
    branch_code: str | None = None,
    delivery_branch_id: int | None = None,
    payment: str | None = None,
    term: str | None = None,
    limit: int | None = None,
    cursor: int | None = None,
    direction: str = "next",
) -> dict:
    """
    Admin/rep order listing, newest order_id first, with cursor paging.

    "next" returns orders with order_id < cursor, "prev" order_id > cursor.
    The summary (count and total) covers the whole filter, ignoring the
    cursor. An unknown branch code matches no orders.
    """
    set_statement_timeout("read")
    limit = _clamp_limit(limit, 50)

    if branch_code and delivery_branch_id is None:
        branch = db.session.query(Branch).filter_by(code=branch_code.upper()).first()
        if branch is None:
            return {"orders": [], "nextCursor": None, "summary": {"count": 0, "totalAmount": 0}}
        delivery_branch_id = branch.id

    page_query = _with_lines(_filtered(status, delivery_branch_id, payment, term))
    if cursor is not None:
        if direction == "prev":
            page_query = page_query.filter(Order.order_id > cursor)
        else:
            page_query = page_query.filter(Order.order_id < cursor)
    rows = page_query.order_by(Order.order_id.desc()).limit(limit + 1).all()

    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        next_cursor = rows[-1].order_id

    count, total = (
        _filtered(status, delivery_branch_id, payment, term)
        .with_entities(func.count(Order.order_id), func.coalesce(func.sum(Order.total_amount), 0))
        .one()
    )

    return {
        "orders": [order.to_dict(include_lines=True) for order in rows],
        "nextCursor": next_cursor,
        "summary": {"count": count, "totalAmount": money_json(to_money(total))},
    }
