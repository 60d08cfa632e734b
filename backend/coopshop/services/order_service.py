# Overview: Service-layer order placement; the member-facing order transaction.

"""
Order Transaction Orchestrator

WHY: An order spends a member's savings or loan headroom. The limit check and
the write that consumes the headroom must see the same data, or two requests
can each pass the check and together overdraw the member.

FLOW (each step is a hard gate; nothing is committed until the end):
    validated request -> member (row locked) -> delivery branch -> department
    -> exposure -> eligibility -> pricing at the DELIVERY branch
    -> payment-method limit check -> order header -> order lines -> commit

TRANSACTION:
- The whole flow runs in one database transaction holding a lock on the
  member row (SELECT ... FOR UPDATE on Postgres, BEGIN IMMEDIATE on SQLite).
  A second order for the same member waits until the first commits and then
  sees its exposure.
- Header and lines are written in that same transaction. If the line insert
  fails the transaction is rolled back, which removes the header; no order
  without lines is ever left behind.
- Nothing is retried. A database failure surfaces as DependencyError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    CoopError,
    DependencyError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Branch, Department, Member, Order, OrderLine
from ..models.orders import PAYMENT_CASH, PAYMENT_LOAN, PAYMENT_SAVINGS, STATUS_PENDING
from ..money import ZERO, format_naira, money_json, to_money
from ..validation import PlaceOrderRequest
from .concurrency import begin_write_lock, lock_for_update, set_statement_timeout
from .eligibility_service import Eligibility, EligibilityPolicy, evaluate_member
from .pricing_service import PricedLine, get_active_cycle_id, price_lines


logger = logging.getLogger(__name__)

DEFAULT_MAX_ORDER_TOTAL = Decimal("10000000")


@dataclass(frozen=True)
class PlacedOrder:
    order_id: int
    total: Decimal
    payment_option: str
    eligibility: Eligibility
    lines: tuple[PricedLine, ...]

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "total": money_json(self.total),
            "paymentOption": self.payment_option,
            "eligibility": self.eligibility.to_dict(),
            "lines": [line.to_dict() for line in self.lines],
        }


def _resolve_member_locked(member_id: str) -> Member:
    member = lock_for_update(db.session.query(Member).filter_by(member_id=member_id)).first()
    if member is None:
        raise NotFoundError("Member not found", "MEMBER_NOT_FOUND", {"member_id": member_id})
    return member


def resolve_branch(code: str) -> Branch:
    branch = db.session.query(Branch).filter_by(code=code).first()
    if branch is None or not branch.is_active:
        raise NotFoundError("Delivery branch not found", "BRANCH_NOT_FOUND", {"branch_code": code})
    return branch


def resolve_department(name: str) -> Department:
    department = db.session.query(Department).filter_by(name=name).first()
    if department is None:
        raise NotFoundError("Department not found", "DEPARTMENT_NOT_FOUND", {"department": name})
    return department


def enforce_payment_limit(payment_option: str, total: Decimal, eligibility: Eligibility) -> None:
    """
    Payment-method rule.

    Savings: blocked outright while any loan is outstanding, then capped at
    savingsEligible. Loan: capped at loanEligible. Cash: no credit check.
    """
    if payment_option == PAYMENT_SAVINGS:
        if eligibility.outstanding_loans_total > ZERO:
            raise LimitExceededError(
                "Savings not allowed while loans outstanding (including pending/posted loan applications)",
                "SAVINGS_BLOCKED_BY_LOANS",
                {"outstandingLoansTotal": money_json(eligibility.outstanding_loans_total)},
            )
        if total > eligibility.savings_eligible:
            raise LimitExceededError(
                f"Total {format_naira(total)} exceeds Savings available {format_naira(eligibility.savings_eligible)}",
                "EXCEEDS_SAVINGS_LIMIT",
                {"limit": money_json(eligibility.savings_eligible), "total": money_json(total)},
            )
    elif payment_option == PAYMENT_LOAN:
        if total > eligibility.loan_eligible:
            raise LimitExceededError(
                f"Total {format_naira(total)} exceeds Loan available {format_naira(eligibility.loan_eligible)}",
                "EXCEEDS_LOAN_LIMIT",
                {"limit": money_json(eligibility.loan_eligible), "total": money_json(total)},
            )
    elif payment_option != PAYMENT_CASH:
        raise ValidationError(f"Invalid payment option: {payment_option}", "INVALID_PAYMENT_OPTION")


def _check_total(total: Decimal) -> None:
    max_total = to_money(current_app.config.get("MAX_ORDER_TOTAL", DEFAULT_MAX_ORDER_TOTAL))
    if total <= ZERO or total > max_total:
        raise ValidationError("Invalid order total", "INVALID_TOTAL", {"total": money_json(total)})


def _insert_header(
    member: Member,
    branch: Branch,
    department: Department,
    cycle_id: int | None,
    payment_option: str,
    total: Decimal,
) -> Order:
    order = Order(
        member_id=member.member_id,
        member_name_snapshot=member.full_name,
        member_category_snapshot=member.category,
        branch_id=member.branch_id,
        delivery_branch_id=branch.id,
        department_id=department.id,
        cycle_id=cycle_id,
        payment_option=payment_option,
        total_amount=total,
        status=STATUS_PENDING,
    )
    db.session.add(order)
    db.session.flush()
    return order


def _insert_lines(order: Order, lines: tuple[PricedLine, ...]) -> None:
    for line in lines:
        db.session.add(OrderLine(
            order_id=order.order_id,
            item_id=line.item_id,
            branch_item_price_id=line.branch_item_price_id,
            unit_price=line.unit_price,
            qty=line.qty,
            amount=line.amount,
        ))
    db.session.flush()


def place_order(request: PlaceOrderRequest, *, policy: EligibilityPolicy | None = None) -> PlacedOrder:
    """
    Place an order for a member.

    Raises:
        NotFoundError: member / branch / department / item / price missing
        LimitExceededError: SAVINGS_BLOCKED_BY_LOANS, EXCEEDS_SAVINGS_LIMIT,
            EXCEEDS_LOAN_LIMIT
        ValidationError: invalid payment option, total or quantities
        DependencyError: ORDER_INSERT_FAILED, ORDER_LINES_INSERT_FAILED,
            DATABASE_ERROR
    """
    try:
        begin_write_lock()
        set_statement_timeout("write")

        member = _resolve_member_locked(request.member_id)
        branch = resolve_branch(request.delivery_branch_code)
        department = resolve_department(request.department_name)

        eligibility = evaluate_member(member, policy)

        cycle_id = get_active_cycle_id()
        priced = price_lines(branch.id, request.lines, cycle_id=cycle_id)
        _check_total(priced.total)

        enforce_payment_limit(request.payment_option, priced.total, eligibility)

        try:
            order = _insert_header(member, branch, department, cycle_id, request.payment_option, priced.total)
        except SQLAlchemyError:
            logger.exception("Order insert failed for member %s", member.member_id)
            db.session.rollback()
            raise DependencyError("Failed to create order", "ORDER_INSERT_FAILED")

        try:
            _insert_lines(order, priced.lines)
        except SQLAlchemyError:
            logger.exception(
                "Order lines insert failed for order %s; rolling back order header",
                order.order_id,
            )
            db.session.rollback()
            raise DependencyError("Failed to create order lines", "ORDER_LINES_INSERT_FAILED")

        db.session.commit()
    except CoopError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        logger.exception("Order placement failed for member %s", request.member_id)
        db.session.rollback()
        raise DependencyError("Database operation failed")

    logger.info(
        "Order %s placed: member=%s payment=%s total=%s",
        order.order_id, request.member_id, request.payment_option, priced.total,
    )
    return PlacedOrder(
        order_id=order.order_id,
        total=priced.total,
        payment_option=request.payment_option,
        eligibility=eligibility,
        lines=priced.lines,
    )
