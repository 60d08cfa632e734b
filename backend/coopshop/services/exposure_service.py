# Overview: Service-layer aggregation of a member's live order exposure.

"""
Exposure Calculator

Exposure is the money a member has committed through orders that are still
live (Pending, Posted, Delivered) but not yet reflected in core balances.
Cancelled orders release their hold; Cash orders never carry one.

Exposure is re-read on every call. It is never cached or stored: a stale
value would let a member exceed their limit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Order
from ..models.orders import LIVE_STATUSES, PAYMENT_LOAN, PAYMENT_SAVINGS
from ..money import ZERO, money_json, round_whole, to_money, to_rate


@dataclass(frozen=True)
class Exposure:
    loan_principal: Decimal
    loan_interest: Decimal
    savings_exposure: Decimal
    interest_rate: Decimal

    @property
    def loan_exposure(self) -> Decimal:
        """Loan exposure used by eligibility (principal plus any interest)."""
        return self.loan_principal + self.loan_interest

    def to_dict(self) -> dict:
        return {
            "loanExposurePrincipal": money_json(self.loan_principal),
            "loanExposure": money_json(self.loan_exposure),
            "savingsExposure": money_json(self.savings_exposure),
            "interestRate": float(self.interest_rate),
        }


def _with_interest(loan_principal: Decimal, savings: Decimal, interest_rate) -> Exposure:
    rate = to_rate(interest_rate)
    interest = round_whole(loan_principal * rate) if rate else ZERO
    return Exposure(
        loan_principal=loan_principal,
        loan_interest=interest,
        savings_exposure=savings,
        interest_rate=rate,
    )


def compute_exposure(member_id: str, *, interest_rate=Decimal("0")) -> Exposure:
    """
    Sum live order totals per payment option with one grouped query.

    interest_rate is explicit: callers that include loan interest pass the
    configured rate, everyone else gets principal only.
    """
    rows = (
        db.session.query(Order.payment_option, func.coalesce(func.sum(Order.total_amount), 0))
        .filter(
            Order.member_id == member_id,
            Order.status.in_(LIVE_STATUSES),
            Order.payment_option.in_((PAYMENT_LOAN, PAYMENT_SAVINGS)),
        )
        .group_by(Order.payment_option)
        .all()
    )
    totals = {option: to_money(amount) for option, amount in rows}
    return _with_interest(
        totals.get(PAYMENT_LOAN, ZERO),
        totals.get(PAYMENT_SAVINGS, ZERO),
        interest_rate,
    )


def _sum_for(member_id: str, payment_option: str) -> Decimal:
    amount = (
        db.session.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(
            Order.member_id == member_id,
            Order.payment_option == payment_option,
            Order.status.in_(LIVE_STATUSES),
        )
        .scalar()
    )
    return to_money(amount)


def compute_exposure_split(member_id: str, *, interest_rate=Decimal("0")) -> Exposure:
    """Same result as compute_exposure(), using two independent aggregates."""
    return _with_interest(
        _sum_for(member_id, PAYMENT_LOAN),
        _sum_for(member_id, PAYMENT_SAVINGS),
        interest_rate,
    )
