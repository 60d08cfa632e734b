# Overview: Service-layer computation of member savings/loan eligibility.

"""
Eligibility Engine

================================================================================
PURPOSE: Decide how much a member may still charge to Savings and to Loan
================================================================================

RULES (applied by every policy):
1. outstanding = member.loans + loan exposure (interest-adjusted when the
   policy carries an interest rate)
2. Savings: a member with outstanding loans cannot draw on half their
   savings. They get the policy's savings facility (zero under "standard").
   Otherwise: max(0, 0.5 * savings - savings exposure) + savings facility.
3. Loan: base = min(5 * savings, global_limit)
         available = max(0, base - outstanding)
         eligible = min(available + loan facility, cap - loan exposure)
4. Nothing returned is negative.
5. Computed fresh on every call; client-supplied limits are never trusted.

POLICIES:
    standard  No interest on loan exposure. Outstanding loans block Savings
              entirely (savingsEligible = 0).
    facility  Loan exposure carries LOAN_INTEREST_RATE. A fixed savings
              facility is granted even while loans are outstanding.

The two policies are real, divergent business rules. ELIGIBILITY_POLICY
selects one; there is no silent default mixing the two.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DependencyError, NotFoundError
from ..extensions import db
from ..models import Member
from ..money import ZERO, clamp_non_negative, money_json, to_money, to_rate
from .concurrency import set_statement_timeout
from .exposure_service import Exposure, compute_exposure


logger = logging.getLogger(__name__)

POLICY_STANDARD = "standard"
POLICY_FACILITY = "facility"
POLICY_NAMES = (POLICY_STANDARD, POLICY_FACILITY)

SAVINGS_DRAW_RATIO = Decimal("0.5")
LOAN_SAVINGS_MULTIPLIER = Decimal("5")


@dataclass(frozen=True)
class EligibilityPolicy:
    name: str
    interest_rate: Decimal
    savings_facility: Decimal
    loan_facility: Decimal
    loan_cap: Decimal


@dataclass(frozen=True)
class Eligibility:
    savings_eligible: Decimal
    loan_eligible: Decimal
    outstanding_loans_total: Decimal
    exposure: Exposure
    policy: str

    def to_dict(self) -> dict:
        data = {
            "savingsEligible": money_json(self.savings_eligible),
            "loanEligible": money_json(self.loan_eligible),
            "outstandingLoansTotal": money_json(self.outstanding_loans_total),
            "policy": self.policy,
        }
        data.update(self.exposure.to_dict())
        return data


def build_policy(name: str, config: Mapping) -> EligibilityPolicy:
    """Build a named policy from config values. Unknown names are rejected."""
    loan_facility = to_money(config.get("LOAN_FACILITY_AMOUNT", "300000"))
    loan_cap = to_money(config.get("LOAN_ABSOLUTE_CAP", "1000000"))

    if name == POLICY_STANDARD:
        return EligibilityPolicy(
            name=POLICY_STANDARD,
            interest_rate=Decimal("0"),
            savings_facility=ZERO,
            loan_facility=loan_facility,
            loan_cap=loan_cap,
        )
    if name == POLICY_FACILITY:
        return EligibilityPolicy(
            name=POLICY_FACILITY,
            interest_rate=to_rate(config.get("LOAN_INTEREST_RATE", "0.13")),
            savings_facility=to_money(config.get("SAVINGS_FACILITY_AMOUNT", "300000")),
            loan_facility=loan_facility,
            loan_cap=loan_cap,
        )
    raise ValueError(
        f"Unknown ELIGIBILITY_POLICY '{name}'. Must be one of: {', '.join(POLICY_NAMES)}"
    )


def current_policy() -> EligibilityPolicy:
    return build_policy(current_app.config["ELIGIBILITY_POLICY"], current_app.config)


def compute_eligibility(member: Member, exposure: Exposure, policy: EligibilityPolicy) -> Eligibility:
    """Pure calculation over stored balances and freshly computed exposure."""
    savings = clamp_non_negative(to_money(member.savings))
    loans = clamp_non_negative(to_money(member.loans))
    global_limit = clamp_non_negative(to_money(member.global_limit))

    loan_exposure = exposure.loan_exposure
    outstanding = loans + loan_exposure

    if outstanding > ZERO:
        savings_eligible = policy.savings_facility
    else:
        savings_base = (SAVINGS_DRAW_RATIO * savings) - exposure.savings_exposure
        savings_eligible = clamp_non_negative(savings_base) + policy.savings_facility

    base_limit = min(savings * LOAN_SAVINGS_MULTIPLIER, global_limit)
    available = clamp_non_negative(base_limit - outstanding)
    loan_eligible = min(available + policy.loan_facility, policy.loan_cap - loan_exposure)

    return Eligibility(
        savings_eligible=to_money(clamp_non_negative(savings_eligible)),
        loan_eligible=to_money(clamp_non_negative(loan_eligible)),
        outstanding_loans_total=to_money(outstanding),
        exposure=exposure,
        policy=policy.name,
    )


def load_member(member_id: str) -> Member:
    member = db.session.get(Member, member_id)
    if member is None:
        raise NotFoundError("Member not found", "MEMBER_NOT_FOUND", {"member_id": member_id})
    return member


def evaluate_member(member: Member, policy: EligibilityPolicy | None = None) -> Eligibility:
    policy = policy or current_policy()
    exposure = compute_exposure(member.member_id, interest_rate=policy.interest_rate)
    return compute_eligibility(member, exposure, policy)


def member_eligibility(member_id: str, policy: EligibilityPolicy | None = None) -> tuple[Member, Eligibility]:
    """Resolve a member and compute their eligibility from live data."""
    try:
        set_statement_timeout("read")
        member = load_member(member_id)
        return member, evaluate_member(member, policy)
    except SQLAlchemyError:
        logger.exception("Eligibility lookup for member %s failed", member_id)
        db.session.rollback()
        raise DependencyError("Failed to compute eligibility")
