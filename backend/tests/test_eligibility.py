import unittest
from decimal import Decimal
from types import SimpleNamespace

from coopshop.services.eligibility_service import (
    POLICY_FACILITY,
    POLICY_STANDARD,
    build_policy,
    compute_eligibility,
)
from coopshop.services.exposure_service import Exposure


def _member(savings, loans="0", global_limit="500000"):
    return SimpleNamespace(
        savings=Decimal(savings),
        loans=Decimal(loans),
        global_limit=Decimal(global_limit),
    )


def _exposure(loan="0", savings="0", interest="0", rate="0"):
    return Exposure(
        loan_principal=Decimal(loan),
        loan_interest=Decimal(interest),
        savings_exposure=Decimal(savings),
        interest_rate=Decimal(rate),
    )


class StandardPolicyTests(unittest.TestCase):
    def setUp(self):
        self.policy = build_policy(POLICY_STANDARD, {})

    def test_half_savings_available_without_loans(self):
        result = compute_eligibility(_member("100000"), _exposure(), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("50000.00"))
        self.assertEqual(result.outstanding_loans_total, Decimal("0.00"))

    def test_loan_is_base_plus_facility(self):
        # min(5 * 100000, 500000) = 500000, plus the 300000 facility
        result = compute_eligibility(_member("100000"), _exposure(), self.policy)
        self.assertEqual(result.loan_eligible, Decimal("800000.00"))

    def test_outstanding_loans_zero_savings(self):
        result = compute_eligibility(_member("200000", loans="50000", global_limit="1000000"), _exposure(), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("0.00"))
        self.assertEqual(result.outstanding_loans_total, Decimal("50000.00"))

    def test_pending_loan_exposure_counts_as_outstanding(self):
        result = compute_eligibility(_member("100000"), _exposure(loan="1"), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("0.00"))

    def test_savings_exposure_reduces_savings(self):
        result = compute_eligibility(_member("100000"), _exposure(savings="20000"), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("30000.00"))

    def test_savings_never_negative(self):
        result = compute_eligibility(_member("100000"), _exposure(savings="70000"), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("0.00"))

    def test_loan_capped_by_absolute_cap_minus_exposure(self):
        member = _member("1000000", global_limit="5000000")
        result = compute_eligibility(member, _exposure(loan="900000"), self.policy)
        self.assertEqual(result.loan_eligible, Decimal("100000.00"))

    def test_loan_never_negative_past_cap(self):
        member = _member("1000000", global_limit="5000000")
        result = compute_eligibility(member, _exposure(loan="1200000"), self.policy)
        self.assertEqual(result.loan_eligible, Decimal("0.00"))

    def test_negative_balances_are_clamped(self):
        result = compute_eligibility(_member("-500", loans="-10", global_limit="-1"), _exposure(), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("0.00"))
        self.assertEqual(result.outstanding_loans_total, Decimal("0.00"))
        self.assertEqual(result.loan_eligible, Decimal("300000.00"))

    def test_to_dict_keys(self):
        data = compute_eligibility(_member("100000"), _exposure(), self.policy).to_dict()
        self.assertEqual(data["savingsEligible"], 50000)
        self.assertEqual(data["loanEligible"], 800000)
        self.assertEqual(data["policy"], POLICY_STANDARD)
        for key in ("outstandingLoansTotal", "savingsExposure", "loanExposure", "loanExposurePrincipal", "interestRate"):
            self.assertIn(key, data)


class FacilityPolicyTests(unittest.TestCase):
    def setUp(self):
        self.policy = build_policy(POLICY_FACILITY, {
            "LOAN_INTEREST_RATE": "0.13",
            "SAVINGS_FACILITY_AMOUNT": "300000",
            "LOAN_FACILITY_AMOUNT": "300000",
            "LOAN_ABSOLUTE_CAP": "1000000",
        })

    def test_policy_carries_interest(self):
        self.assertEqual(self.policy.interest_rate, Decimal("0.13"))

    def test_outstanding_loans_get_savings_facility(self):
        result = compute_eligibility(_member("200000", loans="50000"), _exposure(), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("300000.00"))

    def test_no_loans_half_savings_plus_facility(self):
        result = compute_eligibility(_member("100000"), _exposure(savings="20000"), self.policy)
        self.assertEqual(result.savings_eligible, Decimal("330000.00"))

    def test_interest_adjusted_loan_exposure(self):
        # principal 100000 at 13% -> 113000 counted against the member
        exposure = _exposure(loan="100000", interest="13000", rate="0.13")
        result = compute_eligibility(_member("100000"), exposure, self.policy)
        self.assertEqual(result.outstanding_loans_total, Decimal("113000.00"))
        self.assertEqual(result.loan_eligible, Decimal("687000.00"))


class PolicyConfigTests(unittest.TestCase):
    def test_unknown_policy_rejected(self):
        with self.assertRaises(ValueError):
            build_policy("generous", {})

    def test_standard_has_no_interest_or_savings_facility(self):
        policy = build_policy(POLICY_STANDARD, {"LOAN_INTEREST_RATE": "0.13"})
        self.assertEqual(policy.interest_rate, Decimal("0"))
        self.assertEqual(policy.savings_facility, Decimal("0.00"))


if __name__ == "__main__":
    unittest.main()
