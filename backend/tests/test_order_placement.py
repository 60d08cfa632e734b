"""
Order placement tests: limits, price freeze and all-or-nothing writes.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import make_member, order_request
from coopshop.errors import DependencyError, LimitExceededError, NotFoundError, ValidationError
from coopshop.models import AuditLog, BranchItemPrice, Item, Order, OrderLine
from coopshop.services import eligibility_service, order_service
from coopshop.services.order_service import place_order


@pytest.fixture
def cheap_item(db_session, shop):
    """One naira per unit at DUTSE so totals can be set exactly via qty."""
    item = Item(sku="TOKEN1", name="Token", unit="each")
    db_session.add(item)
    db_session.flush()
    db_session.add(BranchItemPrice(branch_id=shop["branches"]["DUTSE"].id, item_id=item.item_id, price=Decimal("1")))
    db_session.add(BranchItemPrice(branch_id=shop["branches"]["DUTSE"].id, item_id=shop["items"]["BEANS25KG"].item_id, price=Decimal("0.01")))
    db_session.commit()
    return item


class TestSavingsLimits:
    def test_savings_within_half_of_savings_accepted(self, shop, saver, cheap_item):
        placed = place_order(order_request("A1001", [("TOKEN1", 5000)]))
        assert placed.total == Decimal("5000.00")
        assert placed.payment_option == "Savings"

    def test_exceeding_savings_rejected(self, shop, saver, cheap_item):
        # savings 100000: 50001 is one naira over the 50000 limit
        with pytest.raises(LimitExceededError) as exc:
            place_order(order_request("A1001", [("TOKEN1", 9999)] * 5 + [("TOKEN1", 6)]))
        assert exc.value.code == "EXCEEDS_SAVINGS_LIMIT"
        assert exc.value.details == {"limit": 50000, "total": 50001}
        assert "₦50,001" in exc.value.message

    def test_exactly_the_limit_accepted(self, db_session, shop, saver, cheap_item):
        placed = place_order(order_request("A1001", [("TOKEN1", 9999)] * 5 + [("TOKEN1", 5)]))
        assert placed.total == Decimal("50000.00")
        assert db_session.query(Order).count() == 1

    def test_one_kobo_over_the_limit_rejected(self, shop, saver, cheap_item):
        # 50000.00 + 0.01 from the BEANS25KG line priced at 0.01
        lines = [("TOKEN1", 9999)] * 5 + [("TOKEN1", 5), ("BEANS25KG", 1)]
        with pytest.raises(LimitExceededError) as exc:
            place_order(order_request("A1001", lines))
        assert exc.value.code == "EXCEEDS_SAVINGS_LIMIT"

    def test_exposure_from_earlier_orders_counts(self, shop, saver):
        place_order(order_request("A1001", [("RICE50KG", 1)]))  # 45000 of 50000
        with pytest.raises(LimitExceededError) as exc:
            place_order(order_request("A1001", [("SUGAR1KG", 5)]))  # 6172.80
        assert exc.value.code == "EXCEEDS_SAVINGS_LIMIT"
        assert exc.value.details["limit"] == 5000

    def test_pending_loan_blocks_savings(self, shop, saver):
        place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Loan"))
        with pytest.raises(LimitExceededError) as exc:
            place_order(order_request("A1001", [("SUGAR1KG", 1)], payment_option="Savings"))
        assert exc.value.code == "SAVINGS_BLOCKED_BY_LOANS"

    def test_existing_loans_block_savings(self, shop, borrower):
        with pytest.raises(LimitExceededError) as exc:
            place_order(order_request("L2001", [("RICE50KG", 1)], branch_code="BWARI"))
        assert exc.value.code == "SAVINGS_BLOCKED_BY_LOANS"

    def test_cancelled_order_releases_savings(self, db_session, shop, saver):
        placed = place_order(order_request("A1001", [("RICE50KG", 1)]))
        order = db_session.get(Order, placed.order_id)
        order.status = "Cancelled"
        db_session.commit()

        again = place_order(order_request("A1001", [("RICE50KG", 1)]))
        assert again.total == Decimal("45000.00")


class TestLoanAndCash:
    def test_loan_limit_enforced(self, db_session, shop, branches):
        # savings 10000 -> base min(50000, 500000) = 50000, +300000 facility
        make_member(db_session, "S3001", "10000", branch=branches["DUTSE"])
        placed = place_order(order_request("S3001", [("RICE50KG", 7)], payment_option="Loan"))
        assert placed.total == Decimal("315000.00")

        # base is used up by the first order; only the facility remains
        with pytest.raises(LimitExceededError) as exc:
            place_order(order_request("S3001", [("RICE50KG", 7)], payment_option="Loan"))
        assert exc.value.code == "EXCEEDS_LOAN_LIMIT"
        assert exc.value.details["limit"] == 300000

    def test_cash_skips_credit_checks(self, db_session, shop, branches):
        make_member(db_session, "C4001", "0", global_limit="0", branch=branches["DUTSE"])
        placed = place_order(order_request("C4001", [("RICE50KG", 3)], payment_option="Cash"))
        assert placed.total == Decimal("135000.00")


class TestOrderRecords:
    def test_order_captures_snapshot_branch_and_lines(self, db_session, shop, saver):
        placed = place_order(order_request("A1001", [("RICE50KG", 1), ("SUGAR1KG", 2)]))

        order = db_session.get(Order, placed.order_id)
        assert order.status == "Pending"
        assert order.member_name_snapshot == "Member A1001"
        assert order.branch_id == shop["branches"]["DUTSE"].id
        assert order.delivery_branch_id == shop["branches"]["DUTSE"].id
        assert order.department_id == shop["department"].id
        assert order.total_amount == Decimal("47469.12")
        assert sum(line.amount for line in order.lines) == order.total_amount
        assert [line.qty for line in order.lines] == [1, 2]

    def test_price_change_does_not_touch_existing_order(self, db_session, shop, saver):
        placed = place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Cash"))

        row = db_session.query(BranchItemPrice).filter_by(
            branch_id=shop["branches"]["DUTSE"].id, item_id=shop["items"]["RICE50KG"].item_id
        ).one()
        row.price = Decimal("50000")
        db_session.commit()

        order = db_session.get(Order, placed.order_id)
        assert order.total_amount == Decimal("45000.00")
        assert order.lines[0].unit_price == Decimal("45000.00")

        second = place_order(order_request("A1001", [("RICE50KG", 2)], payment_option="Cash"))
        assert second.total == Decimal("100000.00")

    def test_line_insert_failure_leaves_no_header(self, db_session, shop, saver, monkeypatch):
        def broken_insert(order, lines):
            raise SQLAlchemyError("simulated line insert failure")

        monkeypatch.setattr(order_service, "_insert_lines", broken_insert)

        with pytest.raises(DependencyError) as exc:
            place_order(order_request("A1001", [("RICE50KG", 1)]))
        assert exc.value.code == "ORDER_LINES_INSERT_FAILED"
        assert exc.value.status_code == 500
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderLine).count() == 0

    def test_placement_writes_no_audit_rows(self, db_session, shop, saver):
        place_order(order_request("A1001", [("RICE50KG", 1)]))
        assert db_session.query(AuditLog).count() == 0


class TestNotFound:
    @pytest.mark.parametrize("overrides,code", [
        ({"member_id": "NOBODY"}, "MEMBER_NOT_FOUND"),
        ({"branch_code": "KUBWA"}, "BRANCH_NOT_FOUND"),
        ({"department_name": "Legal"}, "DEPARTMENT_NOT_FOUND"),
    ])
    def test_missing_references(self, db_session, shop, saver, overrides, code):
        kwargs = {"member_id": "A1001", "lines": [("RICE50KG", 1)]}
        kwargs.update(overrides)
        with pytest.raises(NotFoundError) as exc:
            place_order(order_request(**kwargs))
        assert exc.value.code == code
        assert db_session.query(Order).count() == 0

    def test_item_without_price_at_delivery_branch(self, shop, saver):
        with pytest.raises(NotFoundError) as exc:
            place_order(order_request("A1001", [("BEANS25KG", 1)]))
        assert exc.value.code == "PRICE_NOT_FOUND"

    def test_inactive_branch_is_not_found(self, db_session, shop, saver):
        shop["branches"]["BWARI"].is_active = False
        db_session.commit()
        with pytest.raises(NotFoundError) as exc:
            place_order(order_request("A1001", [("RICE50KG", 1)], branch_code="BWARI"))
        assert exc.value.code == "BRANCH_NOT_FOUND"

    def test_order_total_above_maximum(self, app, shop, branches, db_session):
        make_member(db_session, "C5001", "0", branch=branches["DUTSE"])
        with pytest.raises(ValidationError) as exc:
            place_order(order_request("C5001", [("RICE50KG", 9999)] * 23, payment_option="Cash"))
        assert exc.value.code == "INVALID_TOTAL"


class TestEligibilityLookup:
    def test_runs_under_read_timeout(self, db_session, shop, saver, monkeypatch):
        kinds = []
        monkeypatch.setattr(eligibility_service, "set_statement_timeout", kinds.append)

        member, eligibility = eligibility_service.member_eligibility("A1001")
        assert member.member_id == "A1001"
        assert eligibility.savings_eligible == Decimal("50000.00")
        assert kinds == ["read"]

    def test_database_failure_is_a_dependency_error(self, db_session, shop, saver, monkeypatch):
        def broken_load(member_id):
            raise SQLAlchemyError("simulated timeout")

        monkeypatch.setattr(eligibility_service, "load_member", broken_load)

        with pytest.raises(DependencyError) as exc:
            eligibility_service.member_eligibility("A1001")
        assert exc.value.code == "DATABASE_ERROR"

    def test_unknown_member_still_not_found(self, db_session, shop):
        with pytest.raises(NotFoundError):
            eligibility_service.member_eligibility("NOBODY")
