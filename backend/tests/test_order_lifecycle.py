"""
Order lifecycle tests: line edits, transitions, deletes, bulk operations
and the audit trail.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from conftest import order_request
from coopshop.errors import NotFoundError, StateConflictError, ValidationError
from coopshop.models import AuditLog, Order, OrderLine
from coopshop.services import order_lifecycle_service as lifecycle
from coopshop.services.audit_service import list_audit
from coopshop.services.exposure_service import compute_exposure
from coopshop.services.order_procedures import ProcedureResult, _parse_db_result
from coopshop.services.order_service import place_order
from coopshop.validation import OrderLineRequest


@pytest.fixture
def pending_order(shop, saver):
    placed = place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Cash"))
    return placed.order_id


def _posted(order_id):
    lifecycle.post_order(order_id, "admin")
    return order_id


class TestStateMachine:
    def test_forward_edges_only(self):
        assert lifecycle.can_transition("Pending", "Posted")
        assert lifecycle.can_transition("Posted", "Delivered")
        assert lifecycle.can_transition("Pending", "Cancelled")
        assert not lifecycle.can_transition("Posted", "Pending")
        assert not lifecycle.can_transition("Delivered", "Posted")
        assert not lifecycle.can_transition("Cancelled", "Pending")
        assert not lifecycle.can_transition("Posted", "Cancelled")

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            lifecycle.can_transition("Pending", "Shipped")


class TestEditLines:
    def test_edit_pending_replaces_lines_and_total(self, db_session, pending_order):
        total = lifecycle.edit_lines(pending_order, [OrderLineRequest("SUGAR1KG", 3)], "admin")

        assert total == Decimal("3703.68")
        order = db_session.get(Order, pending_order)
        assert order.total_amount == Decimal("3703.68")
        assert [(line.item.sku, line.qty) for line in order.lines] == [("SUGAR1KG", 3)]
        assert db_session.query(OrderLine).filter_by(order_id=pending_order).count() == 1

        entries = list_audit(pending_order)
        assert [e.action for e in entries] == ["edit_lines"]
        assert entries[0].detail["previous_total"] == "45000.00"
        assert entries[0].delivery_branch_id == order.delivery_branch_id

    def test_edit_posted_rejected(self, db_session, pending_order):
        _posted(pending_order)

        with pytest.raises(StateConflictError) as exc:
            lifecycle.edit_lines(pending_order, [OrderLineRequest("SUGAR1KG", 1)], "admin")
        assert exc.value.code == "ORDER_NOT_PENDING"
        assert db_session.get(Order, pending_order).total_amount == Decimal("45000.00")

    def test_edit_reprices_at_delivery_branch(self, db_session, shop, saver):
        placed = place_order(order_request("A1001", [("BEANS25KG", 1)], payment_option="Cash", branch_code="BWARI"))
        total = lifecycle.edit_lines(placed.order_id, [OrderLineRequest("RICE50KG", 2)], "admin")
        # BWARI price, not DUTSE's 45000
        assert total == Decimal("93000.00")

    def test_edit_missing_price_leaves_order_untouched(self, db_session, pending_order):
        with pytest.raises(NotFoundError):
            lifecycle.edit_lines(pending_order, [OrderLineRequest("BEANS25KG", 1)], "admin")
        order = db_session.get(Order, pending_order)
        assert order.total_amount == Decimal("45000.00")
        assert len(order.lines) == 1

    def test_edit_unknown_order(self, shop):
        with pytest.raises(NotFoundError) as exc:
            lifecycle.edit_lines(999, [OrderLineRequest("SUGAR1KG", 1)], "admin")
        assert exc.value.code == "ORDER_NOT_FOUND"

    def test_edit_scoped_to_branch(self, shop, pending_order):
        with pytest.raises(NotFoundError):
            lifecycle.edit_lines(
                pending_order,
                [OrderLineRequest("SUGAR1KG", 1)],
                "rep:BWARI",
                branch_id=shop["branches"]["BWARI"].id,
            )


class TestTransitions:
    def test_post_records_actor_note_and_audit(self, db_session, pending_order):
        lifecycle.post_order(pending_order, "admin", admin_note="Checked")

        order = db_session.get(Order, pending_order)
        assert order.status == "Posted"
        assert order.posted_by == "admin"
        assert order.posted_at is not None
        assert order.admin_note == "Checked"
        assert [e.action for e in list_audit(pending_order)] == ["post"]

    def test_post_twice_reports_procedure_message(self, pending_order):
        _posted(pending_order)
        with pytest.raises(StateConflictError) as exc:
            lifecycle.post_order(pending_order, "admin")
        assert exc.value.code == "TRANSITION_FAILED"
        assert exc.value.message == f"Order {pending_order} is Posted; only Pending orders can become Posted"

    def test_deliver_requires_posted(self, pending_order):
        with pytest.raises(StateConflictError) as exc:
            lifecycle.deliver_order(pending_order, "admin")
        assert exc.value.code == "TRANSITION_FAILED"

    def test_deliver_stamps_handover(self, db_session, pending_order):
        _posted(pending_order)
        lifecycle.deliver_order(pending_order, "rep:DUTSE", delivered_by="Musa")

        order = db_session.get(Order, pending_order)
        assert order.status == "Delivered"
        assert order.delivered_by == "Musa"
        assert order.delivered_at is not None

    def test_cancel_releases_exposure(self, db_session, shop, saver):
        placed = place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Loan"))
        assert compute_exposure("A1001").loan_principal == Decimal("45000.00")

        lifecycle.cancel_order(placed.order_id, "admin", reason="Duplicate")

        order = db_session.get(Order, placed.order_id)
        assert order.status == "Cancelled"
        assert order.cancel_reason == "Duplicate"
        assert order.cancelled_by == "admin"
        assert compute_exposure("A1001").loan_principal == Decimal("0.00")

    def test_cancel_posted_rejected(self, pending_order):
        _posted(pending_order)
        with pytest.raises(StateConflictError):
            lifecycle.cancel_order(pending_order, "admin")

    def test_unknown_order(self, shop):
        with pytest.raises(NotFoundError) as exc:
            lifecycle.post_order(424242, "admin")
        assert exc.value.code == "ORDER_NOT_FOUND"

    def test_audit_failure_does_not_fail_transition(self, db_session, pending_order, monkeypatch):
        def broken_audit(**kwargs):
            raise SQLAlchemyError("audit table unavailable")

        monkeypatch.setattr(lifecycle, "append_audit", broken_audit)

        order = lifecycle.post_order(pending_order, "admin", admin_note="note")
        assert order.status == "Posted"
        assert db_session.query(AuditLog).count() == 0


class TestDelete:
    def test_delete_pending_removes_lines_keeps_audit(self, db_session, pending_order):
        lifecycle.delete_order(pending_order, "admin")

        assert db_session.get(Order, pending_order) is None
        assert db_session.query(OrderLine).filter_by(order_id=pending_order).count() == 0
        assert [e.action for e in list_audit(pending_order)] == ["delete"]

    def test_delete_cancelled_allowed(self, db_session, pending_order):
        lifecycle.cancel_order(pending_order, "admin")
        lifecycle.delete_order(pending_order, "admin")
        assert db_session.get(Order, pending_order) is None

    def test_delete_posted_rejected(self, db_session, pending_order):
        _posted(pending_order)
        with pytest.raises(StateConflictError) as exc:
            lifecycle.delete_order(pending_order, "admin")
        assert exc.value.code == "DELETE_NOT_ALLOWED"
        assert db_session.get(Order, pending_order) is not None

    def test_delete_runs_under_write_timeout(self, db_session, pending_order, monkeypatch):
        kinds = []
        monkeypatch.setattr(lifecycle, "set_statement_timeout", kinds.append)

        lifecycle.delete_order(pending_order, "admin")
        assert kinds == ["write"]


class TestBulk:
    def test_bulk_post_reports_each_order(self, shop, saver):
        first = place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Cash")).order_id
        second = place_order(order_request("A1001", [("SUGAR1KG", 1)], payment_option="Cash")).order_id
        _posted(second)

        result = lifecycle.bulk_post([first, second, 999], "admin")

        assert result["ok"] is False
        assert result["posted"] == [first]
        assert [f["id"] for f in result["failed"]] == [second, 999]
        assert result["failed"][1]["error"] == "Order not found"

    def test_bulk_deliver_all_succeed(self, db_session, shop, saver):
        ids = [
            _posted(place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Cash")).order_id)
            for _ in range(2)
        ]
        result = lifecycle.bulk_deliver(ids, "admin")
        assert result == {"ok": True, "delivered": ids, "failed": []}
        assert {o.status for o in db_session.query(Order).all()} == {"Delivered"}

    def test_bulk_continues_after_database_error(self, db_session, shop, saver, monkeypatch):
        first = place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Cash")).order_id
        second = place_order(order_request("A1001", [("SUGAR1KG", 1)], payment_option="Cash")).order_id
        real_get_order = lifecycle.get_order

        def flaky_get_order(order_id, **kwargs):
            if order_id == first:
                raise OperationalError("SELECT", {}, Exception("statement timeout"))
            return real_get_order(order_id, **kwargs)

        monkeypatch.setattr(lifecycle, "get_order", flaky_get_order)

        result = lifecycle.bulk_post([first, second], "admin")

        assert result["ok"] is False
        assert result["posted"] == [second]
        assert result["failed"] == [{"id": first, "error": "Database operation failed"}]
        assert db_session.get(Order, first).status == "Pending"
        assert db_session.get(Order, second).status == "Posted"


class TestDatabaseProcedureResults:
    @pytest.mark.parametrize("raw,expected", [
        (None, ProcedureResult(True)),
        ({"success": True}, ProcedureResult(True)),
        ({"success": False, "error": "Order is not pending"}, ProcedureResult(False, "Order is not pending")),
        ('{"success": false, "error": "Locked"}', ProcedureResult(False, "Locked")),
        ("Order already posted", ProcedureResult(False, "Order already posted")),
        (True, ProcedureResult(True)),
    ])
    def test_parse(self, raw, expected):
        assert _parse_db_result(raw) == expected
