"""
CLI command tests (flask system / shopping / cache / orders).
"""

from conftest import order_request
from coopshop.models import Branch, BranchItemPrice, Member, Order
from coopshop.services import settings_service
from coopshop.services.cache_service import get_cache
from coopshop.services.order_service import place_order


def test_seed_demo_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "seed-demo"])
    assert first.exit_code == 0, first.output
    assert "PASS Created member A1001" in first.output
    assert "DONE Demo data ready" in first.output

    second = runner.invoke(args=["system", "seed-demo"])
    assert second.exit_code == 0
    assert "PASS Created" not in second.output

    assert db_session.query(Branch).count() == 3
    assert db_session.query(Member).count() == 3
    assert db_session.query(BranchItemPrice).count() == 12


def test_shopping_commands(app, db_session):
    runner = app.test_cli_runner()

    assert "PASS Shopping closed" in runner.invoke(args=["shopping", "close"]).output
    assert settings_service.is_shopping_open() is False
    assert "Shopping is CLOSED" in runner.invoke(args=["shopping", "status"]).output

    runner.invoke(args=["shopping", "open"])
    assert settings_service.is_shopping_open() is True


def test_cache_clear_by_pattern(app, db_session):
    cache = get_cache()
    cache.set("items:DUTSE", [1])
    cache.set("branches:list", [2])

    result = app.test_cli_runner().invoke(args=["cache", "clear", "--pattern", "items:"])

    assert "PASS Invalidated 1 keys" in result.output
    assert cache.get("items:DUTSE") is None
    assert cache.get("branches:list") == [2]


def test_post_pending_for_one_branch(app, db_session, shop, saver):
    dutse = place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Cash")).order_id
    bwari = place_order(order_request("A1001", [("RICE50KG", 1)], payment_option="Cash", branch_code="BWARI")).order_id

    result = app.test_cli_runner().invoke(args=["orders", "post-pending", "--branch", "dutse", "--yes"])

    assert result.exit_code == 0, result.output
    assert "PASS Posted 1 orders" in result.output
    db_session.expire_all()
    assert db_session.get(Order, dutse).status == "Posted"
    assert db_session.get(Order, bwari).status == "Pending"


def test_post_pending_unknown_branch(app, db_session, shop):
    result = app.test_cli_runner().invoke(args=["orders", "post-pending", "--branch", "KUBWA", "--yes"])
    assert "FAIL Branch 'KUBWA' not found" in result.output
