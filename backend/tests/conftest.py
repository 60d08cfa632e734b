"""
Pytest fixtures for coopshop backend tests.

Provides the test app and database, catalog and member fixtures, and
signed session headers.
"""

from decimal import Decimal

import pytest

from coopshop import create_app
from coopshop.extensions import db
from coopshop.models import Branch, BranchItemPrice, Department, Item, Member
from coopshop.services import auth_service
from coopshop.services.cache_service import get_cache
from coopshop.validation import OrderLineRequest, PlaceOrderRequest


ADMIN_PASSCODE = "4321-admin"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_PASSCODE': ADMIN_PASSCODE,
        'PIN_MIN_RESPONSE_MS': 0,
        'BCRYPT_ROUNDS': 4,
        'ELIGIBILITY_POLICY': 'standard',
        'CACHE_BACKEND': 'memory',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database and cache for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        get_cache().clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def branches(db_session):
    """DUTSE and BWARI delivery branches."""
    dutse = Branch(code="DUTSE", name="Dutse", is_active=True)
    bwari = Branch(code="BWARI", name="Bwari", is_active=True)
    db_session.add_all([dutse, bwari])
    db_session.commit()
    return {"DUTSE": dutse, "BWARI": bwari}


@pytest.fixture(scope='function')
def department(db_session):
    dept = Department(name="Finance")
    db_session.add(dept)
    db_session.commit()
    return dept


@pytest.fixture(scope='function')
def items(db_session, branches):
    """
    RICE50KG and SUGAR1KG priced at DUTSE; BEANS25KG priced at BWARI only.
    """
    rice = Item(sku="RICE50KG", name="Rice 50kg", unit="bag", category="Grains")
    sugar = Item(sku="SUGAR1KG", name="Sugar 1kg", unit="pack", category="Provisions")
    beans = Item(sku="BEANS25KG", name="Beans 25kg", unit="bag", category="Grains")
    db_session.add_all([rice, sugar, beans])
    db_session.flush()

    db_session.add_all([
        BranchItemPrice(branch_id=branches["DUTSE"].id, item_id=rice.item_id, price=Decimal("45000")),
        BranchItemPrice(branch_id=branches["DUTSE"].id, item_id=sugar.item_id, price=Decimal("1234.56")),
        BranchItemPrice(branch_id=branches["BWARI"].id, item_id=rice.item_id, price=Decimal("46500")),
        BranchItemPrice(branch_id=branches["BWARI"].id, item_id=beans.item_id, price=Decimal("30000")),
    ])
    db_session.commit()
    return {"RICE50KG": rice, "SUGAR1KG": sugar, "BEANS25KG": beans}


def make_member(db_session, member_id, savings, loans="0", global_limit="500000", branch=None):
    member = Member(
        member_id=member_id,
        full_name=f"Member {member_id}",
        category="A",
        savings=Decimal(savings),
        loans=Decimal(loans),
        global_limit=Decimal(global_limit),
        branch_id=branch.id if branch is not None else None,
    )
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture(scope='function')
def saver(db_session, branches):
    """Savings 100000, no loans: 50000 available on Savings."""
    return make_member(db_session, "A1001", "100000", branch=branches["DUTSE"])


@pytest.fixture(scope='function')
def borrower(db_session, branches):
    """Savings 200000 with 50000 of loans already on the books."""
    return make_member(db_session, "L2001", "200000", loans="50000", global_limit="1000000", branch=branches["BWARI"])


@pytest.fixture(scope='function')
def shop(branches, department, items):
    """Full catalog: branches, department and priced items."""
    return {"branches": branches, "department": department, "items": items}


def order_request(member_id, lines, payment_option="Savings", branch_code="DUTSE", department_name="Finance"):
    """Build a validated placement request from (sku, qty) pairs."""
    return PlaceOrderRequest(
        member_id=member_id,
        delivery_branch_code=branch_code,
        department_name=department_name,
        payment_option=payment_option,
        lines=tuple(OrderLineRequest(sku=sku, qty=qty) for sku, qty in lines),
    )


@pytest.fixture(scope='function')
def admin_headers(app):
    token = auth_service.sign({"role": auth_service.ROLE_ADMIN, "actor": "admin"})
    return auth_headers(token)


@pytest.fixture(scope='function')
def rep_headers(app, branches):
    branch = branches["DUTSE"]
    token = auth_service.sign({
        "role": auth_service.ROLE_REP,
        "actor": "rep:DUTSE",
        "branch_id": branch.id,
        "branch_code": branch.code,
    })
    return auth_headers(token)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
