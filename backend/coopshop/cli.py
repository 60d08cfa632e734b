# Overview: Flask CLI command groups for bootstrap and operations.

# backend/coopshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Idempotently add demo branches, departments, items, prices and members.
#
# Shopping window:
# - python -m flask shopping status
# - python -m flask shopping open
# - python -m flask shopping close
#
# Cache:
# - python -m flask cache stats
# - python -m flask cache clear [--pattern items:]
#
# Orders:
# - python -m flask orders post-pending [--branch DUTSE] [--actor admin] [--yes]
#   Post every Pending order (optionally for one delivery branch).

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, BranchItemPrice, Department, Item, Member, Order
from .models.orders import STATUS_PENDING
from .services import cache_service, order_lifecycle_service, settings_service
from .services.catalog_service import invalidate_catalog


DEMO_BRANCHES = [
    ("DUTSE", "Dutse"),
    ("BWARI", "Bwari"),
    ("GWAGWALADA", "Gwagwalada"),
]

DEMO_DEPARTMENTS = ["Administration", "Engineering", "Finance", "Medical"]

# sku, name, unit, category, price per branch code
DEMO_ITEMS = [
    ("RICE50KG", "Rice 50kg", "bag", "Grains", {"DUTSE": "45000", "BWARI": "46500", "GWAGWALADA": "45500"}),
    ("BEANS25KG", "Beans 25kg", "bag", "Grains", {"DUTSE": "30000", "BWARI": "31000", "GWAGWALADA": "30500"}),
    ("VEGOIL5L", "Vegetable Oil 5L", "keg", "Oils", {"DUTSE": "12500", "BWARI": "12800", "GWAGWALADA": "12500"}),
    ("SUGAR1KG", "Sugar 1kg", "pack", "Provisions", {"DUTSE": "1234.56", "BWARI": "1250", "GWAGWALADA": "1240"}),
]

# member_id, full_name, category, savings, loans, global_limit, home branch
DEMO_MEMBERS = [
    ("A1001", "Amina Bello", "A", "100000", "0", "500000", "DUTSE"),
    ("A1002", "Chinedu Okafor", "A", "250000", "150000", "1000000", "BWARI"),
    ("R2001", "Grace Danjuma", "R", "50000", "0", "200000", "GWAGWALADA"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    cache_service.get_cache().clear()
    click.echo("PASS Database reset complete")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Add demo catalog and members; existing rows are left alone."""
    branches = {}
    for code, name in DEMO_BRANCHES:
        branch = db.session.query(Branch).filter_by(code=code).first()
        if branch is None:
            branch = Branch(code=code, name=name, is_active=True)
            db.session.add(branch)
            click.echo(f"PASS Created branch {code}")
        branches[code] = branch

    for name in DEMO_DEPARTMENTS:
        if db.session.query(Department).filter_by(name=name).first() is None:
            db.session.add(Department(name=name))
            click.echo(f"PASS Created department {name}")
    db.session.flush()

    for sku, name, unit, category, prices in DEMO_ITEMS:
        item = db.session.query(Item).filter_by(sku=sku).first()
        if item is None:
            item = Item(sku=sku, name=name, unit=unit, category=category)
            db.session.add(item)
            db.session.flush()
            click.echo(f"PASS Created item {sku}")
        for code, price in prices.items():
            existing = db.session.query(BranchItemPrice).filter_by(
                branch_id=branches[code].id, item_id=item.item_id, cycle_id=None
            ).first()
            if existing is None:
                db.session.add(BranchItemPrice(
                    branch_id=branches[code].id,
                    item_id=item.item_id,
                    cycle_id=None,
                    price=Decimal(price),
                ))

    for member_id, full_name, category, savings, loans, limit, home in DEMO_MEMBERS:
        if db.session.get(Member, member_id) is None:
            db.session.add(Member(
                member_id=member_id,
                full_name=full_name,
                category=category,
                savings=Decimal(savings),
                loans=Decimal(loans),
                global_limit=Decimal(limit),
                branch_id=branches[home].id,
            ))
            click.echo(f"PASS Created member {member_id}")

    db.session.commit()
    invalidate_catalog()
    click.echo("DONE Demo data ready")


@click.group('shopping')
def shopping_group():
    """Open or close the member shopping window."""


@shopping_group.command('status')
@with_appcontext
def shopping_status():
    state = "OPEN" if settings_service.is_shopping_open() else "CLOSED"
    click.echo(f"Shopping is {state}")


@shopping_group.command('open')
@with_appcontext
def shopping_open():
    settings_service.set_shopping_open(True)
    click.echo("PASS Shopping opened")


@shopping_group.command('close')
@with_appcontext
def shopping_close():
    settings_service.set_shopping_open(False)
    click.echo("PASS Shopping closed")


@click.group('cache')
def cache_group():
    """Inspect and clear the application cache."""


@cache_group.command('stats')
@with_appcontext
def cache_stats():
    stats = cache_service.stats()
    click.echo(f"Backend: {stats['backend']}  Keys: {stats['size']}")
    for entry in stats["keys"]:
        click.echo(f"  {entry['key']:<40} ttl={entry['ttl']}")


@cache_group.command('clear')
@click.option('--pattern', default=None, help='Only keys starting with this prefix')
@with_appcontext
def cache_clear(pattern):
    if pattern:
        deleted = cache_service.invalidate(pattern)
        click.echo(f"PASS Invalidated {deleted} keys matching '{pattern}'")
    else:
        cache_service.get_cache().clear()
        click.echo("PASS Cache cleared")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('post-pending')
@click.option('--branch', 'branch_code', default=None, help='Delivery branch code')
@click.option('--actor', default='admin', help='Recorded as posted_by')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def post_pending(branch_code, actor, yes):
    """Post every Pending order; each order succeeds or fails on its own."""
    query = db.session.query(Order.order_id).filter(Order.status == STATUS_PENDING)
    if branch_code:
        branch = db.session.query(Branch).filter_by(code=branch_code.upper()).first()
        if branch is None:
            click.echo(f"FAIL Branch '{branch_code}' not found")
            return
        query = query.filter(Order.delivery_branch_id == branch.id)

    order_ids = [row.order_id for row in query.order_by(Order.order_id.asc()).all()]
    if not order_ids:
        click.echo("Nothing to post")
        return
    if not yes:
        click.confirm(f"Post {len(order_ids)} Pending orders?", abort=True)

    result = order_lifecycle_service.bulk_post(order_ids, actor)
    click.echo(f"PASS Posted {len(result['posted'])} orders")
    for failure in result["failed"]:
        click.echo(f"FAIL Order {failure['id']}: {failure['error']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shopping_group)
    app.cli.add_command(cache_group)
    app.cli.add_command(orders_group)
