# Overview: Cached catalog reads for the shop pages.

"""
Catalog lists change rarely and are read on every page load, so they go
through the TTL cache. Prices returned here are for display only: order
placement and line edits always re-price from the database.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Branch, BranchItemPrice, Department, Item
from ..money import money_json
from .cache_service import get_cached, invalidate
from .pricing_service import get_active_cycle_id, price_filter


CATALOG_PREFIXES = ("branches:", "departments:", "items:")


def list_branches() -> list[dict]:
    def _load():
        rows = (
            db.session.query(Branch)
            .filter(Branch.is_active.is_(True))
            .order_by(Branch.name.asc())
            .all()
        )
        return [b.to_dict() for b in rows]

    return get_cached("branches:list", _load)


def list_departments() -> list[dict]:
    def _load():
        return [d.to_dict() for d in db.session.query(Department).order_by(Department.name.asc()).all()]

    return get_cached("departments:list", _load)


def list_items(branch_code: str | None = None) -> list[dict]:
    """
    Items, optionally with the given branch's current price.

    With a branch, only items priced at that branch are listed. Unknown or
    inactive branch codes list nothing and are not cached, so only one
    entry per active branch can exist.
    """
    code = branch_code.strip().upper() if branch_code else ""
    if code and code not in {b["code"] for b in list_branches()}:
        return []

    def _load():
        if not code:
            return [i.to_dict() for i in db.session.query(Item).order_by(Item.name.asc()).all()]

        branch = db.session.query(Branch).filter_by(code=code).first()
        if branch is None:
            return []
        rows = (
            db.session.query(Item, BranchItemPrice)
            .join(BranchItemPrice, BranchItemPrice.item_id == Item.item_id)
            .filter(
                BranchItemPrice.branch_id == branch.id,
                price_filter(get_active_cycle_id()),
            )
            .order_by(Item.name.asc())
            .all()
        )
        return [{**item.to_dict(), "price": money_json(price.price)} for item, price in rows]

    return get_cached(f"items:{code or 'all'}", _load)


def invalidate_catalog() -> int:
    return sum(invalidate(prefix) for prefix in CATALOG_PREFIXES)
