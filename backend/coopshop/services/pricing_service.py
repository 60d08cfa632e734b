# Overview: Service-layer pricing of order lines against branch price tables.

"""
Pricing Resolver

Turns (sku, qty) lines into priced lines for one delivery branch. Read-only:
nothing here writes, and nothing is cached between requests.

Items and prices are fetched with one IN query each instead of one round
trip per line. Errors are still reported for the first failing line in the
order the client sent them, exactly as a line-by-line lookup would.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from flask import current_app, has_app_context

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, BranchItemPrice, Cycle, Item
from ..money import ZERO, format_naira, money_json, to_money
from ..validation import DEFAULT_MAX_LINE_QTY, OrderLineRequest, coerce_quantity


DEFAULT_MAX_UNIT_PRICE = Decimal("1000000")


@dataclass(frozen=True)
class PricedLine:
    sku: str
    item_id: int
    branch_item_price_id: int
    unit_price: Decimal
    qty: int
    amount: Decimal

    def to_dict(self) -> dict:
        return {
            "sku": self.sku,
            "item_id": self.item_id,
            "branch_item_price_id": self.branch_item_price_id,
            "unit_price": money_json(self.unit_price),
            "qty": self.qty,
            "amount": money_json(self.amount),
        }


@dataclass(frozen=True)
class PricedOrder:
    lines: tuple[PricedLine, ...]
    total: Decimal


def get_active_cycle_id() -> int | None:
    cycle = (
        db.session.query(Cycle)
        .filter(Cycle.is_active.is_(True))
        .order_by(Cycle.id.desc())
        .first()
    )
    return cycle.id if cycle else None


def _config(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def price_filter(cycle_id: int | None):
    """Price rows for the given cycle; None selects the cycle-less rows."""
    if cycle_id is None:
        return BranchItemPrice.cycle_id.is_(None)
    return BranchItemPrice.cycle_id == cycle_id


def price_lines(
    branch_id: int,
    lines: Iterable[OrderLineRequest],
    *,
    cycle_id: int | None = None,
) -> PricedOrder:
    """
    Price every line at branch_id.

    Raises:
        ValidationError: empty line list, bad quantity, out-of-range price
        NotFoundError: ITEM_NOT_FOUND / PRICE_NOT_FOUND (no zero-price default)
    """
    lines = list(lines)
    if not lines:
        raise ValidationError("At least one order line is required", "INVALID_ORDER_LINES")

    max_qty = int(_config("MAX_LINE_QTY", DEFAULT_MAX_LINE_QTY))
    max_price = to_money(_config("MAX_UNIT_PRICE", DEFAULT_MAX_UNIT_PRICE))
    for line in lines:
        coerce_quantity(line.qty, max_qty=max_qty)

    skus = {line.sku for line in lines}
    items = db.session.query(Item).filter(Item.sku.in_(skus)).all()
    items_by_sku = {item.sku: item for item in items}

    item_ids = [item.item_id for item in items]
    prices_by_item: dict[int, BranchItemPrice] = {}
    if item_ids:
        rows = (
            db.session.query(BranchItemPrice)
            .filter(
                BranchItemPrice.branch_id == branch_id,
                BranchItemPrice.item_id.in_(item_ids),
                price_filter(cycle_id),
            )
            .all()
        )
        prices_by_item = {row.item_id: row for row in rows}

    branch_code = None
    priced = []
    total = ZERO
    for line in lines:
        item = items_by_sku.get(line.sku)
        if item is None:
            raise NotFoundError(f"Item not found: {line.sku}", "ITEM_NOT_FOUND", {"sku": line.sku})

        price_row = prices_by_item.get(item.item_id)
        if price_row is None:
            if branch_code is None:
                branch = db.session.get(Branch, branch_id)
                branch_code = branch.code if branch else str(branch_id)
            raise NotFoundError(
                f"No price for {line.sku} in {branch_code}",
                "PRICE_NOT_FOUND",
                {"sku": line.sku, "branch_code": branch_code},
            )

        unit_price = to_money(price_row.price)
        if unit_price < ZERO or unit_price > max_price:
            raise ValidationError(
                f"Invalid price for {line.sku}",
                "INVALID_PRICE",
                {"sku": line.sku, "unit_price": format_naira(unit_price)},
            )

        amount = unit_price * line.qty
        total += amount
        priced.append(PricedLine(
            sku=line.sku,
            item_id=item.item_id,
            branch_item_price_id=price_row.id,
            unit_price=unit_price,
            qty=line.qty,
            amount=amount,
        ))

    return PricedOrder(lines=tuple(priced), total=to_money(total))
