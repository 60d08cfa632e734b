from __future__ import annotations

from ..extensions import db
from ..money import money_json
from coopshop.time_utils import to_utc_z


class Branch(db.Model):
    """
    Cooperative branch.

    A branch is both a member's home branch and a delivery location. Prices
    are set per delivery branch, so the same item can cost differently at
    two branches.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True, index=True)  # stored upper-case
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
        }


class Department(db.Model):
    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Cycle(db.Model):
    """
    Pricing cycle.

    At most one cycle is active at a time. Prices and orders carry the cycle
    they belong to; with no active cycle, prices with a NULL cycle apply.
    """
    __tablename__ = "cycles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
        }


class Item(db.Model):
    __tablename__ = "items"
    __table_args__ = {"sqlite_autoincrement": True}

    item_id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(100), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(50), nullable=True)
    category = db.Column(db.String(100), nullable=True)
    image_url = db.Column(db.String(1024), nullable=True)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "category": self.category,
            "image_url": self.image_url,
        }


class BranchItemPrice(db.Model):
    """
    Unit price of an item at a delivery branch for a cycle.

    A missing row means the item cannot be ordered at that branch. It is
    never read as a zero price.
    """
    __tablename__ = "branch_item_prices"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "item_id", "cycle_id", name="uq_branch_item_prices_branch_item_cycle"),
        db.Index("ix_branch_item_prices_branch_item", "branch_id", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.item_id"), nullable=False)
    cycle_id = db.Column(db.Integer, db.ForeignKey("cycles.id"), nullable=True, index=True)
    price = db.Column(db.Numeric(14, 2), nullable=False)

    branch = db.relationship("Branch")
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "item_id": self.item_id,
            "cycle_id": self.cycle_id,
            "price": money_json(self.price),
        }
