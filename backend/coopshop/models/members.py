from __future__ import annotations

from ..extensions import db
from ..money import money_json
from coopshop.time_utils import to_utc_z


class Member(db.Model):
    """
    Cooperative member with core balances.

    Balances are maintained by the external membership system and imported
    here; the order core only reads them. member_id is human-assigned and
    stored upper-case.

    - savings: amount saved with the cooperative
    - loans: principal already disbursed, independent of any order
    - global_limit: cap on loan eligibility
    """
    __tablename__ = "members"

    member_id = db.Column(db.String(50), primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(50), nullable=True)

    savings = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    loans = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    global_limit = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)

    # bcrypt hash of the member's shopping PIN (optional)
    pin_hash = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch")
    department = db.relationship("Department")

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "full_name": self.full_name,
            "category": self.category,
            "savings": money_json(self.savings),
            "loans": money_json(self.loans),
            "global_limit": money_json(self.global_limit),
            "branch_id": self.branch_id,
            "department_id": self.department_id,
            "has_pin": bool(self.pin_hash),
            "created_at": to_utc_z(self.created_at),
        }
