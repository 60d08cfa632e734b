from __future__ import annotations

from ..extensions import db
from coopshop.time_utils import to_utc_z


class AppSetting(db.Model):
    """Simple key/value switches toggled by admins (e.g. shopping_open)."""
    __tablename__ = "app_settings"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value, "updated_at": to_utc_z(self.updated_at)}
