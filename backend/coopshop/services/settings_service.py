# Overview: Service-layer operations for admin-controlled switches.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AppSetting
from coopshop.time_utils import utcnow


SHOPPING_OPEN_KEY = "shopping_open"


def get_setting(key: str) -> str | None:
    row = db.session.get(AppSetting, key)
    return row.value if row else None


def put_setting(key: str, value: str) -> AppSetting:
    row = db.session.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key)
        db.session.add(row)
    row.value = value
    row.updated_at = utcnow()
    db.session.commit()
    return row


def is_shopping_open() -> bool:
    """Members may place orders only while shopping is open."""
    value = get_setting(SHOPPING_OPEN_KEY)
    if value is None:
        return bool(current_app.config.get("SHOPPING_OPEN_DEFAULT", True))
    return value == "true"


def set_shopping_open(is_open: bool) -> bool:
    put_setting(SHOPPING_OPEN_KEY, "true" if is_open else "false")
    return is_open
