# Overview: Row locking and statement timeouts for the order core.

from __future__ import annotations

from flask import current_app
from sqlalchemy import text

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_lock() covers it.
    """
    return query.with_for_update()


def begin_write_lock() -> None:
    """
    Take the SQLite database write lock up front.

    Must run before the first statement of the transaction. Postgres relies
    on the member row lock taken with lock_for_update() instead.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def set_statement_timeout(kind: str = "read") -> None:
    """
    Bound every statement of the current transaction (Postgres only).

    kind="read" uses DB_READ_TIMEOUT_MS, kind="write" DB_WRITE_TIMEOUT_MS.
    A statement that hits the limit raises OperationalError, which callers
    surface as DependencyError. Nothing is retried.
    """
    if db.engine.dialect.name != "postgresql":
        return
    key = "DB_WRITE_TIMEOUT_MS" if kind == "write" else "DB_READ_TIMEOUT_MS"
    timeout_ms = int(current_app.config.get(key, 5000))
    db.session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
