# backend/coopshop/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


class Config:
    # Optional "SECRET_KEY", with default dev key; also signs session tokens
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Postgres in production; SQLite file for local development
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///coopshop.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Statement timeouts (Postgres only). Reads ~5s, writes ~10s.
    DB_READ_TIMEOUT_MS = _env_int("DB_READ_TIMEOUT_MS", 5000)
    DB_WRITE_TIMEOUT_MS = _env_int("DB_WRITE_TIMEOUT_MS", 10000)

    # Eligibility strategy: "standard" or "facility" (see eligibility_service)
    ELIGIBILITY_POLICY = os.environ.get("ELIGIBILITY_POLICY", "standard")
    LOAN_INTEREST_RATE = os.environ.get("LOAN_INTEREST_RATE", "0.13")
    LOAN_FACILITY_AMOUNT = os.environ.get("LOAN_FACILITY_AMOUNT", "300000")
    LOAN_ABSOLUTE_CAP = os.environ.get("LOAN_ABSOLUTE_CAP", "1000000")
    SAVINGS_FACILITY_AMOUNT = os.environ.get("SAVINGS_FACILITY_AMOUNT", "300000")

    # Order shape limits
    MAX_LINE_QTY = _env_int("MAX_LINE_QTY", 9999)
    MAX_ORDER_LINES = _env_int("MAX_ORDER_LINES", 100)
    MAX_UNIT_PRICE = os.environ.get("MAX_UNIT_PRICE", "1000000")
    MAX_ORDER_TOTAL = os.environ.get("MAX_ORDER_TOTAL", "10000000")

    # "local" runs lifecycle transitions in-process; "database" calls the
    # post_order / deliver_order / cancel_order stored functions.
    ORDER_PROCEDURE_BACKEND = os.environ.get("ORDER_PROCEDURE_BACKEND", "local")

    # Admin / rep sessions
    ADMIN_PASSCODE = os.environ.get("ADMIN_PASSCODE")
    SESSION_TTL_SECONDS = _env_int("SESSION_TTL_SECONDS", 8 * 60 * 60)
    PIN_MIN_RESPONSE_MS = _env_int("PIN_MIN_RESPONSE_MS", 100)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
    SESSION_COOKIE_SECURE_TOKENS = _env_bool("SESSION_COOKIE_SECURE_TOKENS", False)

    # Rate limits as (max requests, window seconds)
    ORDERS_RATE_LIMIT = (10, 60)
    ELIGIBILITY_RATE_LIMIT = (30, 60)
    PIN_RATE_LIMIT = (5, 15 * 60)
    PIN_LOCKOUT_LIMIT = (10, 60 * 60)
    REP_SESSION_RATE_LIMIT = (5, 15 * 60)
    MEMBER_PIN_RATE_LIMIT = (5, 15 * 60)

    # Cache store: "memory" or "redis"
    CACHE_BACKEND = os.environ.get("CACHE_BACKEND", "memory")
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    CACHE_DEFAULT_TTL = _env_int("CACHE_DEFAULT_TTL", 300)

    SHOPPING_OPEN_DEFAULT = _env_bool("SHOPPING_OPEN_DEFAULT", True)

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ]
