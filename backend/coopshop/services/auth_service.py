# Overview: Service-layer operations for admin/rep sessions and member PINs.

"""
Session and PIN Authentication

WHY: Admins post and deliver orders, reps handle their own branch, members
confirm orders with a PIN. None of these hold user accounts here, so
sessions are stateless signed tokens.

SECURITY NOTES:
- Tokens are HS256 JWTs (python-jose) signed with SECRET_KEY; jwt.decode
  rejects a bad signature or a past exp
- Passcode checks use hmac.compare_digest (constant time)
- Admin PIN attempts are rate limited per IP with a longer lockout tier,
  and every attempt takes at least PIN_MIN_RESPONSE_MS
- Member PINs are hashed with bcrypt
"""

from __future__ import annotations

import hmac
import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from flask import current_app
from jose import JWTError, jwt

from ..errors import AuthError, CoopError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Member
from .rate_limit_service import enforce_rate_limit, reset_rate_limit


logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_REP = "rep"

TOKEN_ALGORITHM = "HS256"

_MEMBER_PIN_RE = re.compile(r"^\d{4,5}$")


@dataclass(frozen=True)
class SessionClaims:
    role: str
    actor: str
    branch_id: int | None
    branch_code: str | None
    exp: int


def sign(payload: dict, expires_in: int | None = None) -> str:
    """Sign claims into an HS256 JWT valid for expires_in seconds."""
    ttl = expires_in if expires_in is not None else current_app.config["SESSION_TTL_SECONDS"]
    issued = datetime.now(timezone.utc)
    to_encode = {**payload, "iat": issued, "exp": issued + timedelta(seconds=ttl)}
    return jwt.encode(to_encode, current_app.config["SECRET_KEY"], algorithm=TOKEN_ALGORITHM)


def verify(token: str | None) -> dict | None:
    """Return the claims of a valid, unexpired token, else None."""
    if not token:
        return None
    try:
        return jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=[TOKEN_ALGORITHM])
    except JWTError:
        return None


def claims_from_token(token: str | None) -> SessionClaims | None:
    body = verify(token)
    if body is None or body.get("role") not in (ROLE_ADMIN, ROLE_REP):
        return None
    return SessionClaims(
        role=body["role"],
        actor=body.get("actor") or body["role"],
        branch_id=body.get("branch_id"),
        branch_code=body.get("branch_code"),
        exp=body["exp"],
    )


def secure_compare(provided: str, expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def _validate_admin_pin(pin) -> str:
    if not pin or not isinstance(pin, str):
        raise ValidationError("PIN is required", "INVALID_PIN_FORMAT")
    pin = pin.strip()
    if len(pin) < 4:
        raise ValidationError("PIN must be at least 4 characters", "INVALID_PIN_FORMAT")
    if len(pin) > 50:
        raise ValidationError("PIN is too long", "INVALID_PIN_FORMAT")
    return pin


def authenticate_admin(pin, ip_address: str, actor: str | None = None) -> dict:
    """
    Exchange the admin passcode for a signed admin session.

    Raises:
        RateLimitError: ACCOUNT_LOCKED (long window) or RATE_LIMIT_EXCEEDED
        ValidationError: malformed PIN
        AuthError: wrong PIN
        CoopError: ADMIN_PASSCODE not configured
    """
    started = time.monotonic()
    config = current_app.config

    enforce_rate_limit(
        f"admin_pin_lockout:{ip_address}",
        config["PIN_LOCKOUT_LIMIT"],
        message="Too many failed attempts. Account temporarily locked.",
        code="ACCOUNT_LOCKED",
    )
    enforce_rate_limit(f"admin_pin:{ip_address}", config["PIN_RATE_LIMIT"])

    pin = _validate_admin_pin(pin)
    expected = config.get("ADMIN_PASSCODE")
    if not expected:
        logger.error("ADMIN_PASSCODE is not configured")
        raise CoopError("Server configuration error", "CONFIG_ERROR")

    # Pad every attempt to the same minimum duration
    min_seconds = config.get("PIN_MIN_RESPONSE_MS", 100) / 1000.0
    elapsed = time.monotonic() - started
    if elapsed < min_seconds:
        time.sleep(min_seconds - elapsed)

    if not secure_compare(pin, expected):
        logger.warning("Failed admin PIN attempt from IP: %s", ip_address)
        raise AuthError("Invalid PIN", "INVALID_CREDENTIALS")

    reset_rate_limit(f"admin_pin:{ip_address}")
    ttl = config["SESSION_TTL_SECONDS"]
    token = sign({"role": ROLE_ADMIN, "actor": actor or ROLE_ADMIN, "nonce": secrets.token_hex(8)}, ttl)
    logger.info("Successful admin authentication from IP: %s", ip_address)
    return {"token": token, "role": ROLE_ADMIN, "expiresIn": ttl}


def create_rep_session(passcode, ip_address: str) -> dict:
    """
    A rep signs in with their branch code and is scoped to that branch.

    Attempts are throttled per IP with the same two tiers as admin PINs.
    """
    config = current_app.config
    enforce_rate_limit(
        f"rep_session_lockout:{ip_address}",
        config["PIN_LOCKOUT_LIMIT"],
        message="Too many failed attempts. Account temporarily locked.",
        code="ACCOUNT_LOCKED",
    )
    enforce_rate_limit(f"rep_session:{ip_address}", config["REP_SESSION_RATE_LIMIT"])

    code = (passcode or "").strip().upper() if isinstance(passcode, str) else ""
    if not code:
        raise ValidationError("passcode required", "INVALID_PASSCODE")

    branch = db.session.query(Branch).filter_by(code=code).first()
    if branch is None or not branch.is_active:
        logger.warning("Failed rep sign-in from IP: %s", ip_address)
        raise AuthError("Invalid passcode", "INVALID_CREDENTIALS")

    reset_rate_limit(f"rep_session:{ip_address}")
    ttl = config["SESSION_TTL_SECONDS"]
    token = sign({
        "role": ROLE_REP,
        "actor": f"rep:{branch.code}",
        "branch_id": branch.id,
        "branch_code": branch.code,
    }, ttl)
    return {"token": token, "role": ROLE_REP, "branch": branch.to_dict(), "expiresIn": ttl}


def _validate_member_pin(pin) -> str:
    if not isinstance(pin, str) or not _MEMBER_PIN_RE.match(pin.strip()):
        raise ValidationError("PIN must be 4-5 digits", "INVALID_PIN_FORMAT")
    return pin.strip()


def _get_member(member_id: str) -> Member:
    member = db.session.get(Member, member_id)
    if member is None:
        raise NotFoundError("Member not found", "MEMBER_NOT_FOUND", {"member_id": member_id})
    return member


def set_member_pin(member_id: str, pin) -> None:
    pin = _validate_member_pin(pin)
    member = _get_member(member_id)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    member.pin_hash = bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")
    db.session.commit()


def verify_member_pin(member_id: str, pin, ip_address: str) -> bool:
    enforce_rate_limit(f"member_pin:{member_id}:{ip_address}", current_app.config["MEMBER_PIN_RATE_LIMIT"])
    pin = _validate_member_pin(pin)
    member = _get_member(member_id)
    if not member.pin_hash:
        raise AuthError("PIN not set", "PIN_NOT_SET")
    if not bcrypt.checkpw(pin.encode("utf-8"), member.pin_hash.encode("utf-8")):
        logger.warning("Failed PIN attempt for member %s from IP: %s", member_id, ip_address)
        raise AuthError("Invalid PIN", "INVALID_CREDENTIALS")
    reset_rate_limit(f"member_pin:{member_id}:{ip_address}")
    return True


def member_pin_status(member_id: str) -> dict:
    """An unknown member reads as {exists: False, hasPin: False}."""
    member = db.session.get(Member, member_id)
    if member is None:
        return {"exists": False, "hasPin": False}
    return {"exists": True, "hasPin": bool(member.pin_hash)}
