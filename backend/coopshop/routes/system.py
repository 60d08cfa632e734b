# backend/coopshop/routes/system.py
"""
System health, shopping window and cache endpoints.
"""

import time

from flask import Blueprint, current_app, request
from sqlalchemy import text

from . import error_response, internal_error, ok_response
from ..decorators import require_role
from ..errors import CoopError, ValidationError
from ..extensions import db
from ..models import Branch, Member, Order
from ..services import cache_service, settings_service
from ..services.cache_service import get_cache
from coopshop.time_utils import utc_timestamp

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        details = {
            "branches": db.session.query(Branch).count(),
            "members": db.session.query(Member).count(),
            "orders": db.session.query(Order).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_cache_health() -> dict:
    start_time = time.time()
    try:
        cache = get_cache()
        cache.set("health:ping", "pong", 5)
        healthy = cache.get("health:ping") == "pong"
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy" if healthy else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "backend": cache.__class__.__name__,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Cache health check failed")
        return {"status": "degraded", "latency_ms": round(elapsed_ms, 2), "error": "Cache error"}


@system_bp.get("/api/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (cache only; orders still work)
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    cache_health = check_cache_health()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif cache_health["status"] != "healthy":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utc_timestamp(),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {"database": database_health, "cache": cache_health},
    }, http_status


@system_bp.get("/api/system/shopping")
def shopping_status_route():
    try:
        return ok_response({"open": settings_service.is_shopping_open()})
    except Exception:
        current_app.logger.exception("Failed to read shopping flag")
        return internal_error()


@system_bp.post("/api/admin/system/shopping")
@require_role("admin")
def set_shopping_route():
    """Body {open: bool}."""
    try:
        data = request.get_json(silent=True) or {}
        is_open = data.get("open")
        if not isinstance(is_open, bool):
            raise ValidationError("open must be a boolean", "INVALID_SHOPPING_FLAG")
        settings_service.set_shopping_open(is_open)
        current_app.logger.info("Shopping %s", "opened" if is_open else "closed")
        return ok_response({"open": is_open})

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set shopping flag")
        return internal_error()


@system_bp.get("/api/admin/cache")
@require_role("admin")
def cache_stats_route():
    return ok_response({"stats": cache_service.stats()})


@system_bp.delete("/api/admin/cache")
@require_role("admin")
def cache_clear_route():
    """?pattern=<prefix> invalidates matching keys; no pattern clears everything."""
    pattern = request.args.get("pattern")
    if pattern:
        deleted = cache_service.invalidate(pattern)
    else:
        get_cache().clear()
        deleted = None
    return ok_response({"deleted": deleted})
