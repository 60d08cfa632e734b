# Overview: Flask API routes for admin sessions.

"""
Admin session API

SECURITY FEATURES:
- PIN attempts throttled per IP, with a longer lockout tier
- Minimum response time on every attempt
- Token returned in the body and as an HttpOnly admin_token cookie
"""

from flask import Blueprint, current_app, request

from . import error_response, internal_error, ok_response
from ..errors import CoopError
from ..services import auth_service
from ..services.rate_limit_service import client_ip


auth_bp = Blueprint("auth", __name__, url_prefix="/api/admin/session")


@auth_bp.post("")
def admin_login_route():
    """Body {pin}. Returns {ok, token, role, expiresIn}."""
    ip = client_ip(request)
    try:
        data = request.get_json(silent=True) or {}
        session = auth_service.authenticate_admin(data.get("pin"), ip)
        response, status = ok_response(session)
        response.set_cookie(
            "admin_token",
            session["token"],
            max_age=session["expiresIn"],
            httponly=True,
            samesite="Lax",
            secure=current_app.config["SESSION_COOKIE_SECURE_TOKENS"],
        )
        return response, status

    except CoopError as e:
        if e.status_code == 429:
            current_app.logger.warning("Admin PIN throttled for IP: %s (%s)", ip, e.code)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Admin login failed")
        return internal_error()


@auth_bp.delete("")
def admin_logout_route():
    response, status = ok_response()
    response.delete_cookie("admin_token")
    return response, status
