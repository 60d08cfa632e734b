# Overview: Request decorators for API routes (session roles, rate limits).

from functools import wraps

from flask import current_app, g, jsonify, request

from .services import auth_service
from .services.rate_limit_service import check_rate_limit, client_ip
from .time_utils import utc_timestamp


def _token_from_request(role: str) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return request.cookies.get(f"{role}_token")


def _unauthorized(message: str = "Authentication required"):
    return jsonify({
        "ok": False,
        "error": message,
        "code": "UNAUTHORIZED",
        "timestamp": utc_timestamp(),
    }), 401


def require_role(*roles: str):
    """
    Require a signed admin or rep session.

    Sets g.session_claims (auth_service.SessionClaims) and g.actor.
    An admin session satisfies any role; a rep session only "rep".

    SECURITY: Returns 401 if the token is missing, tampered with, expired,
    or carries a role that is not allowed here.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            claims = None
            for role in (auth_service.ROLE_ADMIN, auth_service.ROLE_REP):
                claims = auth_service.claims_from_token(_token_from_request(role))
                if claims is not None:
                    break

            if claims is None:
                return _unauthorized()
            if claims.role not in roles and claims.role != auth_service.ROLE_ADMIN:
                return _unauthorized("Insufficient session role")

            g.session_claims = claims
            g.actor = claims.actor
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def rate_limited(key_prefix: str, config_key: str):
    """Sliding-window limit per client IP, sized by a (max, window) config tuple."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            max_requests, window_seconds = current_app.config[config_key]
            ip = client_ip(request)
            if not check_rate_limit(f"{key_prefix}:{ip}", max_requests, window_seconds):
                current_app.logger.warning("Rate limit hit on %s from IP: %s", key_prefix, ip)
                response = jsonify({
                    "ok": False,
                    "error": "Too many requests. Please try again later.",
                    "code": "RATE_LIMIT_EXCEEDED",
                    "timestamp": utc_timestamp(),
                })
                response.headers["Retry-After"] = str(window_seconds)
                return response, 429
            return f(*args, **kwargs)

        return decorated_function
    return decorator
