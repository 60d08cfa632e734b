# Overview: Flask API routes for branch representatives.

"""
Rep API

A rep session is bound to one branch. Every order read or change is
scoped to orders delivered to that branch; other branches' orders read as
not found.
"""

from flask import Blueprint, current_app, g, request

from . import error_response, internal_error, ok_response, query_int
from ..decorators import require_role
from ..errors import CoopError, ValidationError
from ..money import money_json
from ..services import auth_service, order_lifecycle_service, order_query_service
from ..services.rate_limit_service import client_ip
from ..validation import clean_text, parse_lines


rep_bp = Blueprint("rep", __name__, url_prefix="/api/rep")


def _rep_branch_id() -> int:
    branch_id = g.session_claims.branch_id
    if branch_id is None:
        # Admin sessions carry no branch; they must name one
        branch_id = query_int(request.args, "branch_id")
        if branch_id is None:
            raise ValidationError("branch_id required", "INVALID_BRANCH_CODE")
    return branch_id


@rep_bp.post("/session")
def rep_session_route():
    """Body {passcode}: the branch code. Sets the rep_token cookie."""
    ip = client_ip(request)
    try:
        data = request.get_json(silent=True) or {}
        session = auth_service.create_rep_session(data.get("passcode"), ip)
        response, status = ok_response(session)
        response.set_cookie(
            "rep_token",
            session["token"],
            max_age=session["expiresIn"],
            httponly=True,
            samesite="Lax",
            secure=current_app.config["SESSION_COOKIE_SECURE_TOKENS"],
        )
        return response, status

    except CoopError as e:
        if e.status_code == 429:
            current_app.logger.warning("Rep sign-in throttled for IP: %s (%s)", ip, e.code)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Rep session failed")
        return internal_error()


@rep_bp.get("/orders")
@require_role("rep")
def rep_orders_route():
    try:
        status = request.args.get("status") or "Pending"
        order_lifecycle_service.validate_status(status)
        result = order_query_service.list_orders(
            status=status,
            delivery_branch_id=_rep_branch_id(),
            term=(request.args.get("term") or "").strip() or None,
            limit=query_int(request.args, "limit"),
            cursor=query_int(request.args, "cursor"),
        )
        return ok_response(result)

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list rep orders")
        return internal_error()


@rep_bp.get("/orders/<int:order_id>")
@require_role("rep")
def rep_get_order_route(order_id: int):
    try:
        order = order_lifecycle_service.get_order(order_id, branch_id=_rep_branch_id())
        return ok_response({"order": order.to_dict(include_lines=True)})

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load rep order %s", order_id)
        return internal_error()


@rep_bp.post("/orders/<int:order_id>/deliver")
@require_role("rep")
def rep_deliver_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order_lifecycle_service.deliver_order(
            order_id,
            g.actor,
            delivered_by=clean_text(data.get("deliveredBy"), max_length=100) or None,
            branch_id=_rep_branch_id(),
        )
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Rep failed to deliver order %s", order_id)
        return internal_error()


@rep_bp.post("/orders/<int:order_id>/cancel")
@require_role("rep")
def rep_cancel_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order_lifecycle_service.cancel_order(
            order_id,
            g.actor,
            reason=clean_text(data.get("reason"), max_length=500) or None,
            branch_id=_rep_branch_id(),
        )
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Rep failed to cancel order %s", order_id)
        return internal_error()


@rep_bp.post("/orders/<int:order_id>/lines")
@require_role("rep")
def rep_update_lines_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        lines = parse_lines(
            data.get("lines"),
            max_lines=current_app.config["MAX_ORDER_LINES"],
            max_qty=current_app.config["MAX_LINE_QTY"],
        )
        total = order_lifecycle_service.edit_lines(order_id, lines, g.actor, branch_id=_rep_branch_id())
        return ok_response({"total": money_json(total)})

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Rep failed to update lines of order %s", order_id)
        return internal_error()


@rep_bp.delete("/orders/<int:order_id>")
@require_role("rep")
def rep_delete_route(order_id: int):
    try:
        order_lifecycle_service.delete_order(order_id, g.actor, branch_id=_rep_branch_id())
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Rep failed to delete order %s", order_id)
        return internal_error()
