# Overview: Flask API routes for admin order management.

"""
Admin order API

All routes require an admin session. Single-order transitions return
{ok: true}; a refused transition returns the procedure's own message with
code TRANSITION_FAILED.
"""

from flask import Blueprint, current_app, g, request

from . import error_response, internal_error, ok_response, query_int
from ..decorators import require_role
from ..errors import CoopError
from ..money import money_json
from ..services import order_lifecycle_service, order_query_service
from ..validation import clean_text, parse_lines, parse_order_ids


admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/orders")


@admin_orders_bp.get("")
@require_role("admin")
def list_orders_route():
    """
    Filtered order list with cursor paging.

    Query: status (default Pending), branch (delivery branch code), payment,
    term (member id or name), limit, cursor, dir (next|prev).
    """
    try:
        status = request.args.get("status") or "Pending"
        order_lifecycle_service.validate_status(status)
        result = order_query_service.list_orders(
            status=status,
            branch_code=request.args.get("branch") or None,
            payment=request.args.get("payment") or None,
            term=(request.args.get("term") or "").strip() or None,
            limit=query_int(request.args, "limit"),
            cursor=query_int(request.args, "cursor"),
            direction=request.args.get("dir") or "next",
        )
        return ok_response(result)

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return internal_error()


@admin_orders_bp.post("/<int:order_id>/post")
@require_role("admin")
def post_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        note = clean_text(data.get("note")) or None
        order_lifecycle_service.post_order(order_id, g.actor, admin_note=note)
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to post order %s", order_id)
        return internal_error()


@admin_orders_bp.post("/<int:order_id>/cancel")
@require_role("admin")
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        reason = clean_text(data.get("reason"), max_length=500) or None
        order_lifecycle_service.cancel_order(order_id, g.actor, reason=reason)
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order %s", order_id)
        return internal_error()


@admin_orders_bp.post("/<int:order_id>/deliver")
@require_role("admin")
def deliver_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        delivered_by = clean_text(data.get("deliveredBy"), max_length=100) or None
        order_lifecycle_service.deliver_order(order_id, g.actor, delivered_by=delivered_by)
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deliver order %s", order_id)
        return internal_error()


@admin_orders_bp.post("/<int:order_id>/lines")
@require_role("admin")
def update_lines_route(order_id: int):
    """Replace the lines of a Pending order; returns {ok, total}."""
    try:
        data = request.get_json(silent=True) or {}
        lines = parse_lines(
            data.get("lines"),
            max_lines=current_app.config["MAX_ORDER_LINES"],
            max_qty=current_app.config["MAX_LINE_QTY"],
        )
        total = order_lifecycle_service.edit_lines(order_id, lines, g.actor)
        return ok_response({"total": money_json(total)})

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update lines of order %s", order_id)
        return internal_error()


@admin_orders_bp.delete("/<int:order_id>")
@require_role("admin")
def delete_order_route(order_id: int):
    try:
        order_lifecycle_service.delete_order(order_id, g.actor)
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete order %s", order_id)
        return internal_error()


@admin_orders_bp.post("/post-bulk")
@require_role("admin")
def post_bulk_route():
    """Body {orderIds: [...]}; each id succeeds or fails on its own."""
    try:
        data = request.get_json(silent=True) or {}
        result = order_lifecycle_service.bulk_post(parse_order_ids(data.get("orderIds")), g.actor)
        return ok_response(result)

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Bulk post failed")
        return internal_error()


@admin_orders_bp.post("/deliver-bulk")
@require_role("admin")
def deliver_bulk_route():
    try:
        data = request.get_json(silent=True) or {}
        result = order_lifecycle_service.bulk_deliver(parse_order_ids(data.get("orderIds")), g.actor)
        return ok_response(result)

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Bulk deliver failed")
        return internal_error()
