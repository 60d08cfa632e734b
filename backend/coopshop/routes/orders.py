# Overview: Flask API routes for member order placement and order reads.

"""Member-facing order API"""

from flask import Blueprint, current_app, request

from . import error_response, internal_error, ok_response
from ..decorators import rate_limited
from ..errors import CoopError, ShoppingClosedError
from ..services import order_service, settings_service
from ..services.order_lifecycle_service import get_order
from ..validation import parse_place_order


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@rate_limited("orders", "ORDERS_RATE_LIMIT")
def place_order_route():
    """
    Place an order.

    Body: {memberId, deliveryBranchCode, departmentName, paymentOption,
           lines: [{sku, qty}]}

    Returns 201 {ok, orderId, total, paymentOption, eligibility}.
    Limits are checked against fresh exposure inside the placing
    transaction; nothing is retried on failure.
    """
    try:
        if not settings_service.is_shopping_open():
            raise ShoppingClosedError("Shopping is currently closed")

        order_request = parse_place_order(
            request.get_json(silent=True),
            max_lines=current_app.config["MAX_ORDER_LINES"],
            max_qty=current_app.config["MAX_LINE_QTY"],
        )
        placed = order_service.place_order(order_request)
        return ok_response(placed.to_dict(), 201)

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to place order")
        return internal_error()


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    """Order with its lines, item sku/name, branches and department."""
    try:
        order = get_order(order_id)
        return ok_response({"order": order.to_dict(include_lines=True)})

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order %s", order_id)
        return internal_error()
