# Overview: Flask API routes for member eligibility, order history and PINs.

from flask import Blueprint, current_app, request

from . import error_response, internal_error, ok_response, query_int
from ..decorators import rate_limited
from ..errors import CoopError
from ..money import money_json
from ..services import auth_service, order_query_service
from ..services.eligibility_service import member_eligibility
from ..services.order_lifecycle_service import validate_status
from ..services.rate_limit_service import client_ip
from ..validation import validate_member_id


members_bp = Blueprint("members", __name__, url_prefix="/api/members")


@members_bp.get("/<member_id>/eligibility")
@rate_limited("eligibility", "ELIGIBILITY_RATE_LIMIT")
def eligibility_route(member_id: str):
    """
    Current savings and loan eligibility, computed fresh.

    Exposure is never cached; the rate limiter only throttles callers.
    """
    try:
        member, eligibility = member_eligibility(validate_member_id(member_id))
        return ok_response({
            "eligibility": eligibility.to_dict(),
            "memberSnapshot": {
                "memberId": member.member_id,
                "fullName": member.full_name,
                "category": member.category,
                "savings": money_json(member.savings),
                "loans": money_json(member.loans),
                "globalLimit": money_json(member.global_limit),
                "branch": member.branch.to_dict() if member.branch else None,
                "department": member.department.name if member.department else None,
            },
        })

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute eligibility for %s", member_id)
        return internal_error()


@members_bp.get("/<member_id>/orders")
def member_orders_route(member_id: str):
    """Member's own orders, newest first. Optional ?status= and ?limit=."""
    try:
        status = request.args.get("status") or None
        if status:
            validate_status(status)
        orders = order_query_service.list_member_orders(
            validate_member_id(member_id),
            status=status,
            limit=query_int(request.args, "limit"),
        )
        return ok_response({"orders": [o.to_dict(include_lines=True) for o in orders]})

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders for %s", member_id)
        return internal_error()


@members_bp.get("/<member_id>/pin")
def pin_status_route(member_id: str):
    try:
        return ok_response(auth_service.member_pin_status(validate_member_id(member_id)))

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check PIN status for %s", member_id)
        return internal_error()


@members_bp.post("/<member_id>/pin")
def set_pin_route(member_id: str):
    """Set the member's shopping PIN (4-5 digits, stored as a bcrypt hash)."""
    try:
        data = request.get_json(silent=True) or {}
        auth_service.set_member_pin(validate_member_id(member_id), data.get("pin"))
        return ok_response()

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set PIN for %s", member_id)
        return internal_error()


@members_bp.post("/<member_id>/pin/verify")
def verify_pin_route(member_id: str):
    """Rate limited per member and client IP."""
    try:
        data = request.get_json(silent=True) or {}
        auth_service.verify_member_pin(validate_member_id(member_id), data.get("pin"), client_ip(request))
        return ok_response({"verified": True})

    except CoopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify PIN for %s", member_id)
        return internal_error()
