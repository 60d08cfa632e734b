# Overview: Flask API routes for branch, department and item lists.

from flask import Blueprint, current_app, request

from . import internal_error, ok_response
from ..services import catalog_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/branches")
def list_branches_route():
    try:
        return ok_response({"branches": catalog_service.list_branches()})
    except Exception:
        current_app.logger.exception("Failed to list branches")
        return internal_error()


@catalog_bp.get("/departments")
def list_departments_route():
    try:
        return ok_response({"departments": catalog_service.list_departments()})
    except Exception:
        current_app.logger.exception("Failed to list departments")
        return internal_error()


@catalog_bp.get("/items")
def list_items_route():
    """?branch=<code> adds that branch's current display price."""
    try:
        return ok_response({"items": catalog_service.list_items(request.args.get("branch"))})
    except Exception:
        current_app.logger.exception("Failed to list items")
        return internal_error()
