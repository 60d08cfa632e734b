# Overview: JSON response envelopes shared by all blueprints.

from flask import jsonify

from ..errors import CoopError
from ..time_utils import utc_timestamp


def ok_response(payload: dict | None = None, status: int = 200):
    """{"ok": true, ..., "timestamp"}"""
    body = {"ok": True}
    body.update(payload or {})
    body["timestamp"] = utc_timestamp()
    return jsonify(body), status


def error_response(error: CoopError):
    body = error.to_dict()
    body["timestamp"] = utc_timestamp()
    return jsonify(body), error.status_code


def internal_error():
    return jsonify({
        "ok": False,
        "error": "Internal server error",
        "code": "INTERNAL_ERROR",
        "timestamp": utc_timestamp(),
    }), 500


def query_int(args, name: str) -> int | None:
    """Optional integer query parameter; garbage reads as absent."""
    value = args.get(name)
    try:
        return int(value) if value not in (None, "") else None
    except ValueError:
        return None
