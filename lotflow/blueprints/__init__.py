"""
Lot workflow service
Blueprint registry and shared response helpers.
"""

from flask import jsonify, request

from lotflow.core.exceptions import InvalidFieldError
from lotflow.utils.helpers import parse_datetime


def api_success(data=None, message: str | None = None, status: int = 200):
    """Standard success envelope: ``{"success": true, "data": ..., "message": ...}``."""
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


def json_body() -> dict:
    """Request JSON as a dict; anything else counts as an empty body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def query_datetime(name: str):
    """Parse an optional ISO date query parameter (InvalidFieldError if malformed)."""
    raw = request.args.get(name)
    try:
        return parse_datetime(raw)
    except ValueError:
        raise InvalidFieldError(name, raw) from None
