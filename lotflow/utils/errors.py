"""Standardised API error responses.

Usage
-----
    from lotflow.utils.errors import api_error, E, register_error_handlers

    return api_error(E.VALIDATION_REQUIRED, "lot_number is required")

    lot_bp = Blueprint("lot", __name__, url_prefix="/api/v1")
    register_error_handlers(lot_bp)
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from lotflow.core.exceptions import LotflowError

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    TOKEN_INVALID = "ERR_TOKEN_INVALID"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT = "ERR_CONFLICT"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.TOKEN_INVALID: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.INTERNAL: 500,
}

# Exception kind → error code
_KIND_CODES: dict[str, str] = {
    "NotFound": E.NOT_FOUND,
    "Forbidden": E.FORBIDDEN,
    "InvalidStatus": E.VALIDATION_INVALID,
    "InvalidCondition": E.VALIDATION_INVALID,
    "InvalidField": E.VALIDATION_INVALID,
    "MissingFields": E.VALIDATION_REQUIRED,
    "ValidationError": E.VALIDATION_INVALID,
    "TokenExpired": E.TOKEN_INVALID,
    "TokenNotFound": E.TOKEN_INVALID,
    "Conflict": E.CONFLICT,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    kind: str | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override. Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    kind : str, optional
        Stable error kind from the exception taxonomy.
    details : dict, optional
        Extra structured payload (missing field names, allowed values, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "success": False,
        "error": message,
        "code": code,
    }
    if kind:
        body["kind"] = kind
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_from_exception(error: LotflowError):
    """Render a taxonomy exception as a standard error response."""
    code = _KIND_CODES.get(error.kind, E.INTERNAL)
    return api_error(
        code,
        str(error),
        status=error.status_code,
        kind=error.kind,
        details=error.details,
    )


def register_error_handlers(bp) -> None:
    """Attach taxonomy + catch-all handlers to a blueprint."""

    @bp.errorhandler(LotflowError)
    def _handle_lotflow_error(error: LotflowError):
        if error.status_code >= 500:
            logger.error("Workflow error on %s: %s", request.endpoint, error)
        else:
            logger.info(
                "Request rejected: %s %s",
                error.kind, error,
                extra={"path": request.path, "event_type": error.kind},
            )
        return error_from_exception(error)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
