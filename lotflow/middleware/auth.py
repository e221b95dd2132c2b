"""
Route protection decorators.

Usage:
    @lot_bp.route("/lots/<lot_id>/status", methods=["PUT"])
    @require_identity
    def update_status(lot_id):
        actor = current_identity()
        ...

Role and ownership rules live in the services, not here: the decorator
only guarantees that a resolved identity exists.
"""

import functools
import logging

from flask import g, request

from lotflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_identity(f):
    """Decorator: reject the request with 401 unless g.identity is set."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "identity", None) is None:
            reason = getattr(g, "identity_error", None) or "Authentication required"
            logger.info("Unauthenticated request to %s: %s", request.path, reason)
            return api_error(E.UNAUTHENTICATED, reason, kind="Unauthenticated")
        return f(*args, **kwargs)

    return decorated
