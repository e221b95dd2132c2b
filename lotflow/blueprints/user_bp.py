"""
User Blueprint - the caller's own record and mirrored action history.

Endpoints (under /api/v1):
    GET    /users/me
    GET    /users/me/history[?targetType=&targetId=]
"""

from flask import Blueprint, request

from lotflow.blueprints import api_success
from lotflow.middleware.auth import require_identity
from lotflow.core.exceptions import InvalidFieldError
from lotflow.models.user import HISTORY_TARGET_TYPES
from lotflow.services import user_history
from lotflow.services.identity import current_identity
from lotflow.utils.errors import register_error_handlers

user_bp = Blueprint("user", __name__, url_prefix="/api/v1")
register_error_handlers(user_bp)


@user_bp.route("/users/me", methods=["GET"])
@require_identity
def me():
    user = user_history.load_acting_user(current_identity())
    return api_success(user.to_dict())


@user_bp.route("/users/me/history", methods=["GET"])
@require_identity
def my_history():
    target_type = request.args.get("targetType") or None
    if target_type is not None and target_type not in HISTORY_TARGET_TYPES:
        raise InvalidFieldError("targetType", target_type, allowed=HISTORY_TARGET_TYPES)
    entries = user_history.list_history(
        current_identity(),
        target_type=target_type,
        target_id=request.args.get("targetId") or None,
    )
    return api_success({"entries": [e.to_dict() for e in entries], "count": len(entries)})
