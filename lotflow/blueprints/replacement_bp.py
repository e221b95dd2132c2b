"""
Replacement Request Blueprint - read, review and complete.

Endpoints (under /api/v1):
    GET    /replacement-requests/<request_id>
    POST   /replacement-requests/<request_id>/review     {decision, notes}
    POST   /replacement-requests/<request_id>/complete   {notes}

Requests are created through POST /lots/<lot_id>/replacement-request.
"""

import logging

from flask import Blueprint

from lotflow.blueprints import api_success, json_body
from lotflow.middleware.auth import require_identity
from lotflow.services import replacement_service
from lotflow.services.identity import current_identity
from lotflow.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

replacement_bp = Blueprint("replacement", __name__, url_prefix="/api/v1")
register_error_handlers(replacement_bp)


@replacement_bp.route("/replacement-requests/<request_id>", methods=["GET"])
@require_identity
def get_request(request_id):
    req = replacement_service.get_replacement_request(request_id, current_identity())
    return api_success(req.to_dict())


@replacement_bp.route("/replacement-requests/<request_id>/review", methods=["POST"])
@require_identity
def review_request(request_id):
    data = json_body()
    req = replacement_service.review_replacement_request(
        request_id,
        current_identity(),
        data.get("decision"),
        notes=data.get("notes"),
    )
    return api_success(req.to_dict(), f"Replacement request {req.status}")


@replacement_bp.route("/replacement-requests/<request_id>/complete", methods=["POST"])
@require_identity
def complete_request(request_id):
    data = json_body()
    req = replacement_service.complete_replacement_request(
        request_id, current_identity(), notes=data.get("notes"),
    )
    return api_success(req.to_dict(), "Replacement request completed")
