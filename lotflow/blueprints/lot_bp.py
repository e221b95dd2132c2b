"""
Lot Blueprint - lot creation, reads, scan codes and workflow actions.

Endpoints (all under /api/v1, bearer identity required):
    POST   /lots                                   create (vendor)         201
    GET    /lots/<lot_id>[?token=]                 read (token or role gate)
    GET    /lots/<lot_id>/audit                    audit trail, filterable by
                                                   action / since / until
    POST   /lots/<lot_id>/generate-qr              issue access token + render
    GET    /lots/<lot_id>/access-tokens/validate   ?token= → {valid, reason}
    PUT    /lots/<lot_id>/status                   transition (depot-staff)
    POST   /lots/<lot_id>/install                  track-worker
    POST   /lots/<lot_id>/inspection               inspector
    POST   /lots/<lot_id>/replacement-request      track-worker / inspector 201
    POST   /lots/<lot_id>/parts                    generate sub-units       201
    GET    /lots/<lot_id>/parts[?installed=]       list sub-units
    GET    /parts/<part_id>                        read one sub-unit
    POST   /parts/<part_id>/install                track-worker, once
    POST   /scan                                   resolve scanned code → lot

Layer contract:
    - Blueprint: parse request fields (camelCase), call service, wrap result.
    - NO db.session calls here - all writes owned by the services.
    - NO inline role checks - every role/ownership guard lives in a service.
"""

import logging

from flask import Blueprint, request

from lotflow.blueprints import api_success, json_body, query_datetime
from lotflow.core.exceptions import MissingFieldsError
from lotflow.middleware.auth import require_identity
from lotflow.services import (
    access_token_service,
    audit_trail,
    lot_lifecycle,
    lot_workflow_service,
)
from lotflow.services.identity import current_identity
from lotflow.services.persistence import load_lot
from lotflow.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

lot_bp = Blueprint("lot", __name__, url_prefix="/api/v1")
register_error_handlers(lot_bp)

# camelCase request field → service field
_LOT_FIELDS = {
    "partName": "part_name",
    "factoryName": "factory_name",
    "lotNumber": "lot_number",
    "supplyDate": "supply_date",
    "manufacturingDate": "manufacturing_date",
    "warrantyPeriod": "warranty_period",
}


# ── Lots ───────────────────────────────────────────────────────────────────────


@lot_bp.route("/lots", methods=["POST"])
@require_identity
def create_lot():
    data = json_body()
    fields = {snake: data.get(camel, data.get(snake)) for camel, snake in _LOT_FIELDS.items()}
    lot = lot_lifecycle.create_lot(current_identity(), fields)
    return api_success(lot.to_dict(), "Lot created successfully", 201)


@lot_bp.route("/lots/<lot_id>", methods=["GET"])
@require_identity
def get_lot(lot_id):
    lot = access_token_service.get_lot_for_reader(
        lot_id, current_identity(), token=request.args.get("token"),
    )
    return api_success(lot.to_dict(), "Lot retrieved successfully")


@lot_bp.route("/lots/<lot_id>/audit", methods=["GET"])
@require_identity
def get_audit_trail(lot_id):
    lot = access_token_service.get_lot_for_reader(
        lot_id, current_identity(), token=request.args.get("token"),
    )
    entries = audit_trail.query(
        lot,
        action=request.args.get("action") or None,
        actor_id=request.args.get("actorId") or None,
        since=query_datetime("since"),
        until=query_datetime("until"),
    ).to_list()
    return api_success({"lot_id": lot.id, "entries": entries, "count": len(entries)})


# ── Access tokens ──────────────────────────────────────────────────────────────


@lot_bp.route("/lots/<lot_id>/generate-qr", methods=["POST"])
@require_identity
def generate_qr(lot_id):
    issued = access_token_service.issue_access_token(lot_id, current_identity())
    return api_success(issued.to_dict(), "Ephemeral QR code generated successfully")


@lot_bp.route("/lots/<lot_id>/access-tokens/validate", methods=["GET"])
@require_identity
def validate_access_token(lot_id):
    token = request.args.get("token")
    if not token:
        raise MissingFieldsError(["token"])
    lot = load_lot(lot_id)
    result = access_token_service.validate_access_token(lot, token)
    return api_success(result.to_dict())


@lot_bp.route("/scan", methods=["POST"])
@require_identity
def scan():
    data = json_body()
    if not data.get("qrData"):
        raise MissingFieldsError(["qrData"])
    lot = access_token_service.resolve_scan(
        data["qrData"], current_identity(), token=data.get("token"),
    )
    return api_success(lot.to_dict(), "Lot retrieved successfully")


# ── Status transition ──────────────────────────────────────────────────────────


@lot_bp.route("/lots/<lot_id>/status", methods=["PUT"])
@require_identity
def update_status(lot_id):
    data = json_body()
    lot = lot_lifecycle.transition_lot_status(
        lot_id,
        current_identity(),
        data.get("status"),
        notes=data.get("notes"),
        sample_check=data.get("sampleCheck"),
    )
    return api_success(lot.to_dict(), "Lot status updated successfully")


# ── Workflow actions ───────────────────────────────────────────────────────────


@lot_bp.route("/lots/<lot_id>/install", methods=["POST"])
@require_identity
def install(lot_id):
    data = json_body()
    lot = lot_workflow_service.record_installation(
        lot_id,
        current_identity(),
        location=data.get("location"),
        section=data.get("section"),
        installation_date=data.get("installationDate"),
        notes=data.get("notes"),
    )
    return api_success(lot.to_dict(), "Installation recorded successfully")


@lot_bp.route("/lots/<lot_id>/inspection", methods=["POST"])
@require_identity
def inspect(lot_id):
    data = json_body()
    lot = lot_workflow_service.record_inspection(
        lot_id,
        current_identity(),
        condition=data.get("condition"),
        notes=data.get("notes"),
        photos=data.get("photos"),
        next_inspection_due=data.get("nextInspectionDue"),
    )
    return api_success(lot.to_dict(), "Inspection recorded successfully")


@lot_bp.route("/lots/<lot_id>/replacement-request", methods=["POST"])
@require_identity
def request_replacement(lot_id):
    data = json_body()
    req = lot_workflow_service.request_replacement(
        lot_id,
        current_identity(),
        reason=data.get("reason"),
        description=data.get("description"),
        photos=data.get("photos"),
        priority=data.get("priority"),
        part_id=data.get("partId"),
    )
    return api_success(req.to_dict(), "Replacement request created successfully", 201)


# ── Parts ──────────────────────────────────────────────────────────────────────


@lot_bp.route("/lots/<lot_id>/parts", methods=["POST"])
@require_identity
def generate_parts(lot_id):
    data = json_body()
    parts = lot_workflow_service.generate_parts(lot_id, current_identity(), data.get("quantity"))
    return api_success(
        {"parts": [p.to_dict() for p in parts], "count": len(parts)},
        f"{len(parts)} parts generated successfully",
        201,
    )


@lot_bp.route("/lots/<lot_id>/parts", methods=["GET"])
@require_identity
def list_parts(lot_id):
    installed = request.args.get("installed")
    parts = lot_workflow_service.list_parts(
        lot_id,
        current_identity(),
        installed=None if installed is None else installed.lower() == "true",
    )
    return api_success({"parts": [p.to_dict() for p in parts], "count": len(parts)})


@lot_bp.route("/parts/<part_id>", methods=["GET"])
@require_identity
def get_part(part_id):
    part = lot_workflow_service.get_part(part_id, current_identity())
    return api_success(part.to_dict(), "Part retrieved successfully")


@lot_bp.route("/parts/<part_id>/install", methods=["POST"])
@require_identity
def install_part(part_id):
    data = json_body()
    part = lot_workflow_service.install_part(
        part_id,
        current_identity(),
        location=data.get("location"),
        section=data.get("section"),
        installation_date=data.get("installationDate"),
    )
    return api_success(part.to_dict(), "Part installed successfully")
