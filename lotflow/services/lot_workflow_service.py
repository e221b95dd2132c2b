"""
Lot Workflow Service - role-gated field actions that record history
without changing a lot's status.

    record_installation   track-worker   → installation_recorded
    record_inspection     inspector      → inspection_recorded
    request_replacement   track-worker / inspector
                                         → replacement_requested + new
                                           ReplacementRequest (pending)
    generate_parts        owning vendor / admin (sub-units, not audited)
    install_part          track-worker   (one sub-unit, once; mirrored to
                                          the actor's history only)

Every audited action runs inside ``with_lot``: the audit entry, the user
history mirror and any spawned row commit together with the lot version
bump, or not at all.
"""

import logging
from datetime import datetime

from lotflow.core.exceptions import (
    ForbiddenError,
    InvalidConditionError,
    InvalidFieldError,
    InvalidStatusError,
    MissingFieldsError,
    NotFoundError,
)
from lotflow.models import db
from lotflow.models.audit import (
    InspectionRecordedMetadata,
    InstallationRecordedMetadata,
    ReplacementRequestedMetadata,
)
from lotflow.models.lot import INSPECTION_CONDITIONS, Lot, Part
from lotflow.models.replacement import (
    REPLACEMENT_PRIORITIES,
    REPLACEMENT_REASONS,
    REQUESTER_ROLES,
    ReplacementRequest,
)
from lotflow.services import audit_trail, user_history
from lotflow.services.identity import Identity
from lotflow.services.persistence import load_lot, load_part, with_lot, with_part
from lotflow.utils.helpers import ensure_utc, isoformat, new_id, optional_text, parse_datetime, utcnow

logger = logging.getLogger(__name__)

INSTALLER_ROLE = "track-worker"
INSPECTOR_ROLE = "inspector"
PART_GENERATOR_ROLES = ("vendor", "admin")
MAX_PARTS_PER_CALL = 1000


def _require_role(actor: Identity, allowed: tuple, action: str) -> None:
    if actor.role not in allowed:
        raise ForbiddenError(
            f"Role {actor.role} may not {action}",
            role=actor.role,
            required=list(allowed),
        )


def _date_or_default(field: str, value, default: datetime) -> datetime:
    try:
        return parse_datetime(value) or default
    except ValueError:
        raise InvalidFieldError(field, value) from None


def _require_placement(location, section) -> None:
    missing = [name for name, value in (("location", location), ("section", section))
               if not value or not str(value).strip()]
    if missing:
        raise MissingFieldsError(missing, "Location and section are required")
    optional_text("location", location)
    optional_text("section", section)


def _photos(value) -> tuple:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)) or not all(isinstance(p, str) for p in value):
        raise InvalidFieldError("photos", value)
    return tuple(value)


# ── Install ──────────────────────────────────────────────────────────────────


def record_installation(
    lot_id,
    actor: Identity,
    *,
    location: str,
    section: str,
    installation_date=None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Lot:
    """Record that *actor* installed the lot. Re-installation is allowed."""
    _require_role(actor, (INSTALLER_ROLE,), "record installations")
    _require_placement(location, section)
    optional_text("notes", notes)
    installed_on = _date_or_default("installationDate", installation_date, None)

    def _mutate(lot: Lot):
        user = user_history.load_acting_user(actor)
        at = ensure_utc(now) if now else utcnow()
        metadata = InstallationRecordedMetadata(
            location=location,
            section=section,
            installation_date=isoformat(installed_on or at),
            notes=notes,
        )
        audit_trail.record(
            lot, actor, metadata,
            f"Installation recorded at {location}, {section}",
            actor_name=user.display_name,
            now=at,
        )
        user_history.mirror(
            user, "install_lot", "lot", lot.id,
            f"Installed lot {lot.lot_number} at {location}",
            metadata.to_dict(),
            now=at,
        )
        return lot

    lot = with_lot(lot_id, _mutate)
    logger.info(
        "Installation recorded for lot %s at %s/%s", lot.id, location, section,
        extra={"lot_id": lot.id, "actor_id": actor.actor_id, "event_type": "installation_recorded"},
    )
    return lot


# ── Inspect ──────────────────────────────────────────────────────────────────


def record_inspection(
    lot_id,
    actor: Identity,
    *,
    condition: str,
    notes: str | None = None,
    photos=None,
    next_inspection_due=None,
    now: datetime | None = None,
) -> Lot:
    """Record an inspection result; ``condition`` must be good | worn | replace."""
    _require_role(actor, (INSPECTOR_ROLE,), "record inspections")
    if condition not in INSPECTION_CONDITIONS:
        raise InvalidConditionError(
            "Valid condition is required (good, worn, replace)",
            {"allowed": list(INSPECTION_CONDITIONS)},
        )
    optional_text("notes", notes)
    photo_list = _photos(photos)
    due = _date_or_default("nextInspectionDue", next_inspection_due, None)

    def _mutate(lot: Lot):
        user = user_history.load_acting_user(actor)
        at = ensure_utc(now) if now else utcnow()
        metadata = InspectionRecordedMetadata(
            condition=condition,
            inspection_date=isoformat(at),
            notes=notes,
            photos=photo_list,
            next_inspection_due=isoformat(due),
        )
        audit_trail.record(
            lot, actor, metadata,
            f"Inspection completed - condition: {condition}",
            actor_name=user.display_name,
            now=at,
        )
        user_history.mirror(
            user, "inspect_lot", "lot", lot.id,
            f"Inspected lot {lot.lot_number} - condition: {condition}",
            metadata.to_dict(),
            now=at,
        )
        return lot

    lot = with_lot(lot_id, _mutate)
    logger.info(
        "Inspection recorded for lot %s: %s", lot.id, condition,
        extra={"lot_id": lot.id, "actor_id": actor.actor_id, "event_type": "inspection_recorded"},
    )
    return lot


# ── Replacement request ──────────────────────────────────────────────────────


def request_replacement(
    lot_id,
    actor: Identity,
    *,
    reason: str,
    description: str,
    photos=None,
    priority: str | None = None,
    part_id: str | None = None,
    now: datetime | None = None,
) -> ReplacementRequest:
    """Open a pending replacement request against a lot (optionally one part).

    The lot gains a ``replacement_requested`` entry carrying the new
    request's id; the request row commits in the same transaction.
    """
    _require_role(actor, REQUESTER_ROLES, "request replacements")
    missing = [name for name, value in (("reason", reason), ("description", description))
               if not value or not str(value).strip()]
    if missing:
        raise MissingFieldsError(missing, "Reason and description are required")
    optional_text("description", description)
    if reason not in REPLACEMENT_REASONS:
        raise InvalidFieldError("reason", reason, allowed=REPLACEMENT_REASONS)
    priority = priority or "medium"
    if priority not in REPLACEMENT_PRIORITIES:
        raise InvalidFieldError("priority", priority, allowed=REPLACEMENT_PRIORITIES)
    photo_list = _photos(photos)

    def _mutate(lot: Lot):
        part = None
        if part_id:
            part = load_part(part_id)
            if part.lot_id != lot.id:
                raise NotFoundError(resource="Part", resource_id=f"{part.id} in lot {lot.id}")
        user = user_history.load_acting_user(actor)
        at = ensure_utc(now) if now else utcnow()

        req = ReplacementRequest(
            id=new_id("REQ"),
            lot_id=lot.id,
            part_id=part.id if part else None,
            requested_by=actor.actor_id,
            requested_by_role=actor.role,
            reason=reason,
            description=description,
            photos=list(photo_list),
            priority=priority,
            status="pending",
            created_at=at,
            updated_at=at,
        )
        db.session.add(req)

        metadata = ReplacementRequestedMetadata(
            request_id=req.id,
            reason=reason,
            description=description,
            priority=priority,
            photos=photo_list,
            part_id=req.part_id,
        )
        audit_trail.record(
            lot, actor, metadata,
            f"Replacement request created - reason: {reason}",
            actor_name=user.display_name,
            now=at,
        )
        user_history.mirror(
            user, "request_replacement", "lot", lot.id,
            f"Requested replacement for lot {lot.lot_number}",
            metadata.to_dict(),
            now=at,
        )
        return req

    req = with_lot(lot_id, _mutate)
    logger.info(
        "Replacement request %s opened for lot %s (%s, %s)",
        req.id, req.lot_id, reason, priority,
        extra={"lot_id": req.lot_id, "actor_id": actor.actor_id, "event_type": "replacement_requested"},
    )
    return req


# ── Parts ────────────────────────────────────────────────────────────────────


def generate_parts(lot_id, actor: Identity, quantity) -> list[Part]:
    """Create *quantity* sub-units copying the lot's descriptive fields."""
    _require_role(actor, PART_GENERATOR_ROLES, "generate parts")
    if isinstance(quantity, bool) or not isinstance(quantity, int) \
            or not 1 <= quantity <= MAX_PARTS_PER_CALL:
        raise InvalidFieldError("quantity", quantity)

    lot = load_lot(lot_id)
    if actor.role == "vendor" and lot.vendor_id != actor.actor_id:
        raise ForbiddenError("Access denied", role=actor.role)

    parts = [
        Part(
            id=new_id("PRT"),
            lot_id=lot.id,
            part_name=lot.part_name,
            factory_name=lot.factory_name,
            lot_number=lot.lot_number,
            manufacturing_date=lot.manufacturing_date,
            supply_date=lot.supply_date,
            warranty_period=lot.warranty_period,
            is_installed=False,
        )
        for _ in range(quantity)
    ]
    try:
        db.session.add_all(parts)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Generated %d part(s) for lot %s", len(parts), lot.id,
        extra={"lot_id": lot.id, "actor_id": actor.actor_id, "event_type": "parts_generated"},
    )
    return parts


def install_part(
    part_id,
    actor: Identity,
    *,
    location: str,
    section: str,
    installation_date=None,
    now: datetime | None = None,
) -> Part:
    """Mark a single part installed at *location* / *section*.

    Unlike lot installation this is a one-way switch: a second install of
    the same part is rejected with InvalidStatusError.
    """
    _require_role(actor, (INSTALLER_ROLE,), "install parts")
    _require_placement(location, section)
    installed_on = _date_or_default("installationDate", installation_date, None)

    def _mutate(part: Part):
        if part.is_installed:
            raise InvalidStatusError(
                "Part is already installed",
                {"installedAt": isoformat(part.installed_at), "installedBy": part.installed_by},
            )
        user = user_history.load_acting_user(actor)
        at = ensure_utc(now) if now else utcnow()

        part.is_installed = True
        part.installed_location = location
        part.installed_section = section
        part.installed_at = installed_on or at
        part.installed_by = actor.actor_id

        user_history.mirror(
            user, "install_part", "part", part.id,
            f"Installed part {part.id} of lot {part.lot_number} at {location}",
            part.installation_dict(),
            now=at,
        )
        return part

    part = with_part(part_id, _mutate)
    logger.info(
        "Part %s installed at %s/%s", part.id, location, section,
        extra={"lot_id": part.lot_id, "actor_id": actor.actor_id, "event_type": "part_installed"},
    )
    return part


def get_part(part_id, actor: Identity) -> Part:
    part = load_part(part_id)
    if actor.role == "vendor" and part.lot.vendor_id != actor.actor_id:
        raise ForbiddenError("Access denied", role=actor.role)
    return part


def list_parts(lot_id, actor: Identity, *, installed: bool | None = None) -> list[Part]:
    lot = load_lot(lot_id)
    if actor.role == "vendor" and lot.vendor_id != actor.actor_id:
        raise ForbiddenError("Access denied", role=actor.role)
    q = lot.parts
    if installed is not None:
        q = q.filter(Part.is_installed.is_(installed))
    return q.order_by(Part.id.asc()).all()


