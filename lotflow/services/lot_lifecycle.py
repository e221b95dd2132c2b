"""
Lot Lifecycle Service - creation and the depot-staff status state machine.

States: pending (initial), verified, rejected, accepted, held.

The only gate on a status change is the actor's role: any status may
follow any other when a depot-staff member performs the change, which lets
depot staff correct an erroneous hold or re-hold an accepted lot after a
sample re-check.  ``STATUS_TRANSITIONS`` spells this graph out so that a
stricter deployment has a single table to edit.

Usage:
    from lotflow.services.lot_lifecycle import transition_lot_status

    lot = transition_lot_status(
        lot_id="LOT001",
        actor=identity,
        new_status="accepted",
        notes="sample ok",
    )
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from lotflow.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidFieldError,
    InvalidStatusError,
    MissingFieldsError,
)
from lotflow.models import db
from lotflow.models.audit import StatusUpdatedMetadata
from lotflow.models.lot import LOT_STATUSES, Lot
from lotflow.services import audit_trail, user_history
from lotflow.services.identity import Identity
from lotflow.services.persistence import with_lot
from lotflow.utils.helpers import ensure_utc, missing_fields, new_id, optional_text, parse_datetime, utcnow

logger = logging.getLogger(__name__)

STATUS_CHANGE_ROLE = "depot-staff"
CREATOR_ROLE = "vendor"

# Every status may follow every other; only the role is checked.
STATUS_TRANSITIONS = {status: frozenset(LOT_STATUSES) for status in LOT_STATUSES}

LOT_REQUIRED_FIELDS = (
    "part_name",
    "factory_name",
    "lot_number",
    "supply_date",
    "manufacturing_date",
    "warranty_period",
)


def create_lot(actor: Identity, data: dict, *, now: datetime | None = None) -> Lot:
    """Create a lot owned by *actor*.

    Args:
        actor: Must hold the vendor role.
        data: snake_case descriptive fields (see LOT_REQUIRED_FIELDS).

    Raises:
        ForbiddenError: actor is not a vendor.
        MissingFieldsError: a required field is absent or blank.
        InvalidFieldError: a date does not parse.
        ConflictError: ``lot_number`` already exists.
    """
    if actor.role != CREATOR_ROLE:
        raise ForbiddenError("Only vendors can create lots", role=actor.role, required=[CREATOR_ROLE])

    missing = missing_fields(data, *LOT_REQUIRED_FIELDS)
    if missing:
        raise MissingFieldsError(missing, "Missing required fields")
    for name in ("part_name", "factory_name", "lot_number", "warranty_period"):
        optional_text(name, data[name])

    dates = {}
    for name in ("supply_date", "manufacturing_date"):
        try:
            dates[name] = parse_datetime(data[name])
        except ValueError:
            raise InvalidFieldError(name, data[name]) from None

    user_history.load_acting_user(actor)

    lot_number = str(data["lot_number"]).strip()
    if Lot.query.filter_by(lot_number=lot_number).first() is not None:
        raise ConflictError("Lot", f"Duplicate value for field(s): lot_number ({lot_number})")

    created_at = ensure_utc(now) if now else utcnow()
    lot = Lot(
        id=new_id("LOT"),
        part_name=str(data["part_name"]).strip(),
        factory_name=str(data["factory_name"]).strip(),
        lot_number=lot_number,
        supply_date=dates["supply_date"],
        manufacturing_date=dates["manufacturing_date"],
        warranty_period=str(data["warranty_period"]).strip(),
        status="pending",
        vendor_id=actor.actor_id,
        audit_count=0,
        created_at=created_at,
        updated_at=created_at,
    )
    db.session.add(lot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Lot", f"Duplicate value for field(s): lot_number ({lot_number})") from None

    logger.info(
        "Lot %s created by %s", lot.id, actor.actor_id,
        extra={"lot_id": lot.id, "actor_id": actor.actor_id, "event_type": "lot_created"},
    )
    return lot


def require_known_status(new_status) -> None:
    if new_status not in LOT_STATUSES:
        raise InvalidStatusError(
            f"Invalid status {new_status!r}; must be one of: {', '.join(LOT_STATUSES)}",
            {"allowed": list(LOT_STATUSES)},
        )


def validate_status_transition(current: str, new_status: str) -> None:
    require_known_status(new_status)
    if new_status not in STATUS_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusError(f"Cannot move lot from {current} to {new_status}")


def transition_lot_status(
    lot_id,
    actor: Identity,
    new_status: str,
    *,
    notes: str | None = None,
    sample_check: dict | None = None,
    now: datetime | None = None,
) -> Lot:
    """Change a lot's status and record ``status_updated``.

    Role is checked before anything is loaded, so a non-depot actor gets
    Forbidden whatever the lot's current status (or existence).
    """
    if actor.role != STATUS_CHANGE_ROLE:
        raise ForbiddenError(
            "Only depot staff can change lot status",
            role=actor.role,
            required=[STATUS_CHANGE_ROLE],
        )
    optional_text("notes", notes)
    if sample_check is not None and not isinstance(sample_check, dict):
        raise InvalidFieldError("sampleCheck", type(sample_check).__name__)

    def _mutate(lot: Lot):
        previous = lot.status
        validate_status_transition(previous, new_status)
        user = user_history.load_acting_user(actor)
        at = ensure_utc(now) if now else utcnow()

        metadata = StatusUpdatedMetadata(
            previous_status=previous,
            new_status=new_status,
            notes=notes,
            sample_check=sample_check,
        )
        audit_trail.record(
            lot, actor, metadata,
            f"Status changed from {previous} to {new_status}",
            actor_name=user.display_name,
            now=at,
        )
        lot.status = new_status
        user_history.mirror(
            user, "update_lot_status", "lot", lot.id,
            f"Updated lot {lot.lot_number} status to {new_status}",
            metadata.to_dict(),
            now=at,
        )
        return lot

    lot = with_lot(lot_id, _mutate)
    logger.info(
        "Lot %s status → %s", lot.id, new_status,
        extra={"lot_id": lot.id, "actor_id": actor.actor_id, "event_type": "status_updated"},
    )
    return lot
