"""
Lot audit domain model.

Models:
    - LotAuditEntry: immutable, append-only fact attached to one lot.

Metadata is a tagged union keyed by the entry's action tag: each tag has a
frozen dataclass describing its payload.  The JSON stored in
``metadata_json`` uses camelCase keys (``previousStatus``, ``requestId``,
...) because that is the shape downstream audit consumers read.
"""

import json
import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import ClassVar

from sqlalchemy import event

from lotflow.models import db
from lotflow.utils.helpers import isoformat

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ACTIONS = (
    "qr_generated",
    "status_updated",
    "installation_recorded",
    "inspection_recorded",
    "replacement_requested",
)


# ── Metadata variants ────────────────────────────────────────────────────────

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", name).lower()


def _jsonable(value):
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, tuple):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class AuditMetadata:
    """Base for per-action payloads."""

    action: ClassVar[str] = ""

    def to_dict(self) -> dict:
        return {_camel(f.name): _jsonable(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class QrGeneratedMetadata(AuditMetadata):
    action: ClassVar[str] = "qr_generated"

    expires_at: str
    token_fingerprint: str


@dataclass(frozen=True)
class StatusUpdatedMetadata(AuditMetadata):
    action: ClassVar[str] = "status_updated"

    previous_status: str
    new_status: str
    notes: str | None = None
    sample_check: dict | None = None


@dataclass(frozen=True)
class InstallationRecordedMetadata(AuditMetadata):
    action: ClassVar[str] = "installation_recorded"

    location: str
    section: str
    installation_date: str
    notes: str | None = None


@dataclass(frozen=True)
class InspectionRecordedMetadata(AuditMetadata):
    action: ClassVar[str] = "inspection_recorded"

    condition: str
    inspection_date: str
    notes: str | None = None
    photos: tuple = field(default_factory=tuple)
    next_inspection_due: str | None = None


@dataclass(frozen=True)
class ReplacementRequestedMetadata(AuditMetadata):
    action: ClassVar[str] = "replacement_requested"

    request_id: str
    reason: str
    description: str
    priority: str
    photos: tuple = field(default_factory=tuple)
    part_id: str | None = None


AUDIT_METADATA_TYPES: dict[str, type[AuditMetadata]] = {
    cls.action: cls
    for cls in (
        QrGeneratedMetadata,
        StatusUpdatedMetadata,
        InstallationRecordedMetadata,
        InspectionRecordedMetadata,
        ReplacementRequestedMetadata,
    )
}


def metadata_from_dict(action: str, data: dict) -> AuditMetadata:
    """Rebuild the typed payload for *action* from its stored camelCase dict.

    Unknown keys are ignored so older rows keep loading after a variant
    gains or loses a field.
    """
    cls = AUDIT_METADATA_TYPES.get(action)
    if cls is None:
        raise KeyError(f"No metadata type registered for action {action!r}")
    names = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in (data or {}).items():
        name = _snake(key)
        if name in names:
            kwargs[name] = tuple(value) if isinstance(value, list) else value
    return cls(**kwargs)


class LotAuditEntry(db.Model):
    """
    Immutable audit fact for a lot.

    ``seq`` is the 1-based append position within the lot and is the only
    ordering key; two entries with equal timestamps are still ordered by
    ``seq``.  ``actor_name`` is frozen at append time.
    """

    __tablename__ = "lot_audit_entries"
    __table_args__ = (
        db.UniqueConstraint("lot_id", "seq", name="uq_lot_audit_seq"),
        db.Index("idx_lot_audit_action", "lot_id", "action"),
        db.Index("idx_lot_audit_actor", "actor_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    lot_id = db.Column(
        db.String(40),
        db.ForeignKey("lots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    seq = db.Column(db.Integer, nullable=False)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    actor_id = db.Column(db.String(32), nullable=False)
    actor_name = db.Column(db.String(200), nullable=False, comment="Display name snapshot at append time")
    action = db.Column(db.String(40), nullable=False, comment="qr_generated | status_updated | …")
    details = db.Column(db.Text, default="")
    metadata_json = db.Column(db.Text, default="{}")

    lot = db.relationship("Lot", back_populates="audit_trail")

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def metadata_dict(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    @property
    def typed_metadata(self) -> AuditMetadata:
        return metadata_from_dict(self.action, self.metadata_dict)

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "lot_id": self.lot_id,
            "timestamp": isoformat(self.timestamp),
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "action": self.action,
            "details": self.details,
            "metadata": self.metadata_dict,
        }

    def __repr__(self):
        return f"<LotAuditEntry {self.lot_id}#{self.seq}: {self.action}>"


@event.listens_for(LotAuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise RuntimeError(f"Audit entries are append-only: refusing to update {target!r}")


@event.listens_for(LotAuditEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise RuntimeError(f"Audit entries are append-only: refusing to delete {target!r}")
