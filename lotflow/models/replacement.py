"""
Replacement request model - a small state machine correlated to a lot.

    pending ──► approved ──► completed
        └────► rejected

rejected and completed are terminal; nothing skips pending.
"""

from datetime import datetime, timezone

from lotflow.models import db
from lotflow.utils.helpers import isoformat

# ── Constants ────────────────────────────────────────────────────────────────

REPLACEMENT_STATUSES = ("pending", "approved", "rejected", "completed")

REPLACEMENT_REASONS = ("defective", "damaged", "worn", "expired", "incorrect_spec", "other")

REPLACEMENT_PRIORITIES = ("low", "medium", "high", "urgent")

REQUESTER_ROLES = ("track-worker", "inspector")

REVIEWER_ROLES = ("depot-staff", "admin")

REPLACEMENT_TRANSITIONS = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset({"completed"}),
    "rejected": frozenset(),
    "completed": frozenset(),
}


class ReplacementRequest(db.Model):
    __tablename__ = "replacement_requests"
    __table_args__ = (
        db.Index("idx_replacement_status", "status"),
        db.Index("idx_replacement_created", "created_at"),
    )

    id = db.Column(db.String(40), primary_key=True)
    lot_id = db.Column(
        db.String(40),
        db.ForeignKey("lots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    part_id = db.Column(db.String(40), db.ForeignKey("parts.id", ondelete="SET NULL"), nullable=True)
    requested_by = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=False, index=True)
    requested_by_role = db.Column(db.String(20), nullable=False, comment="track-worker | inspector")
    reason = db.Column(db.String(30), nullable=False)
    description = db.Column(db.Text, nullable=False)
    photos = db.Column(db.JSON, default=list)
    priority = db.Column(db.String(10), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="pending", comment=" | ".join(REPLACEMENT_STATUSES))
    reviewed_by = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_notes = db.Column(db.Text, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in REPLACEMENT_TRANSITIONS.get(self.status, frozenset())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lot_id": self.lot_id,
            "part_id": self.part_id,
            "requested_by": self.requested_by,
            "requested_by_role": self.requested_by_role,
            "reason": self.reason,
            "description": self.description,
            "photos": self.photos or [],
            "priority": self.priority,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": isoformat(self.reviewed_at),
            "review_notes": self.review_notes,
            "completed_at": isoformat(self.completed_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<ReplacementRequest {self.id} {self.lot_id} [{self.status}]>"
