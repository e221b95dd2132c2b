"""
User models - actors and their mirrored action history.

Models:
    - User: an authenticated actor (vendor, depot staff, track worker, ...).
    - UserHistoryEntry: append-only record of actions the user performed,
      keyed by (target_type, target_id) so an actor can review their own
      activity without going through lot lookups.

Primary sign-in (passwords, sessions) lives outside this service; the
identity resolver only hands us an already-authenticated actor id.
"""

import json
from datetime import datetime, timezone

from lotflow.models import db
from lotflow.utils.helpers import isoformat

# ── Constants ────────────────────────────────────────────────────────────────

ROLES = ("admin", "vendor", "depot-staff", "track-worker", "inspector")

ROLE_NAMES = {
    "admin": "Administrator",
    "vendor": "Vendor",
    "depot-staff": "Depot Staff",
    "track-worker": "Track Worker",
    "inspector": "Inspector",
}

HISTORY_TARGET_TYPES = frozenset({"lot", "part", "replacement_request"})

HISTORY_ACTIONS = frozenset({
    "generate_qr",
    "update_lot_status",
    "install_lot",
    "install_part",
    "inspect_lot",
    "request_replacement",
    "review_replacement",
    "complete_replacement",
})


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(32), primary_key=True, comment="e.g. 24VEN001")
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, comment="admin | vendor | depot-staff | track-worker | inspector")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    history = db.relationship(
        "UserHistoryEntry",
        back_populates="user",
        order_by="UserHistoryEntry.id",
        lazy="select",
    )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self, include_history=False):
        d = {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "role": self.role,
            "role_name": ROLE_NAMES.get(self.role, self.role),
            "created_at": isoformat(self.created_at),
        }
        if include_history:
            d["history"] = [h.to_dict() for h in self.history]
        return d

    def __repr__(self):
        return f"<User {self.id} ({self.role})>"


class UserHistoryEntry(db.Model):
    """
    Immutable mirror of an action, stored on the acting user's record.

    Rows are only ever inserted; the surrogate ``id`` is the append order.
    """

    __tablename__ = "user_history_entries"
    __table_args__ = (
        db.Index("idx_user_history_target", "target_type", "target_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(32),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    action = db.Column(db.String(40), nullable=False, comment="install_lot | inspect_lot | …")
    target_type = db.Column(db.String(30), nullable=False, comment="lot | part | replacement_request")
    target_id = db.Column(db.String(64), nullable=False)
    details = db.Column(db.Text, default="")
    metadata_json = db.Column(db.Text, default="{}")

    user = db.relationship("User", back_populates="history")

    @property
    def metadata_dict(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "timestamp": isoformat(self.timestamp),
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "details": self.details,
            "metadata": self.metadata_dict,
        }

    def __repr__(self):
        return f"<UserHistoryEntry {self.id}: {self.user_id} {self.action} {self.target_type}/{self.target_id}>"
