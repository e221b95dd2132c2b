"""
Lot domain models.

Models:
    - Lot: the tracked inventory unit; owns ``status`` and the optimistic
      ``version`` counter every workflow operation bumps.
    - LotAccessToken: opaque, time-bounded credential scoped to one lot.
      Only token metadata is stored; the rendered scan code never is.
    - Part: an individual sub-unit generated from a lot. A part is installed
      at most once; its own ``version`` guards the install write.
"""

import hashlib
from datetime import datetime, timezone

from lotflow.models import db
from lotflow.utils.helpers import ensure_utc, isoformat

# ── Constants ────────────────────────────────────────────────────────────────

LOT_STATUSES = ("pending", "verified", "rejected", "accepted", "held")

INSPECTION_CONDITIONS = ("good", "worn", "replace")


def token_fingerprint(token: str) -> str:
    """Short SHA-256 digest used in logs and audit metadata instead of the token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


class Lot(db.Model):
    """
    A physical inventory lot.

    Business rules:
    - ``vendor_id`` (the owner) is set at creation and never changes.
    - ``status`` is only written by the lifecycle service.
    - ``version`` is SQLAlchemy's version counter: a flush against a stale
      version raises StaleDataError, which the persistence layer retries.
    - Lots are never deleted; rejected / held are terminal-but-present.
    """

    __tablename__ = "lots"

    id = db.Column(db.String(40), primary_key=True)
    part_name = db.Column(db.String(200), nullable=False)
    factory_name = db.Column(db.String(200), nullable=False)
    lot_number = db.Column(db.String(100), nullable=False, unique=True)
    supply_date = db.Column(db.DateTime(timezone=True), nullable=False)
    manufacturing_date = db.Column(db.DateTime(timezone=True), nullable=False)
    warranty_period = db.Column(db.String(50), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | verified | rejected | accepted | held",
    )
    vendor_id = db.Column(
        db.String(32),
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    audit_count = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    vendor = db.relationship("User")
    audit_trail = db.relationship(
        "LotAuditEntry",
        back_populates="lot",
        order_by="LotAuditEntry.seq",
        lazy="select",
    )
    access_tokens = db.relationship(
        "LotAccessToken",
        back_populates="lot",
        order_by="LotAccessToken.id",
        lazy="select",
        cascade="all, delete-orphan",
    )
    parts = db.relationship("Part", back_populates="lot", lazy="dynamic")

    def scan_payload(self, issued_at: datetime) -> dict:
        """Payload handed to the code renderer: identifier + descriptive fields."""
        return {
            "type": "lot",
            "lotId": self.id,
            "partName": self.part_name,
            "factoryName": self.factory_name,
            "lotNumber": self.lot_number,
            "manufacturingDate": isoformat(self.manufacturing_date),
            "supplyDate": isoformat(self.supply_date),
            "warrantyPeriod": self.warranty_period,
            "issuedAt": isoformat(issued_at),
        }

    def to_dict(self, include_audit=True, include_tokens=False):
        d = {
            "id": self.id,
            "part_name": self.part_name,
            "factory_name": self.factory_name,
            "lot_number": self.lot_number,
            "supply_date": isoformat(self.supply_date),
            "manufacturing_date": isoformat(self.manufacturing_date),
            "warranty_period": self.warranty_period,
            "status": self.status,
            "vendor_id": self.vendor_id,
            "version": self.version,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if include_audit:
            d["audit_trail"] = [e.to_dict() for e in self.audit_trail]
        if include_tokens:
            d["access_tokens"] = [t.to_dict() for t in self.access_tokens]
        return d

    def __repr__(self):
        return f"<Lot {self.id} [{self.status}]>"


class LotAccessToken(db.Model):
    """
    Ephemeral access credential for one lot.

    Tokens are never extended or renewed: a new scan issues a new row.
    Validity is always computed from ``expires_at``; pruning expired rows
    is garbage collection only.
    """

    __tablename__ = "lot_access_tokens"
    __table_args__ = (
        db.UniqueConstraint("lot_id", "token", name="uq_lot_access_token"),
        db.Index("idx_lot_access_token_expiry", "expires_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    lot_id = db.Column(
        db.String(40),
        db.ForeignKey("lots.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token = db.Column(db.String(128), nullable=False)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    generated_by = db.Column(db.String(32), nullable=False)

    lot = db.relationship("Lot", back_populates="access_tokens")

    @property
    def fingerprint(self) -> str:
        return token_fingerprint(self.token)

    def is_live(self, now: datetime) -> bool:
        return ensure_utc(now) < ensure_utc(self.expires_at)

    def to_dict(self) -> dict:
        """Serialise without the token value."""
        return {
            "fingerprint": self.fingerprint,
            "generated_at": isoformat(self.generated_at),
            "expires_at": isoformat(self.expires_at),
            "generated_by": self.generated_by,
        }

    def __repr__(self):
        return f"<LotAccessToken {self.lot_id} {self.fingerprint} exp={self.expires_at}>"


class Part(db.Model):
    """Individual unit generated from a lot; copies the lot's descriptive fields."""

    __tablename__ = "parts"

    id = db.Column(db.String(40), primary_key=True)
    lot_id = db.Column(
        db.String(40),
        db.ForeignKey("lots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    part_name = db.Column(db.String(200), nullable=False)
    factory_name = db.Column(db.String(200), nullable=False)
    lot_number = db.Column(db.String(100), nullable=False)
    manufacturing_date = db.Column(db.DateTime(timezone=True), nullable=False)
    supply_date = db.Column(db.DateTime(timezone=True), nullable=False)
    warranty_period = db.Column(db.String(50), nullable=False)
    is_installed = db.Column(db.Boolean, nullable=False, default=False)
    installed_location = db.Column(db.String(200), nullable=True)
    installed_section = db.Column(db.String(200), nullable=True)
    installed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    installed_by = db.Column(db.String(32), nullable=True)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    lot = db.relationship("Lot", back_populates="parts")

    __mapper_args__ = {"version_id_col": version}

    def installation_dict(self) -> dict | None:
        if not self.is_installed:
            return None
        return {
            "location": self.installed_location,
            "section": self.installed_section,
            "installationDate": isoformat(self.installed_at),
            "installedBy": self.installed_by,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lot_id": self.lot_id,
            "part_name": self.part_name,
            "factory_name": self.factory_name,
            "lot_number": self.lot_number,
            "manufacturing_date": isoformat(self.manufacturing_date),
            "supply_date": isoformat(self.supply_date),
            "warranty_period": self.warranty_period,
            "is_installed": self.is_installed,
            "installation": self.installation_dict(),
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Part {self.id} of {self.lot_id}>"
