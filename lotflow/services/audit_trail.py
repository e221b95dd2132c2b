"""
Audit Trail Service - append-only lot history.

    append(lot, entry)       attach an entry at the tail, assign seq/timestamp
    record(lot, actor, md)   build an entry from an Identity + typed metadata
    query(lot, predicate)    lazy, restartable iteration in append order

Nothing in this module commits; the caller's atomic operation owns the
transaction.  Entries are never reordered, edited or removed (the model
rejects UPDATE/DELETE at flush time).
"""

import json
import logging
from datetime import datetime

from lotflow.models import db
from lotflow.models.audit import AUDIT_ACTIONS, AuditMetadata, LotAuditEntry
from lotflow.models.lot import Lot
from lotflow.services.identity import Identity
from lotflow.utils.helpers import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def _last_timestamp(lot: Lot):
    """Timestamp of the newest entry, pending ones included, without loading the trail."""
    pending = [e.timestamp for e in db.session.new
               if isinstance(e, LotAuditEntry) and e.lot_id == lot.id and e.timestamp]
    if pending:
        return max(ensure_utc(ts) for ts in pending)
    row = (
        db.session.query(LotAuditEntry.timestamp)
        .filter(LotAuditEntry.lot_id == lot.id)
        .order_by(LotAuditEntry.seq.desc())
        .first()
    )
    return ensure_utc(row[0]) if row else None


def append(lot: Lot, entry: LotAuditEntry) -> LotAuditEntry:
    """Insert *entry* at the tail of ``lot.audit_trail``.

    The timestamp is assigned here when unset and is never allowed to run
    backwards relative to the previous entry, so timestamp order and
    append order agree even if the server clock steps back.
    """
    if entry.action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action {entry.action!r}")
    if entry.id is not None or entry.seq is not None:
        raise ValueError("Audit entries can only be appended once")

    timestamp = ensure_utc(entry.timestamp) if entry.timestamp else utcnow()
    last = _last_timestamp(lot)
    if last and timestamp < last:
        timestamp = last

    lot.audit_count = (lot.audit_count or 0) + 1
    entry.seq = lot.audit_count
    entry.timestamp = timestamp
    entry.lot_id = lot.id
    db.session.add(entry)
    # Touching the lot row guarantees a versioned UPDATE for this operation.
    lot.updated_at = timestamp
    return entry


def record(
    lot: Lot,
    actor: Identity,
    metadata: AuditMetadata,
    details: str,
    *,
    actor_name: str | None = None,
    now: datetime | None = None,
) -> LotAuditEntry:
    """Append a typed audit entry for *actor*.

    ``actor_name`` defaults to the identity's display name and is frozen
    into the row.
    """
    entry = LotAuditEntry(
        timestamp=now,
        actor_id=actor.actor_id,
        actor_name=actor_name or actor.display_name,
        action=metadata.action,
        details=details,
        metadata_json=json.dumps(metadata.to_dict(), default=str),
    )
    append(lot, entry)
    logger.debug(
        "Audit entry appended",
        extra={"lot_id": lot.id, "event_type": metadata.action, "seq": entry.seq},
    )
    return entry


class AuditTrailQuery:
    """Lazy view over a lot's audit entries.

    Each iteration runs a fresh ordered SELECT, so the view is restartable
    and always finite.  Column filters run in SQL; the time window and the
    free-form predicate run in Python.
    """

    def __init__(self, lot_id, predicate=None, *, action=None, actor_id=None,
                 since=None, until=None, batch_size=100):
        self.lot_id = lot_id
        self.predicate = predicate
        self.action = action
        self.actor_id = actor_id
        self.since = ensure_utc(since)
        self.until = ensure_utc(until)
        self.batch_size = batch_size

    def _select(self):
        q = LotAuditEntry.query.filter(LotAuditEntry.lot_id == self.lot_id)
        if self.action:
            q = q.filter(LotAuditEntry.action == self.action)
        if self.actor_id:
            q = q.filter(LotAuditEntry.actor_id == self.actor_id)
        return q.order_by(LotAuditEntry.seq.asc())

    def _matches(self, entry: LotAuditEntry) -> bool:
        ts = ensure_utc(entry.timestamp)
        if self.since is not None and ts < self.since:
            return False
        if self.until is not None and ts >= self.until:
            return False
        if self.predicate is not None and not self.predicate(entry):
            return False
        return True

    def __iter__(self):
        for entry in self._select().yield_per(self.batch_size):
            if self._matches(entry):
                yield entry

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self]


def query(lot: Lot, predicate=None, **filters) -> AuditTrailQuery:
    """Entries of *lot* matching *predicate* and column filters, in append order.

    Filters: action, actor_id, since (inclusive), until (exclusive).
    """
    return AuditTrailQuery(lot.id, predicate, **filters)
