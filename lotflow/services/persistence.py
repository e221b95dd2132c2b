"""
Persistence adapter - loads, atomic saves and optimistic-concurrency retry.

Every workflow operation runs as load → validate → mutate → append →
persist inside one database transaction.  ``Lot.version`` and
``ReplacementRequest.version`` and ``Part.version`` are SQLAlchemy version counters, so a
commit against a row another writer already moved on raises
``StaleDataError``.  The retry helpers roll back (discarding every pending
audit entry, history mirror and child row of that attempt), reload, and
re-run the whole operation, up to ``CONFLICT_RETRY_LIMIT`` times.

Usage:
    from lotflow.services.persistence import with_lot

    def _mutate(lot):
        lot.status = "accepted"
        return lot.to_dict()

    result = with_lot("LOT001", _mutate)
"""

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from lotflow.core.exceptions import ConflictError, NotFoundError
from lotflow.models import db
from lotflow.models.lot import Lot, Part
from lotflow.models.replacement import ReplacementRequest
from lotflow.models.user import User

logger = logging.getLogger(__name__)

DEFAULT_RETRY_LIMIT = 3


def normalise_id(value) -> str:
    return str(value or "").strip().upper()


# ── Loads ────────────────────────────────────────────────────────────────────


def _load(model, pk, label):
    key = normalise_id(pk)
    obj = db.session.get(model, key, populate_existing=True) if key else None
    if obj is None:
        raise NotFoundError(resource=label, resource_id=key or pk)
    return obj


def load_lot(lot_id) -> Lot:
    return _load(Lot, lot_id, "Lot")


def load_user(user_id) -> User:
    return _load(User, user_id, "User")


def load_part(part_id) -> Part:
    return _load(Part, part_id, "Part")


def load_replacement_request(request_id) -> ReplacementRequest:
    return _load(ReplacementRequest, request_id, "ReplacementRequest")


# ── Atomic saves ─────────────────────────────────────────────────────────────


def save_lot_atomic(lot: Lot, expected_version: int) -> None:
    """Commit the session if *lot* is still at *expected_version*.

    The in-memory check catches a refreshed object; the versioned UPDATE
    issued by the flush catches a concurrent committer.  Both surface as
    StaleDataError.
    """
    if lot.version != expected_version:
        raise StaleDataError(
            f"Lot {lot.id} version changed in session: expected {expected_version}, found {lot.version}"
        )
    db.session.commit()


def save_replacement_request_atomic(req: ReplacementRequest, expected_version: int) -> None:
    if req.version != expected_version:
        raise StaleDataError(
            f"ReplacementRequest {req.id} version changed in session: "
            f"expected {expected_version}, found {req.version}"
        )
    db.session.commit()


def save_part_atomic(part: Part, expected_version: int) -> None:
    if part.version != expected_version:
        raise StaleDataError(
            f"Part {part.id} version changed in session: expected {expected_version}, found {part.version}"
        )
    db.session.commit()


# ── Retry loop ───────────────────────────────────────────────────────────────


def _retry_limit(retries: int | None) -> int:
    if retries is not None:
        return max(1, retries)
    return int(current_app.config.get("CONFLICT_RETRY_LIMIT", DEFAULT_RETRY_LIMIT))


def run_with_retry(attempt, *, resource: str, key: str, retries: int | None = None):
    """Call ``attempt()`` until it commits, retrying on write conflicts.

    Any non-conflict exception rolls back and propagates immediately, so a
    rejected operation never leaves a partial write behind.
    """
    limit = _retry_limit(retries)
    for n in range(1, limit + 1):
        try:
            return attempt()
        except (StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            logger.warning(
                "Concurrent write on %s %s (attempt %d/%d): %s",
                resource, key, n, limit, exc.__class__.__name__,
                extra={"event_type": "write_conflict"},
            )
        except Exception:
            db.session.rollback()
            raise
    logger.error("Retries exhausted for %s %s after %d attempts", resource, key, limit)
    raise ConflictError(resource, attempts=limit)


def with_lot(lot_id, mutate, *, retries: int | None = None):
    """Load a lot, apply ``mutate(lot)``, and save it at its loaded version."""

    def _attempt():
        lot = load_lot(lot_id)
        expected = lot.version
        # Deferred flush: the only version bump is the one issued at commit.
        with db.session.no_autoflush:
            result = mutate(lot)
        save_lot_atomic(lot, expected)
        return result

    return run_with_retry(_attempt, resource="Lot", key=normalise_id(lot_id), retries=retries)


def with_replacement_request(request_id, mutate, *, retries: int | None = None):
    """Same contract as ``with_lot`` for replacement requests."""

    def _attempt():
        req = load_replacement_request(request_id)
        expected = req.version
        with db.session.no_autoflush:
            result = mutate(req)
        save_replacement_request_atomic(req, expected)
        return result

    return run_with_retry(
        _attempt, resource="ReplacementRequest", key=normalise_id(request_id), retries=retries,
    )


def with_part(part_id, mutate, *, retries: int | None = None):
    """Same contract as ``with_lot`` for a single part."""

    def _attempt():
        part = load_part(part_id)
        expected = part.version
        with db.session.no_autoflush:
            result = mutate(part)
        save_part_atomic(part, expected)
        return result

    return run_with_retry(_attempt, resource="Part", key=normalise_id(part_id), retries=retries)
