"""
User History Service - mirrors workflow actions onto the acting user.

An actor's history is only ever written by operations that actor performs;
the mirror is added in the same transaction as the lot change it mirrors.
"""

import json
import logging
from datetime import datetime

from lotflow.models import db
from lotflow.models.user import HISTORY_ACTIONS, HISTORY_TARGET_TYPES, User, UserHistoryEntry
from lotflow.services.identity import Identity
from lotflow.services.persistence import load_user
from lotflow.utils.helpers import utcnow

logger = logging.getLogger(__name__)


def load_acting_user(actor: Identity) -> User:
    """Return the actor's user record; NotFoundError if it does not exist."""
    return load_user(actor.actor_id)


def mirror(
    user: User,
    action: str,
    target_type: str,
    target_id: str,
    details: str,
    metadata: dict,
    *,
    now: datetime | None = None,
) -> UserHistoryEntry:
    """Add a history entry for *user* to the session (no commit)."""
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown history action {action!r}")
    if target_type not in HISTORY_TARGET_TYPES:
        raise ValueError(f"Unknown history target type {target_type!r}")
    entry = UserHistoryEntry(
        user_id=user.id,
        timestamp=now or utcnow(),
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
        metadata_json=json.dumps(metadata or {}, default=str),
    )
    db.session.add(entry)
    return entry


def list_history(actor: Identity, *, target_type: str | None = None,
                 target_id: str | None = None) -> list[UserHistoryEntry]:
    """The actor's own history entries in append order."""
    user = load_acting_user(actor)
    q = UserHistoryEntry.query.filter(UserHistoryEntry.user_id == user.id)
    if target_type:
        q = q.filter(UserHistoryEntry.target_type == target_type)
    if target_id:
        q = q.filter(UserHistoryEntry.target_id == target_id.upper())
    return q.order_by(UserHistoryEntry.id.asc()).all()
