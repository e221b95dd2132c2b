"""
Replacement Request Service - review sub-workflow.

    pending ──review(approved)──► approved ──complete──► completed
        └────review(rejected)──► rejected

Reviews and completions are performed by depot staff or admins, recorded
on the request row (reviewer, timestamp, notes) and mirrored into the
reviewer's history.  They do not touch the lot or its audit trail.
"""

import logging
from datetime import datetime

from lotflow.core.exceptions import ForbiddenError, InvalidFieldError, InvalidStatusError
from lotflow.models.replacement import REVIEWER_ROLES, ReplacementRequest
from lotflow.services import user_history
from lotflow.services.identity import Identity
from lotflow.services.persistence import load_lot, load_replacement_request, with_replacement_request
from lotflow.utils.helpers import ensure_utc, isoformat, optional_text, utcnow

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = ("approved", "rejected")


def _require_reviewer(actor: Identity) -> None:
    if actor.role not in REVIEWER_ROLES:
        raise ForbiddenError(
            "Only depot staff or admins can review replacement requests",
            role=actor.role,
            required=list(REVIEWER_ROLES),
        )


def _check_transition(req: ReplacementRequest, new_status: str) -> None:
    if not req.can_transition_to(new_status):
        raise InvalidStatusError(
            f"Replacement request {req.id} cannot move from {req.status} to {new_status}",
            {"current": req.status, "requested": new_status},
        )


def get_replacement_request(request_id, actor: Identity) -> ReplacementRequest:
    """Readable by reviewers, the requester, and the owner of the lot."""
    req = load_replacement_request(request_id)
    if actor.role in REVIEWER_ROLES or req.requested_by == actor.actor_id:
        return req
    if actor.role == "vendor" and load_lot(req.lot_id).vendor_id == actor.actor_id:
        return req
    raise ForbiddenError("Access denied", role=actor.role)


def review_replacement_request(
    request_id,
    actor: Identity,
    decision: str,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> ReplacementRequest:
    _require_reviewer(actor)
    if decision not in REVIEW_DECISIONS:
        raise InvalidFieldError("decision", decision, allowed=REVIEW_DECISIONS)
    optional_text("notes", notes)

    def _mutate(req: ReplacementRequest):
        _check_transition(req, decision)
        user = user_history.load_acting_user(actor)
        at = ensure_utc(now) if now else utcnow()
        previous = req.status
        req.status = decision
        req.reviewed_by = actor.actor_id
        req.reviewed_at = at
        req.review_notes = notes
        req.updated_at = at
        user_history.mirror(
            user, "review_replacement", "replacement_request", req.id,
            f"Replacement request {req.id} {decision}",
            {
                "lotId": req.lot_id,
                "previousStatus": previous,
                "newStatus": decision,
                "notes": notes,
                "reviewedAt": isoformat(at),
            },
            now=at,
        )
        return req

    req = with_replacement_request(request_id, _mutate)
    logger.info(
        "Replacement request %s %s by %s", req.id, decision, actor.actor_id,
        extra={"lot_id": req.lot_id, "actor_id": actor.actor_id, "event_type": "replacement_reviewed"},
    )
    return req


def complete_replacement_request(
    request_id,
    actor: Identity,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> ReplacementRequest:
    """Close an approved request. Pending and rejected requests cannot complete."""
    _require_reviewer(actor)
    optional_text("notes", notes)

    def _mutate(req: ReplacementRequest):
        _check_transition(req, "completed")
        user = user_history.load_acting_user(actor)
        at = ensure_utc(now) if now else utcnow()
        req.status = "completed"
        req.completed_at = at
        req.updated_at = at
        if notes:
            req.review_notes = f"{req.review_notes}\n{notes}" if req.review_notes else notes
        user_history.mirror(
            user, "complete_replacement", "replacement_request", req.id,
            f"Replacement request {req.id} completed",
            {"lotId": req.lot_id, "notes": notes, "completedAt": isoformat(at)},
            now=at,
        )
        return req

    req = with_replacement_request(request_id, _mutate)
    logger.info(
        "Replacement request %s completed by %s", req.id, actor.actor_id,
        extra={"lot_id": req.lot_id, "actor_id": actor.actor_id, "event_type": "replacement_completed"},
    )
    return req
