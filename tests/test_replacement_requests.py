"""
Tests: replacement request review sub-workflow.
"""

from datetime import datetime, timedelta, timezone

import pytest

from lotflow.core.exceptions import (
    ForbiddenError,
    InvalidFieldError,
    InvalidStatusError,
    NotFoundError,
)
from lotflow.models.user import UserHistoryEntry
from lotflow.services.lot_workflow_service import request_replacement
from lotflow.services.persistence import load_lot, load_replacement_request
from lotflow.services.replacement_service import (
    complete_replacement_request,
    get_replacement_request,
    review_replacement_request,
)

T0 = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def pending(lot, actors):
    """A pending request opened by inspector I1 against LOT001."""
    return request_replacement(
        "LOT001", actors["I1"], reason="defective", description="cracked", now=T0,
    ).id


class TestReview:
    def test_approve_then_complete(self, pending, actors):
        review_replacement_request(
            pending, actors["D1"], "approved", notes="order placed", now=T0 + timedelta(hours=1),
        )
        req = load_replacement_request(pending)
        assert req.status == "approved"
        assert req.reviewed_by == "D1"
        assert req.review_notes == "order placed"

        complete_replacement_request(pending, actors["A1"], notes="swapped", now=T0 + timedelta(days=2))
        req = load_replacement_request(pending)
        assert req.status == "completed"
        assert req.completed_at is not None
        assert req.review_notes == "order placed\nswapped"

    def test_rejected_request_cannot_complete(self, pending, actors):
        review_replacement_request(pending, actors["D1"], "rejected", now=T0)
        with pytest.raises(InvalidStatusError):
            complete_replacement_request(pending, actors["D1"], now=T0)
        assert load_replacement_request(pending).status == "rejected"

    def test_pending_request_cannot_complete(self, pending, actors):
        with pytest.raises(InvalidStatusError):
            complete_replacement_request(pending, actors["D1"], now=T0)

    def test_second_review_is_rejected(self, pending, actors):
        review_replacement_request(pending, actors["D1"], "approved", now=T0)
        with pytest.raises(InvalidStatusError):
            review_replacement_request(pending, actors["A1"], "rejected", now=T0)
        assert load_replacement_request(pending).status == "approved"

    @pytest.mark.parametrize("key", ["V1", "T1", "I1"])
    def test_non_reviewers_are_forbidden(self, pending, actors, key):
        with pytest.raises(ForbiddenError):
            review_replacement_request(pending, actors[key], "approved", now=T0)
        with pytest.raises(ForbiddenError):
            complete_replacement_request(pending, actors[key], now=T0)

    @pytest.mark.parametrize("decision", ["completed", "pending", "", "APPROVED"])
    def test_decision_must_be_approve_or_reject(self, pending, actors, decision):
        with pytest.raises(InvalidFieldError):
            review_replacement_request(pending, actors["D1"], decision, now=T0)

    def test_notes_must_be_text(self, pending, actors):
        with pytest.raises(InvalidFieldError):
            review_replacement_request(pending, actors["D1"], "approved", notes=["ok"], now=T0)
        assert load_replacement_request(pending).status == "pending"

        review_replacement_request(pending, actors["D1"], "approved", now=T0)
        with pytest.raises(InvalidFieldError):
            complete_replacement_request(pending, actors["D1"], notes=7, now=T0)
        assert load_replacement_request(pending).status == "approved"

    def test_unknown_request(self, actors):
        with pytest.raises(NotFoundError):
            review_replacement_request("REQ404", actors["D1"], "approved")

    def test_review_does_not_touch_lot_trail(self, pending, actors):
        version = load_lot("LOT001").version
        review_replacement_request(pending, actors["D1"], "approved", now=T0)
        complete_replacement_request(pending, actors["D1"], now=T0)

        lot = load_lot("LOT001")
        assert [e.action for e in lot.audit_trail] == ["replacement_requested"]
        assert lot.version == version

    def test_review_and_complete_mirror_history(self, pending, actors):
        review_replacement_request(pending, actors["D1"], "approved", now=T0)
        complete_replacement_request(pending, actors["D1"], now=T0 + timedelta(hours=3))

        history = UserHistoryEntry.query.filter_by(user_id="D1").order_by(UserHistoryEntry.id).all()
        assert [h.action for h in history] == ["review_replacement", "complete_replacement"]
        assert all(h.target_type == "replacement_request" and h.target_id == pending for h in history)
        assert history[0].metadata_dict["previousStatus"] == "pending"


class TestRead:
    @pytest.mark.parametrize("key", ["D1", "A1", "I1", "V1"])
    def test_readers(self, pending, actors, key):
        assert get_replacement_request(pending, actors[key]).id == pending

    @pytest.mark.parametrize("key", ["V2", "T1"])
    def test_others_are_forbidden(self, pending, actors, key):
        with pytest.raises(ForbiddenError):
            get_replacement_request(pending, actors[key])
