"""
Tests: installation, inspection, replacement requests and part generation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from lotflow.core.exceptions import (
    ForbiddenError,
    InvalidConditionError,
    InvalidFieldError,
    InvalidStatusError,
    MissingFieldsError,
    NotFoundError,
)
from lotflow.models.lot import Part
from lotflow.models.replacement import ReplacementRequest
from lotflow.models.user import UserHistoryEntry
from lotflow.services.lot_lifecycle import transition_lot_status
from lotflow.services.lot_workflow_service import (
    MAX_PARTS_PER_CALL,
    generate_parts,
    get_part,
    install_part,
    list_parts,
    record_inspection,
    record_installation,
    request_replacement,
)
from lotflow.services.persistence import load_lot

T0 = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


# ── Installation ─────────────────────────────────────────────────────────────


class TestInstallation:
    def test_track_worker_installs_accepted_lot(self, lot, actors):
        transition_lot_status("LOT001", actors["D1"], "accepted", now=T0)

        record_installation(
            "LOT001", actors["T1"],
            location="Km 12", section="S3", notes="north rail",
            now=T0 + timedelta(hours=2),
        )

        stored = load_lot("LOT001")
        assert stored.status == "accepted"
        assert [e.action for e in stored.audit_trail] == ["status_updated", "installation_recorded"]
        entry = stored.audit_trail[-1]
        assert entry.seq == 2
        assert entry.actor_name == "Tom Track"
        assert entry.details == "Installation recorded at Km 12, S3"
        md = entry.metadata_dict
        assert md["location"] == "Km 12"
        assert md["section"] == "S3"
        assert md["notes"] == "north rail"
        assert md["installationDate"] == (T0 + timedelta(hours=2)).isoformat()

    def test_explicit_installation_date(self, lot, actors):
        record_installation(
            "LOT001", actors["T1"], location="Km 1", section="A",
            installation_date="2026-01-03", now=T0,
        )
        md = load_lot("LOT001").audit_trail[0].metadata_dict
        assert md["installationDate"].startswith("2026-01-03")

    def test_installation_does_not_require_accepted_status(self, lot, actors):
        record_installation("LOT001", actors["T1"], location="Km 1", section="A", now=T0)
        assert load_lot("LOT001").status == "pending"

    def test_reinstallation_appends_again(self, lot, actors):
        record_installation("LOT001", actors["T1"], location="Km 1", section="A", now=T0)
        record_installation("LOT001", actors["T1"], location="Km 2", section="B", now=T0)
        assert [e.seq for e in load_lot("LOT001").audit_trail] == [1, 2]

    @pytest.mark.parametrize("key", ["V1", "D1", "I1", "A1"])
    def test_other_roles_are_forbidden(self, lot, actors, key):
        with pytest.raises(ForbiddenError):
            record_installation("LOT001", actors[key], location="Km 1", section="A", now=T0)
        assert load_lot("LOT001").audit_trail == []

    @pytest.mark.parametrize("location,section", [("", "S3"), ("Km 12", "  "), (None, None)])
    def test_location_and_section_required(self, lot, actors, location, section):
        with pytest.raises(MissingFieldsError, match="Location and section are required"):
            record_installation("LOT001", actors["T1"], location=location, section=section, now=T0)
        assert load_lot("LOT001").audit_trail == []

    @pytest.mark.parametrize("field,value", [
        ("location", {"km": 12}), ("section", 3), ("notes", ["laid"]),
    ])
    def test_text_fields_must_be_strings(self, lot, actors, field, value):
        kwargs = dict(location="Km 1", section="A", now=T0)
        kwargs[field] = value
        with pytest.raises(InvalidFieldError) as exc_info:
            record_installation("LOT001", actors["T1"], **kwargs)
        assert exc_info.value.field == field
        assert load_lot("LOT001").audit_trail == []

    def test_bad_installation_date(self, lot, actors):
        with pytest.raises(InvalidFieldError):
            record_installation(
                "LOT001", actors["T1"], location="Km 1", section="A",
                installation_date="soon",
            )

    def test_mirrors_install_history(self, lot, actors):
        record_installation("LOT001", actors["T1"], location="Km 1", section="A", now=T0)
        history = UserHistoryEntry.query.filter_by(user_id="T1").one()
        assert history.action == "install_lot"
        assert history.target_id == "LOT001"


# ── Inspection ───────────────────────────────────────────────────────────────


class TestInspection:
    def test_inspector_records_condition(self, lot, actors):
        record_inspection(
            "LOT001", actors["I1"], condition="worn", notes="visible wear",
            photos=["p1.jpg", "p2.jpg"], next_inspection_due="2026-07-01", now=T0,
        )

        entry = load_lot("LOT001").audit_trail[0]
        assert entry.action == "inspection_recorded"
        assert entry.details == "Inspection completed - condition: worn"
        md = entry.typed_metadata
        assert md.condition == "worn"
        assert md.photos == ("p1.jpg", "p2.jpg")
        assert md.inspection_date == T0.isoformat()
        assert md.next_inspection_due.startswith("2026-07-01")

    @pytest.mark.parametrize("condition", ["excellent", "", None, "Good"])
    def test_invalid_condition_appends_nothing(self, lot, actors, condition):
        with pytest.raises(InvalidConditionError, match=r"Valid condition is required \(good, worn, replace\)"):
            record_inspection("LOT001", actors["I1"], condition=condition, now=T0)
        stored = load_lot("LOT001")
        assert stored.audit_trail == []
        assert UserHistoryEntry.query.count() == 0

    def test_track_worker_cannot_inspect(self, lot, actors):
        with pytest.raises(ForbiddenError):
            record_inspection("LOT001", actors["T1"], condition="good", now=T0)

    def test_photos_must_be_strings(self, lot, actors):
        with pytest.raises(InvalidFieldError):
            record_inspection("LOT001", actors["I1"], condition="good", photos="p1.jpg", now=T0)

    def test_notes_must_be_text(self, lot, actors):
        with pytest.raises(InvalidFieldError):
            record_inspection("LOT001", actors["I1"], condition="good", notes={"x": 1}, now=T0)
        assert load_lot("LOT001").audit_trail == []

    def test_unknown_lot(self, actors):
        with pytest.raises(NotFoundError):
            record_inspection("NOPE", actors["I1"], condition="good", now=T0)


# ── Replacement requests ─────────────────────────────────────────────────────


class TestReplacementRequest:
    def test_inspector_opens_pending_request(self, lot, actors):
        req = request_replacement(
            "LOT001", actors["I1"], reason="defective", description="cracked", now=T0,
        )

        stored = ReplacementRequest.query.one()
        assert stored.id == req.id
        assert stored.id.startswith("REQ")
        assert stored.status == "pending"
        assert stored.priority == "medium"
        assert stored.requested_by == "I1"
        assert stored.requested_by_role == "inspector"
        assert stored.lot_id == "LOT001"

        lot = load_lot("LOT001")
        assert lot.status == "pending"
        entry = lot.audit_trail[0]
        assert entry.action == "replacement_requested"
        assert entry.details == "Replacement request created - reason: defective"
        assert entry.metadata_dict["requestId"] == req.id
        assert entry.metadata_dict["priority"] == "medium"

    def test_track_worker_with_priority_and_photos(self, lot, actors):
        req = request_replacement(
            "LOT001", actors["T1"], reason="damaged", description="bent",
            priority="urgent", photos=["a.png"], now=T0,
        )
        assert req.priority == "urgent"
        assert ReplacementRequest.query.one().photos == ["a.png"]

    @pytest.mark.parametrize("key", ["V1", "D1", "A1"])
    def test_other_roles_are_forbidden(self, lot, actors, key):
        with pytest.raises(ForbiddenError):
            request_replacement("LOT001", actors[key], reason="worn", description="x", now=T0)
        assert ReplacementRequest.query.count() == 0

    def test_reason_and_description_required(self, lot, actors):
        with pytest.raises(MissingFieldsError, match="Reason and description are required"):
            request_replacement("LOT001", actors["I1"], reason="worn", description="", now=T0)

    @pytest.mark.parametrize("description", [{"text": "cracked"}, ["cracked"], 42])
    def test_description_must_be_text(self, lot, actors, description):
        with pytest.raises(InvalidFieldError) as exc_info:
            request_replacement("LOT001", actors["I1"], reason="worn", description=description, now=T0)
        assert exc_info.value.field == "description"
        assert ReplacementRequest.query.count() == 0
        assert load_lot("LOT001").audit_trail == []

    def test_unknown_reason(self, lot, actors):
        with pytest.raises(InvalidFieldError) as exc_info:
            request_replacement("LOT001", actors["I1"], reason="bored", description="x", now=T0)
        assert exc_info.value.field == "reason"

    def test_unknown_priority(self, lot, actors):
        with pytest.raises(InvalidFieldError):
            request_replacement(
                "LOT001", actors["I1"], reason="worn", description="x", priority="asap", now=T0,
            )

    def test_part_must_belong_to_lot(self, lot, make_lot, actors):
        make_lot("LOT002", "ERC-0002", vendor_id="V1")
        foreign = generate_parts("LOT002", actors["V1"], 1)[0]

        with pytest.raises(NotFoundError):
            request_replacement(
                "LOT001", actors["I1"], reason="worn", description="x",
                part_id=foreign.id, now=T0,
            )
        assert ReplacementRequest.query.count() == 0
        assert load_lot("LOT001").audit_trail == []

    def test_request_for_one_part(self, lot, actors):
        part = generate_parts("LOT001", actors["V1"], 2)[0]
        req = request_replacement(
            "LOT001", actors["T1"], reason="worn", description="x", part_id=part.id, now=T0,
        )
        assert req.part_id == part.id
        assert load_lot("LOT001").audit_trail[0].metadata_dict["partId"] == part.id

    def test_mirrors_request_history(self, lot, actors):
        request_replacement("LOT001", actors["I1"], reason="worn", description="x", now=T0)
        history = UserHistoryEntry.query.filter_by(user_id="I1").one()
        assert history.action == "request_replacement"
        assert history.target_type == "lot"


# ── Parts ────────────────────────────────────────────────────────────────────


class TestParts:
    def test_owner_generates_parts(self, lot, actors):
        parts = generate_parts("LOT001", actors["V1"], 3)

        assert len(parts) == 3
        assert len({p.id for p in parts}) == 3
        assert Part.query.count() == 3
        assert all(p.lot_number == "ERC-0001" and not p.is_installed for p in parts)
        assert load_lot("LOT001").audit_trail == []

    def test_admin_generates_for_any_lot(self, lot, actors):
        assert len(generate_parts("LOT001", actors["A1"], 1)) == 1

    def test_other_vendor_is_forbidden(self, lot, actors):
        with pytest.raises(ForbiddenError):
            generate_parts("LOT001", actors["V2"], 1)

    def test_depot_staff_is_forbidden(self, lot, actors):
        with pytest.raises(ForbiddenError):
            generate_parts("LOT001", actors["D1"], 1)

    @pytest.mark.parametrize("quantity", [0, -1, MAX_PARTS_PER_CALL + 1, "3", 2.5, True, None])
    def test_quantity_bounds(self, lot, actors, quantity):
        with pytest.raises(InvalidFieldError):
            generate_parts("LOT001", actors["V1"], quantity)
        assert Part.query.count() == 0

    def test_list_parts_filters_installed(self, lot, actors):
        parts = generate_parts("LOT001", actors["V1"], 2)
        install_part(parts[0].id, actors["T1"], location="Km 2", section="C", now=T0)

        assert len(list_parts("LOT001", actors["T1"])) == 2
        assert [p.id for p in list_parts("LOT001", actors["T1"], installed=True)] == [parts[0].id]
        assert len(list_parts("LOT001", actors["T1"], installed=False)) == 1

    def test_list_parts_hides_other_vendors_lots(self, lot, actors):
        with pytest.raises(ForbiddenError):
            list_parts("LOT001", actors["V2"])


# ── Part installation ────────────────────────────────────────────────────────


class TestPartInstallation:
    @pytest.fixture()
    def part(self, lot, actors):
        return generate_parts("LOT001", actors["V1"], 1)[0]

    def test_track_worker_installs_part(self, part, actors):
        installed = install_part(part.id, actors["T1"], location="Km 7", section="S2", now=T0)

        assert installed.is_installed is True
        assert installed.version == 2
        assert installed.to_dict()["installation"] == {
            "location": "Km 7",
            "section": "S2",
            "installationDate": T0.isoformat(),
            "installedBy": "T1",
        }
        assert load_lot("LOT001").audit_trail == []

    def test_explicit_installation_date(self, part, actors):
        installed = install_part(
            part.id, actors["T1"], location="Km 7", section="S2",
            installation_date="2026-01-02", now=T0,
        )
        assert installed.installation_dict()["installationDate"].startswith("2026-01-02")

    def test_part_installs_only_once(self, part, actors):
        install_part(part.id, actors["T1"], location="Km 7", section="S2", now=T0)
        with pytest.raises(InvalidStatusError, match="Part is already installed") as exc_info:
            install_part(part.id, actors["T1"], location="Km 9", section="S4", now=T0 + timedelta(hours=1))
        assert exc_info.value.details["installedBy"] == "T1"
        assert get_part(part.id, actors["T1"]).installed_location == "Km 7"
        assert UserHistoryEntry.query.filter_by(action="install_part").count() == 1

    @pytest.mark.parametrize("key", ["V1", "D1", "I1", "A1"])
    def test_other_roles_are_forbidden(self, part, actors, key):
        with pytest.raises(ForbiddenError):
            install_part(part.id, actors[key], location="Km 7", section="S2", now=T0)
        assert get_part(part.id, actors["T1"]).is_installed is False

    @pytest.mark.parametrize("location,section", [("", "S2"), ("Km 7", " "), (None, None)])
    def test_location_and_section_required(self, part, actors, location, section):
        with pytest.raises(MissingFieldsError, match="Location and section are required"):
            install_part(part.id, actors["T1"], location=location, section=section, now=T0)

    def test_location_must_be_text(self, part, actors):
        with pytest.raises(InvalidFieldError) as exc_info:
            install_part(part.id, actors["T1"], location=["Km 7"], section="S2", now=T0)
        assert exc_info.value.field == "location"

    def test_unknown_part(self, lot, actors):
        with pytest.raises(NotFoundError):
            install_part("PRT-NOPE", actors["T1"], location="Km 7", section="S2", now=T0)

    def test_part_id_is_case_insensitive(self, part, actors):
        installed = install_part(part.id.lower(), actors["T1"], location="Km 7", section="S2", now=T0)
        assert installed.id == part.id

    def test_mirrors_install_part_history(self, part, actors):
        install_part(part.id, actors["T1"], location="Km 7", section="S2", now=T0)
        history = UserHistoryEntry.query.filter_by(user_id="T1").one()
        assert history.action == "install_part"
        assert history.target_type == "part"
        assert history.target_id == part.id

    def test_other_vendor_cannot_read_part(self, part, actors):
        assert get_part(part.id, actors["V1"]).id == part.id
        with pytest.raises(ForbiddenError):
            get_part(part.id, actors["V2"])
