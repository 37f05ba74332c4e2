"""
Unit tests for AdminReviewWorkflow.

Admin actions are all-or-nothing: they validate first, commit on success
and roll back everything on failure.
"""

from datetime import datetime

import pytest

from gymlink.db.models import MasterGym, PendingMatch
from gymlink.db.store import MasterGymStore
from gymlink.errors import NotFoundError, StorageError, ValidationError
from gymlink.gyms.admin import AdminReviewWorkflow, validate_uuid
from gymlink.gyms.review_queue import PendingReviewQueue
from gymlink.types import Approved, MatchSignals, Org

SIGNALS = MatchSignals(name_similarity=67, city_boost=0, affiliation_boost=10)


@pytest.fixture
def pending(db_session, make_gym):
    incoming = make_gym(Org.JJWL, "j1", "Gracie Humaita Austin")
    candidate = make_gym(Org.IBJJF, "i1", "Gracie Humaita", city="Austin", country_code="US")
    match, _ = PendingReviewQueue(db_session).enqueue(incoming, candidate, 77, SIGNALS)
    db_session.commit()
    return match, incoming, candidate


class TestListMatches:
    """Tests for listing matches by status."""

    def test_pending_with_names(self, db_session, pending):
        match, _, _ = pending

        result = AdminReviewWorkflow(db_session).list_matches()

        assert result == {
            "matches": [
                {
                    "id": match.id,
                    "sourceGym1Id": "SRCGYM#JJWL#j1",
                    "sourceGym1Name": "Gracie Humaita Austin",
                    "sourceGym2Id": "SRCGYM#IBJJF#i1",
                    "sourceGym2Name": "Gracie Humaita",
                    "confidence": 77,
                    "signals": {"nameSimilarity": 67, "cityBoost": 0, "affiliationBoost": 10},
                    "status": "pending",
                    "createdAt": match.created_at.isoformat(),
                    "reviewedAt": None,
                    "reviewedBy": None,
                }
            ]
        }

    def test_status_filter(self, db_session, pending):
        workflow = AdminReviewWorkflow(db_session)
        workflow.reject(pending[0].id, "alice")

        assert workflow.list_matches("pending") == {"matches": []}
        rejected = workflow.list_matches("rejected")["matches"]
        assert [m["id"] for m in rejected] == [pending[0].id]
        assert rejected[0]["reviewedBy"] == "alice"
        assert rejected[0]["reviewedAt"] is not None

    def test_review_fields_come_from_review_state(self, db_session, pending, monkeypatch):
        reviewed_at = datetime(2026, 10, 17, 12, 0)
        monkeypatch.setattr(
            PendingMatch,
            "review_state",
            property(lambda self: Approved(reviewed_at=reviewed_at, reviewed_by="carol")),
        )

        match = AdminReviewWorkflow(db_session).list_matches()["matches"][0]

        assert match["status"] == "approved"
        assert match["reviewedAt"] == "2026-10-17T12:00:00"
        assert match["reviewedBy"] == "carol"

    def test_invalid_status(self, db_session):
        with pytest.raises(ValidationError, match="Invalid status"):
            AdminReviewWorkflow(db_session).list_matches("done")

    def test_missing_source_gym_name_is_none(self, db_session, pending):
        db_session.delete(pending[2])
        db_session.commit()

        matches = AdminReviewWorkflow(db_session).list_matches()["matches"]
        assert matches[0]["sourceGym2Name"] is None


class TestApprove:
    """Tests for approving matches."""

    def test_approve_links_and_commits(self, db_session, pending):
        match, incoming, candidate = pending

        result = AdminReviewWorkflow(db_session).approve(match.id, "alice")

        assert result["message"] == "Match approved and gyms linked"
        # Survives a rollback, so it was committed
        db_session.rollback()
        stored = db_session.get(PendingMatch, match.id)
        assert stored.status == "approved"
        assert stored.reviewed_by == "alice"
        assert db_session.get(MasterGym, result["masterGymId"]) is not None
        assert incoming.master_gym_id == candidate.master_gym_id == result["masterGymId"]

    def test_double_approve_fails(self, db_session, pending):
        workflow = AdminReviewWorkflow(db_session)
        first = workflow.approve(pending[0].id, "alice")

        with pytest.raises(ValidationError, match="Match has already been reviewed"):
            workflow.approve(pending[0].id, "bob")
        with pytest.raises(ValidationError, match="Match has already been reviewed"):
            workflow.reject(pending[0].id, "bob")

        assert db_session.query(MasterGym).count() == 1
        assert pending[1].master_gym_id == first["masterGymId"]
        assert db_session.get(PendingMatch, pending[0].id).reviewed_by == "alice"

    def test_invalid_match_id(self, db_session):
        with pytest.raises(ValidationError, match="Invalid match id format"):
            AdminReviewWorkflow(db_session).approve("not-a-uuid", "alice")

    def test_unknown_match(self, db_session):
        with pytest.raises(NotFoundError, match="Pending match not found"):
            AdminReviewWorkflow(db_session).approve("11111111-1111-1111-1111-111111111111", "alice")

    def test_missing_source_gym_aborts_without_changes(self, db_session, pending):
        match, incoming, candidate = pending
        db_session.delete(candidate)
        db_session.commit()

        with pytest.raises(NotFoundError, match="Source gym not found"):
            AdminReviewWorkflow(db_session).approve(match.id, "alice")

        assert db_session.get(PendingMatch, match.id).status == "pending"
        assert incoming.master_gym_id is None

    def test_failure_during_link_rolls_back_claim(self, db_session, pending, monkeypatch):
        match, incoming, _ = pending
        workflow = AdminReviewWorkflow(db_session)

        def broken_link(gym_a, gym_b):
            raise StorageError("write failed")

        monkeypatch.setattr(workflow.merge, "link", broken_link)

        with pytest.raises(StorageError):
            workflow.approve(match.id, "alice")

        stored = db_session.get(PendingMatch, match.id)
        assert stored.status == "pending"
        assert stored.reviewed_by is None
        assert incoming.master_gym_id is None


class TestReject:
    def test_reject_leaves_gyms(self, db_session, pending):
        match, incoming, candidate = pending

        result = AdminReviewWorkflow(db_session).reject(match.id, "bob")

        assert result == {"message": "Match rejected"}
        assert incoming.master_gym_id is None
        assert candidate.master_gym_id is None
        assert db_session.get(PendingMatch, match.id).status == "rejected"


class TestUnlink:
    """Tests for unlinking a source gym from its master."""

    def test_unlink(self, db_session, pending):
        match, incoming, candidate = pending
        workflow = AdminReviewWorkflow(db_session)
        master_gym_id = workflow.approve(match.id, "alice")["masterGymId"]

        result = workflow.unlink(master_gym_id, "SRCGYM#JJWL#j1")

        assert result == {"message": "Source gym unlinked from master"}
        assert incoming.master_gym_id is None
        assert candidate.master_gym_id == master_gym_id
        assert db_session.get(MasterGym, master_gym_id) is not None

    def test_unlink_twice_is_noop(self, db_session, make_gym):
        master = MasterGymStore(db_session).create("Arte Suave")
        make_gym(Org.JJWL, "j9", "Arte Suave", master_gym_id=master.id)
        workflow = AdminReviewWorkflow(db_session)

        workflow.unlink(master.id, "SRCGYM#JJWL#j9")
        assert workflow.unlink(master.id, "SRCGYM#JJWL#j9") == {"message": "Source gym was not linked"}

    def test_source_gym_id_required(self, db_session):
        with pytest.raises(ValidationError, match="sourceGymId is required in request body"):
            AdminReviewWorkflow(db_session).unlink("11111111-1111-1111-1111-111111111111", None)

    def test_malformed_source_gym_id(self, db_session):
        with pytest.raises(ValidationError):
            AdminReviewWorkflow(db_session).unlink("11111111-1111-1111-1111-111111111111", "JJWL:9")

    def test_unknown_master(self, db_session, make_gym):
        make_gym(Org.JJWL, "j9", "Arte Suave")
        with pytest.raises(NotFoundError, match="Master gym not found"):
            AdminReviewWorkflow(db_session).unlink(
                "11111111-1111-1111-1111-111111111111", "SRCGYM#JJWL#j9"
            )


def test_validate_uuid():
    value = "5F0C7E2A-1B2C-4D3E-8F90-0123456789AB"
    assert validate_uuid(value, "match id") == value.lower()
    with pytest.raises(ValidationError, match="match id is required"):
        validate_uuid("", "match id")
