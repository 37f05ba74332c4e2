"""
Tests for the admin HTTP endpoints.

Runs the FastAPI app against the in-memory test database by overriding
the get_db dependency.
"""

import pytest
from fastapi.testclient import TestClient

from gymlink.db.session import get_db
from gymlink.db.store import MasterGymStore
from gymlink.gyms.review_queue import PendingReviewQueue
from gymlink.types import MatchSignals, Org
from gymlink.web.main import app

SIGNALS = MatchSignals(name_similarity=67, city_boost=0, affiliation_boost=10)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def match_id(db_session, make_gym):
    incoming = make_gym(Org.JJWL, "j1", "Gracie Humaita Austin")
    candidate = make_gym(Org.IBJJF, "i1", "Gracie Humaita", city="Austin", country_code="US")
    match, _ = PendingReviewQueue(db_session).enqueue(incoming, candidate, 77, SIGNALS)
    db_session.commit()
    return match.id


class TestPendingMatches:
    """Tests for listing and resolving pending matches."""

    def test_list_pending(self, client, match_id):
        response = client.get("/admin/pending-matches")

        assert response.status_code == 200
        matches = response.json()["matches"]
        assert len(matches) == 1
        assert matches[0]["id"] == match_id
        assert matches[0]["sourceGym1Name"] == "Gracie Humaita Austin"
        assert matches[0]["signals"] == {"nameSimilarity": 67, "cityBoost": 0, "affiliationBoost": 10}

    def test_list_invalid_status(self, client):
        response = client.get("/admin/pending-matches", params={"status": "done"})

        assert response.status_code == 400
        assert response.json() == {
            "error": "VALIDATION_ERROR",
            "message": "Invalid status. Must be pending, approved, or rejected",
        }

    def test_list_invalid_limit(self, client):
        response = client.get("/admin/pending-matches", params={"limit": 0})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_approve(self, client, match_id):
        response = client.post(
            f"/admin/pending-matches/{match_id}/approve",
            headers={"X-Admin-User": "alice"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Match approved and gyms linked"
        assert body["masterGymId"]

        approved = client.get("/admin/pending-matches", params={"status": "approved"}).json()
        assert approved["matches"][0]["reviewedBy"] == "alice"

    def test_double_approve(self, client, match_id):
        client.post(f"/admin/pending-matches/{match_id}/approve")

        response = client.post(f"/admin/pending-matches/{match_id}/approve")

        assert response.status_code == 400
        assert response.json() == {
            "error": "VALIDATION_ERROR",
            "message": "Match has already been reviewed",
        }

    def test_reject_uses_default_reviewer(self, client, match_id):
        response = client.post(f"/admin/pending-matches/{match_id}/reject")

        assert response.status_code == 200
        assert response.json() == {"message": "Match rejected"}
        rejected = client.get("/admin/pending-matches", params={"status": "rejected"}).json()
        assert rejected["matches"][0]["reviewedBy"] == "admin"

    def test_overlong_admin_user(self, client, match_id):
        response = client.post(
            f"/admin/pending-matches/{match_id}/approve",
            headers={"X-Admin-User": "a" * 101},
        )

        assert response.status_code == 400
        assert response.json() == {
            "error": "VALIDATION_ERROR",
            "message": "Reviewer must be at most 100 characters",
        }
        pending = client.get("/admin/pending-matches").json()["matches"]
        assert [m["id"] for m in pending] == [match_id]

    def test_unknown_match(self, client):
        response = client.post("/admin/pending-matches/11111111-1111-1111-1111-111111111111/reject")

        assert response.status_code == 404
        assert response.json() == {"error": "NOT_FOUND", "message": "Pending match not found"}

    def test_malformed_match_id(self, client):
        response = client.post("/admin/pending-matches/abc/approve")

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestMasterGyms:
    """Tests for unlink and master gym lookup."""

    @pytest.fixture
    def linked(self, client, match_id):
        return client.post(f"/admin/pending-matches/{match_id}/approve").json()["masterGymId"]

    def test_unlink(self, client, linked):
        response = client.post(
            f"/admin/master-gyms/{linked}/unlink",
            json={"sourceGymId": "SRCGYM#JJWL#j1"},
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Source gym unlinked from master"}

        detail = client.get(f"/gyms/{linked}").json()
        assert [g["id"] for g in detail["sourceGyms"]] == ["SRCGYM#IBJJF#i1"]

    def test_unlink_requires_source_gym_id(self, client, linked):
        response = client.post(f"/admin/master-gyms/{linked}/unlink", json={})

        assert response.status_code == 400
        assert response.json() == {
            "error": "VALIDATION_ERROR",
            "message": "sourceGymId is required in request body",
        }

    def test_unlink_unknown_master(self, client, match_id):
        response = client.post(
            "/admin/master-gyms/11111111-1111-1111-1111-111111111111/unlink",
            json={"sourceGymId": "SRCGYM#JJWL#j1"},
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Master gym not found"

    def test_unlink_malformed_source_gym_id(self, client, linked):
        response = client.post(
            f"/admin/master-gyms/{linked}/unlink",
            json={"sourceGymId": "j1"},
        )

        assert response.status_code == 400

    def test_gym_detail(self, client, linked):
        response = client.get(f"/gyms/{linked}")

        assert response.status_code == 200
        body = response.json()
        assert body["canonicalName"] == "Gracie Humaita Austin"
        assert sorted(g["id"] for g in body["sourceGyms"]) == ["SRCGYM#IBJJF#i1", "SRCGYM#JJWL#j1"]

    def test_gym_detail_not_found(self, client):
        response = client.get("/gyms/11111111-1111-1111-1111-111111111111")

        assert response.status_code == 404
        assert response.json() == {"error": "NOT_FOUND", "message": "Master gym not found"}

    def test_search(self, client, db_session):
        store = MasterGymStore(db_session)
        store.create("Gracie Barra Austin", city="Austin")
        store.create("Alliance Gracie")
        db_session.commit()

        response = client.get("/gyms/search", params={"q": "gracie"})

        assert response.status_code == 200
        assert [g["name"] for g in response.json()["gyms"]] == ["Gracie Barra Austin"]

    def test_search_query_too_short(self, client):
        response = client.get("/gyms/search", params={"q": "g"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
