"""Smoke tests for API routes."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from exam_prep.api import routes
from exam_prep.api.routes import router
from exam_prep.storage.content import StaticContentStore
from exam_prep.storage.documents import PROGRESS, USERS, InMemoryDocumentStore

CONTENT_ROOT = Path(__file__).resolve().parent.parent / "content"
AREA = "direito-constitucional"


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.trial_days = 7
    settings.default_daily_goal_minutes = 60
    settings.preview_chars = 500
    settings.admin_emails = ["admin@example.com"]
    return settings


@pytest.fixture
def doc_store():
    return InMemoryDocumentStore()


@pytest.fixture
def client(mock_settings, doc_store):
    app = FastAPI()
    app.include_router(router)
    routes._anchors.clear()
    with (
        patch("exam_prep.api.routes.get_settings", return_value=mock_settings),
        patch("exam_prep.api.routes.get_document_store", return_value=doc_store),
        patch("exam_prep.api.routes.get_content_store", return_value=StaticContentStore(CONTENT_ROOT)),
    ):
        with TestClient(app) as c:
            yield c
    routes._anchors.clear()


def _provision(client, uid="u1", email="u1@example.com"):
    response = client.post("/api/users/provision", json={"uid": uid, "email": email})
    assert response.status_code == 200
    return response.json()


class TestHealthCheck:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestUsers:
    def test_provision_is_idempotent(self, client):
        first = _provision(client)
        assert first["created"] is True
        assert first["user"]["subscription"]["status"] == "trial"
        assert _provision(client)["created"] is False

    def test_access_for_new_user(self, client):
        _provision(client)
        data = client.get("/api/users/u1/access").json()
        assert data["can_access_full_content"] is True
        assert data["days_remaining"] == 7

    def test_access_for_unknown_user(self, client):
        data = client.get("/api/users/ghost/access").json()
        assert data["can_access_full_content"] is False
        assert data["is_preview_only"] is True


class TestTopics:
    def test_preview_topic_is_full_for_anyone(self, client):
        data = client.get(f"/api/topics/{AREA}/principios-fundamentais").json()
        assert data["view"]["mode"] == "full"
        assert data["topic"]["is_preview"] is True
        assert data["can_access"] is True

    def test_paid_topic_preview_for_anonymous(self, client):
        data = client.get(f"/api/topics/{AREA}/direitos-individuais").json()
        assert data["view"]["mode"] == "preview"
        assert data["view"]["body"].endswith("...")
        assert len(data["view"]["body"]) == 503
        assert data["view"]["upsell"]["kind"] == "subscribe"
        assert data["can_access"] is False

    def test_paid_topic_full_during_trial(self, client):
        _provision(client)
        data = client.get(f"/api/topics/{AREA}/direitos-individuais", params={"uid": "u1"}).json()
        assert data["view"]["mode"] == "full"
        assert data["topic"]["estimated_minutes"] == 45

    def test_expired_user_gets_upsell(self, client, doc_store):
        _provision(client)
        doc_store.set_document(USERS, "u1", {"subscription": {"status": "expired"}}, merge=True)
        data = client.get(f"/api/topics/{AREA}/direitos-individuais", params={"uid": "u1"}).json()
        assert data["view"]["mode"] == "preview"
        assert data["view"]["upsell"]["kind"] == "expired"

    def test_missing_topic(self, client):
        response = client.get(f"/api/topics/{AREA}/nope")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NOT_FOUND"


class TestProgress:
    def test_start_complete_summary(self, client):
        _provision(client)
        start = client.post("/api/users/u1/progress/t1/start", json={"program_id": "pf"}).json()
        assert start["progress"]["status"] == "in_progress"
        assert start["warnings"] == []

        done = client.post("/api/users/u1/progress/t1/complete").json()
        assert done["progress"]["status"] == "completed"
        assert done["progress"]["percent_complete"] == 100

        summary = client.get("/api/users/u1/progress/summary").json()
        assert summary["completed_topics"] == 1
        assert summary["streak"] == 1
        assert summary["by_program"]["pf"]["percent"] == 100

    def test_reopen(self, client):
        _provision(client)
        client.post("/api/users/u1/progress/t1/start", json={})
        client.post("/api/users/u1/progress/t1/complete")
        data = client.post("/api/users/u1/progress/t1/reopen").json()
        assert data["progress"]["status"] == "in_progress"

    def test_complete_unknown_topic(self, client):
        _provision(client)
        assert client.post("/api/users/u1/progress/none/complete").status_code == 404

    def test_answers(self, client):
        _provision(client)
        client.post("/api/users/u1/answers", json={"topic_id": "t1", "was_correct": True, "elapsed_seconds": 4})
        data = client.post(
            "/api/users/u1/answers", json={"topic_id": "t1", "was_correct": False, "elapsed_seconds": 6}
        ).json()
        assert data["stats"]["total_questions"] == 2
        assert data["stats"]["total_correct"] == 1

    def test_negative_elapsed_rejected(self, client):
        _provision(client)
        response = client.post(
            "/api/users/u1/answers", json={"topic_id": "t1", "was_correct": True, "elapsed_seconds": -1}
        )
        assert response.status_code == 422

    def test_summary_unknown_user(self, client):
        assert client.get("/api/users/ghost/progress/summary").status_code == 404


class TestPreferences:
    def test_daily_goal(self, client, doc_store):
        _provision(client)
        response = client.put("/api/users/u1/preferences/daily-goal", json={"minutes": 90})
        assert response.status_code == 200
        assert response.json()["preferences"]["daily_goal_minutes"] == 90
        assert doc_store.get_document(USERS, "u1")["preferences"]["daily_goal_minutes"] == 90

    def test_negative_goal(self, client):
        _provision(client)
        assert client.put("/api/users/u1/preferences/daily-goal", json={"minutes": -5}).status_code == 422


class TestAdmin:
    def test_requires_header(self, client):
        assert client.get("/api/admin/users").status_code == 401

    def test_forbidden_for_non_admin(self, client):
        response = client.get("/api/admin/users", headers={"X-Admin-Email": "user@example.com"})
        assert response.status_code == 403

    def test_lists_users(self, client):
        _provision(client, "u1", "u1@example.com")
        _provision(client, "u2", "u2@example.com")
        response = client.get("/api/admin/users", headers={"X-Admin-Email": "Admin@Example.com"})
        assert response.status_code == 200
        assert [u["uid"] for u in response.json()] == ["u1", "u2"]


class TestTickAnchors:
    def test_anchor_survives_between_requests(self, client):
        _provision(client)
        client.post("/api/users/u1/progress/t1/start", json={})
        assert len(routes._anchors) == 1
        client.post("/api/users/u1/progress/t1/complete")
        assert len(routes._anchors) == 0

    def test_start_does_not_reset_stored_minutes(self, client, doc_store):
        _provision(client)
        client.post("/api/users/u1/progress/t1/start", json={})
        doc_store.set_document(PROGRESS, "u1_t1", {"minutes_spent": 10}, merge=True)
        data = client.post("/api/users/u1/progress/t1/start", json={}).json()
        assert data["progress"]["minutes_spent"] == 10
        assert doc_store.get_document(PROGRESS, "u1_t1")["minutes_spent"] == 10
