"""
HTTP-level tests for the BillQ API.

Runs the FastAPI app in-process with TestClient against a temporary SQLite
database. The processing service is overridden with one whose LLM is a
FakeCompletion.
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from billq.api.app import app
from billq.api.dependencies import get_processing_service
from billq.infrastructure.locks import UserLeaseRegistry
from billq.processing.service import ProcessingService
from billq.suggestions.engine import SuggestionEngine

HEADERS = {"X-User-Id": "user-1", "X-Company-Id": "company-1"}
OTHER_USER = {"X-User-Id": "user-2", "X-Company-Id": "company-1"}

REPORT = {"title": "Quarterly report", "type": "document", "start_time": "2024-03-04T09:00:00Z"}
LLM_ANSWER = json.dumps(
    [
        {
            "description": "Worked on the quarterly report",
            "duration_minutes": 45,
            "category": "documentation",
            "confidence": 0.85,
        }
    ]
)


@pytest.fixture
def service(test_db, fake_completion):
    return ProcessingService(
        engine=SuggestionEngine(complete=fake_completion(LLM_ANSWER), use_llm=True),
        leases=UserLeaseRegistry(),
    )


@pytest.fixture
def client(service):
    app.dependency_overrides[get_processing_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def entry_id(client):
    client.post("/api/activities", json={"source": "drive", "activities": [REPORT]}, headers=HEADERS)
    response = client.post("/api/time-entries/process", headers=HEADERS)
    assert response.status_code == 200
    return response.json()["entries"][0]["id"]


class TestIdentity:
    def test_missing_headers_is_401(self, client):
        response = client.get("/api/time-entries")
        assert response.status_code == 401
        assert "X-User-Id" in response.json()["detail"]

    def test_missing_company_is_401(self, client):
        response = client.get("/api/time-entries", headers={"X-User-Id": "user-1"})
        assert response.status_code == 401


class TestHealth:
    def test_health_reports_database_ready(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"]["ready"] is True

    def test_root_lists_endpoints(self, client):
        response = client.get("/")
        assert response.json()["endpoints"]["process"] == "/api/time-entries/process"


class TestActivities:
    def test_ingest_returns_created_and_duplicates(self, client):
        payload = {"source": "drive", "activities": [REPORT, dict(REPORT), {"type": "calendar"}]}
        response = client.post("/api/activities", json=payload, headers=HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert len(body["created"]) == 1
        assert body["created"][0]["processed"] is False
        assert body["duplicates"] == 1
        assert [r["index"] for r in body["rejected"]] == [2]

    def test_blank_source_is_422(self, client):
        response = client.post(
            "/api/activities", json={"source": "  ", "activities": []}, headers=HEADERS
        )
        assert response.status_code == 422
        assert response.json()["invalid_fields"] == ["source"]

    def test_unprocessed_count(self, client):
        client.post("/api/activities", json={"source": "drive", "activities": [REPORT]}, headers=HEADERS)

        response = client.get("/api/activities/unprocessed/count", headers=HEADERS)
        assert response.json()["count"] == 1

        other = client.get("/api/activities/unprocessed/count", headers=OTHER_USER)
        assert other.json()["count"] == 0


class TestProcess:
    def test_process_creates_pending_entry(self, client):
        client.post("/api/activities", json={"source": "drive", "activities": [REPORT]}, headers=HEADERS)

        response = client.post("/api/time-entries/process", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        entry = body["entries"][0]
        assert entry["status"] == "pending_review"
        assert entry["ai_confidence_percent"] == 85
        assert entry["duration_minutes"] == 45
        assert entry["decider"] == "llm"

    def test_process_with_nothing_to_do(self, client):
        response = client.post("/api/time-entries/process", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == {"entries": [], "count": 0}

    def test_process_while_running_is_409(self, client, service):
        client.post("/api/activities", json={"source": "drive", "activities": [REPORT]}, headers=HEADERS)

        with service.leases.hold("user-1"):
            response = client.post("/api/time-entries/process", headers=HEADERS)

        assert response.status_code == 409
        assert client.get("/api/activities/unprocessed/count", headers=HEADERS).json()["count"] == 1


class TestReview:
    def test_lists_by_status(self, client, entry_id):
        assert [e["id"] for e in client.get("/api/time-entries/pending", headers=HEADERS).json()] == [entry_id]
        assert client.get("/api/time-entries/approved", headers=HEADERS).json() == []
        assert len(client.get("/api/time-entries?status=pending_review", headers=HEADERS).json()) == 1

    def test_unknown_status_filter_is_400(self, client):
        response = client.get("/api/time-entries?status=archived", headers=HEADERS)
        assert response.status_code == 400

    def test_edit_pending_entry(self, client, entry_id):
        response = client.patch(
            f"/api/time-entries/{entry_id}",
            json={"summary": "Q1 report draft", "customer_name": "Client Co"},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["summary"] == "Q1 report draft"
        assert response.json()["customer_name"] == "Client Co"

    def test_edit_status_field_is_400(self, client, entry_id):
        response = client.patch(
            f"/api/time-entries/{entry_id}", json={"status": "approved"}, headers=HEADERS
        )
        assert response.status_code == 400

    def test_approve_then_cannot_reopen_or_delete(self, client, entry_id):
        approved = client.patch(f"/api/time-entries/{entry_id}/approve", headers=HEADERS)
        assert approved.status_code == 200
        assert approved.json()["entry"]["status"] == "approved"
        assert approved.json()["entry"]["approved_at"] is not None

        reopen = client.put(
            f"/api/time-entries/{entry_id}/status", json={"status": "pending_review"}, headers=HEADERS
        )
        assert reopen.status_code == 400

        assert client.delete(f"/api/time-entries/{entry_id}", headers=HEADERS).status_code == 400

    def test_reject_removes_entry(self, client, entry_id):
        response = client.patch(f"/api/time-entries/{entry_id}/reject", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"id": entry_id, "status": "rejected", "entry": None}
        assert client.get("/api/time-entries", headers=HEADERS).json() == []

    def test_delete_pending_entry(self, client, entry_id):
        response = client.delete(f"/api/time-entries/{entry_id}", headers=HEADERS)
        assert response.status_code == 204
        assert client.get("/api/time-entries", headers=HEADERS).json() == []

    def test_other_user_is_403(self, client, entry_id):
        assert client.patch(f"/api/time-entries/{entry_id}/approve", headers=OTHER_USER).status_code == 403
        assert client.delete(f"/api/time-entries/{entry_id}", headers=OTHER_USER).status_code == 403

    def test_missing_entry_is_404(self, client):
        response = client.patch("/api/time-entries/does-not-exist/approve", headers=HEADERS)
        assert response.status_code == 404


class TestPreferences:
    def test_defaults_on_first_read(self, client):
        response = client.get("/api/ai-preferences", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["confidence_threshold"] == 80
        assert body["auto_approve_enabled"] is False
        assert body["retention_policy"]["delete_raw_after_processing"] is True

    def test_update_threshold(self, client):
        response = client.patch(
            "/api/ai-preferences", json={"confidence_threshold": 60}, headers=HEADERS
        )
        assert response.status_code == 200
        assert response.json()["confidence_threshold"] == 60
        assert client.get("/api/ai-preferences", headers=HEADERS).json()["confidence_threshold"] == 60

    def test_out_of_range_threshold_is_400(self, client):
        response = client.patch(
            "/api/ai-preferences", json={"confidence_threshold": 150}, headers=HEADERS
        )
        assert response.status_code == 400
        assert client.get("/api/ai-preferences", headers=HEADERS).json()["confidence_threshold"] == 80


class TestDirectory:
    def test_add_customer_and_project(self, client):
        customer = client.post(
            "/api/customers", json={"name": "Client Co", "domain": "client.com"}, headers=HEADERS
        )
        project = client.post(
            "/api/projects",
            json={"name": "Website Redesign", "customer_name": "Client Co", "keywords": ["redesign"]},
            headers=HEADERS,
        )
        assert customer.status_code == 201
        assert project.status_code == 201

        directory = client.get("/api/directory", headers=HEADERS).json()
        assert [c["name"] for c in directory["customers"]] == ["Client Co"]
        assert [p["name"] for p in directory["projects"]] == ["Website Redesign"]

    def test_directory_is_per_company(self, client):
        client.post("/api/customers", json={"name": "Client Co"}, headers=HEADERS)
        other = {"X-User-Id": "user-9", "X-Company-Id": "company-9"}
        assert client.get("/api/directory", headers=other).json()["customers"] == []
