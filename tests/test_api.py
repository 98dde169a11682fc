"""Tests for API routes."""
import time

import pytest

from brainlift.config import Settings
from brainlift.research_core.orchestrator import ResearchOrchestrator

from conftest import FakeSearch, FakeSynthesis


def _orchestrator(search_delay: float = 0.0) -> ResearchOrchestrator:
    return ResearchOrchestrator(
        FakeSearch(delay=search_delay),
        FakeSynthesis(),
        settings=Settings(retry_backoff_ms=0, per_job_timeout_ms=5000),
    )


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from brainlift.main import create_app

    with TestClient(create_app(_orchestrator())) as test_client:
        yield test_client


@pytest.fixture
def slow_client():
    from fastapi.testclient import TestClient

    from brainlift.main import create_app

    with TestClient(create_app(_orchestrator(search_delay=0.3))) as test_client:
        yield test_client


def _wait_for_status(client, document_id, statuses, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/api/documents/{document_id}/status").json()
        if data["status"] in statuses:
            return data
        time.sleep(0.02)
    raise AssertionError(f"document {document_id} never reached {statuses}")


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "brainlift"


def test_research_runs_to_completion(client):
    response = client.post("/api/documents/doc1/research", json={"purpose": "reduce onboarding time"})
    assert response.status_code == 200
    assert response.json() == {"document_id": "doc1", "accepted": True, "status": "researching"}

    status = _wait_for_status(client, "doc1", {"complete", "partially_failed"})
    assert status["status"] == "complete"
    assert status["overall"] == 100
    assert set(status["per_kind"]) == {"experts", "contrarian_views", "knowledge_map"}

    jobs = client.get("/api/documents/doc1/jobs").json()
    assert len(jobs) == 3
    assert {job["state"] for job in jobs} == {"completed"}

    content = client.get("/api/documents/doc1/content").json()
    assert content["purpose"] == "reduce onboarding time"
    assert set(content["content"]) == {"experts", "contrarian_views", "knowledge_map"}
    assert content["content"]["experts"]["generated_content"] == "experts notes for reduce onboarding time"
    assert len(content["content"]["experts"]["sources"]) == 5


def test_blank_purpose_is_rejected(client):
    response = client.post("/api/documents/doc1/research", json={"purpose": "   "})
    assert response.status_code == 422


def test_second_start_conflicts_while_researching(slow_client):
    first = slow_client.post("/api/documents/doc1/research", json={"purpose": "reduce onboarding time"})
    second = slow_client.post("/api/documents/doc1/research", json={"purpose": "reduce onboarding time"})

    assert first.status_code == 200
    assert second.status_code == 409
    _wait_for_status(slow_client, "doc1", {"complete"})


def test_cancel_returns_document_to_idle(slow_client):
    slow_client.post("/api/documents/doc1/research", json={"purpose": "reduce onboarding time"})

    response = slow_client.post("/api/documents/doc1/cancel")

    assert response.status_code == 200
    assert response.json()["accepted"] is True
    assert response.json()["status"] == "idle"
    jobs = slow_client.get("/api/documents/doc1/jobs").json()
    assert all(job["cancelled"] for job in jobs)


def test_restart_without_history_is_404(client):
    response = client.post("/api/documents/unknown/restart")
    assert response.status_code == 404


def test_retry_with_nothing_failed_is_not_accepted(client):
    client.post("/api/documents/doc1/research", json={"purpose": "reduce onboarding time"})
    _wait_for_status(client, "doc1", {"complete"})

    response = client.post("/api/documents/doc1/retry")

    assert response.status_code == 200
    assert response.json()["accepted"] is False


def test_status_of_untouched_document_is_idle(client):
    data = client.get("/api/documents/fresh/status").json()
    assert data["status"] == "idle"
    assert data["overall"] == 0
    assert data["eta_seconds"] is None
