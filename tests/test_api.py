"""Tests for API routes."""
import time

import pytest
from fastapi.testclient import TestClient

from adscope.core.service import AdScopeService, reset_service
from adscope.core.store import InMemoryRecordStore
from adscope.synthesis.providers import HeuristicProvider
from adscope.synthesis.resolver import SynthesisResolver
from conftest import FakeAdapter

WORKFLOW_BODY = {
    "yourPageUrl": "https://www.facebook.com/nike",
    "competitor1Url": "https://www.facebook.com/adidas",
    "competitor2Url": "https://www.facebook.com/puma",
}


def _client(adapter):
    reset_service(
        AdScopeService(
            job_store=InMemoryRecordStore(kind="jobs"),
            workflow_store=InMemoryRecordStore(kind="workflows"),
            chain=[adapter],
            synthesizer=SynthesisResolver([HeuristicProvider()]),
        )
    )
    from adscope.main import app

    return TestClient(app)


@pytest.fixture
def client():
    with _client(FakeAdapter("tier1", records=[{"ad_id": str(index)} for index in range(3)])) as test_client:
        yield test_client
    reset_service()


@pytest.fixture
def slow_client():
    with _client(FakeAdapter("slow", records=[{"ad_id": "1"}], delay=30)) as test_client:
        yield test_client
    reset_service()


def _wait_for(client, path, statuses=("completed", "failed", "cancelled")):
    for _ in range(200):
        data = client.get(path).json()["data"]
        if data["status"] in statuses:
            return data
        time.sleep(0.01)
    raise AssertionError(f"{path} never finished")


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "adscope"}


def test_scrape_job_runs_and_paginates(client):
    response = client.post("/api/scrape", json={"query": "nike", "region": "gb", "limit": 10})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    job_id = body["data"]["job_id"]
    assert body["data"]["pages"] == ["nike"]

    job = _wait_for(client, f"/api/scrape/{job_id}")
    assert job["status"] == "completed"
    assert job["results_count"] == 3
    assert "records" not in job["page_results"][0]

    results = client.get(f"/api/scrape/{job_id}/results", params={"page": 2, "limit": 2}).json()["data"]
    assert [record["ad_id"] for record in results["results"]] == ["2"]
    assert results["pagination"]["total_pages"] == 2


def test_unknown_job_returns_not_found_envelope(client):
    response = client.get("/api/scrape/job_missing")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": {"code": "NOT_FOUND", "message": "Record not found: job_missing"},
    }


def test_invalid_scrape_request_is_validation_error(client):
    response = client.post("/api/scrape", json={"query": ""})
    assert response.status_code == 400
    body = response.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["details"]["errors"]


def test_workflow_rejects_non_facebook_url(client):
    response = client.post("/api/workflow/competitor-analysis", json={**WORKFLOW_BODY, "competitor2Url": "https://example.com/puma"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_URL"


def test_workflow_missing_field_is_validation_error(client):
    response = client.post("/api/workflow/competitor-analysis", json={"yourPageUrl": WORKFLOW_BODY["yourPageUrl"]})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_workflow_completes_and_cannot_be_cancelled(client):
    response = client.post("/api/workflow/competitor-analysis", json=WORKFLOW_BODY)
    assert response.status_code == 200
    workflow_id = response.json()["data"]["workflow_id"]

    status = _wait_for(client, f"/api/workflow/{workflow_id}/status")
    assert status["status"] == "completed"
    assert status["pages"]["your_page"]["found_count"] == 3
    assert "data" not in status["pages"]["your_page"]

    results = client.get(f"/api/workflow/{workflow_id}/results")
    assert results.status_code == 200
    assert results.json()["data"]["analysis"]["provider"] == "heuristic"
    assert results.json()["data"]["credits_used"] == 1

    cancel = client.post(f"/api/workflow/{workflow_id}/cancel")
    assert cancel.status_code == 400
    assert cancel.json()["error"]["code"] == "ALREADY_FINISHED"
    assert cancel.json()["error"]["details"] == {"status": "completed"}


def test_running_workflow_results_are_accepted_then_cancelled(slow_client):
    workflow_id = slow_client.post("/api/workflow/competitor-analysis", json=WORKFLOW_BODY).json()["data"]["workflow_id"]

    pending = slow_client.get(f"/api/workflow/{workflow_id}/results")
    assert pending.status_code == 202
    assert pending.json()["data"]["status"] in ("queued", "running")

    cancel = slow_client.post(f"/api/workflow/{workflow_id}/cancel")
    assert cancel.status_code == 200
    assert cancel.json()["data"]["status"] == "cancelled"
    assert cancel.json()["data"]["message"] == "Workflow cancelled by user"

    status = slow_client.get(f"/api/workflow/{workflow_id}/status").json()["data"]
    assert status["status"] == "cancelled"


def test_running_job_results_are_accepted(slow_client):
    job_id = slow_client.post("/api/scrape", json={"query": "nike"}).json()["data"]["job_id"]

    response = slow_client.get(f"/api/scrape/{job_id}/results")

    assert response.status_code == 202
    assert response.json()["data"]["status"] in ("queued", "running")
