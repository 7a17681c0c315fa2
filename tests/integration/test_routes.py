import json

import pytest
from fastapi.testclient import TestClient

from memogen.main import app
from memogen.main import configure_services
from tests.conftest import SIMPLE_TEMPLATE
from tests.conftest import FakeCompletionService

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_llm():
    return FakeCompletionService()


@pytest.fixture()
def client(fake_llm):
    """Application wired to fresh in-memory services and a fake completion service."""
    configure_services(app, fake_llm)
    with TestClient(app) as test_client:
        yield test_client


def _upload_inputs(client):
    template = client.post("/api/templates", json={"name": "memo.md", "content": SIMPLE_TEMPLATE}).json()
    documents = [
        client.post("/api/documents", json={"name": name, "content": content}).json()
        for name, content in [
            ("summary.txt", "Executive summary of the investment opportunity and expected returns."),
            ("market.txt", "Market analysis: local trends and comparable rents."),
        ]
    ]
    return template, documents


def _job_payload(template, documents, **metadata):
    return {
        "template_id": template["id"],
        "source_ids": [document["id"] for document in documents],
        "metadata": {"asset_name": "Harbor Point", "asset_type": "Multifamily", "location": "Boston, MA", **metadata},
    }


def _read_events(client, job_id):
    response = client.get(f"/api/jobs/{job_id}/events")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Templates and documents
# ---------------------------------------------------------------------------


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_upload_template_returns_parsed_structure(client):
    response = client.post("/api/templates", json={"name": "memo.md", "content": SIMPLE_TEMPLATE})

    assert response.status_code == 201
    body = response.json()
    assert [section["title"] for section in body["structure"]["sections"]] == [
        "Executive Summary",
        "Market Analysis",
        "Risk Factors",
    ]
    assert body["structure"]["sections"][2]["kind"] == "heading"
    assert client.get("/api/templates").json()[0]["id"] == body["id"]


def test_sample_template(client):
    response = client.post("/api/templates/sample")
    assert response.status_code == 201
    assert response.json()["structure"]["sections"][0]["title"] == "Investment Memorandum Template"


def test_upload_document(client):
    response = client.post("/api/documents", json={"name": "notes.txt", "content": "déjà vu"})
    assert response.status_code == 201
    assert response.json()["size"] == len("déjà vu".encode("utf-8"))
    assert len(client.get("/api/documents").json()) == 1


def test_upload_template_requires_name(client):
    response = client.post("/api/templates", json={"name": "", "content": "# A"})
    assert response.status_code == 422
    assert response.json()["error"] == "Input validation failed"


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def test_job_without_documents_is_rejected(client, fake_llm):
    template, _ = _upload_inputs(client)

    response = client.post("/api/jobs", json=_job_payload(template, []))

    assert response.status_code == 400
    assert "source documents" in response.json()["error"]
    assert fake_llm.calls == []
    assert client.get("/api/jobs").json() == []


def test_job_with_blank_asset_type_is_rejected(client):
    template, documents = _upload_inputs(client)
    response = client.post("/api/jobs", json=_job_payload(template, documents, asset_type=" "))
    assert response.status_code == 400


def test_unknown_job_is_404(client):
    assert client.get("/api/jobs/missing").status_code == 404
    assert client.post("/api/jobs/missing/cancel").status_code == 404
    assert client.post("/api/jobs/missing/retry").status_code == 404
    assert client.get("/api/jobs/missing/events").status_code == 404


def test_full_generation_flow(client):
    template, documents = _upload_inputs(client)

    response = client.post("/api/jobs", json=_job_payload(template, documents))
    assert response.status_code == 202
    job = response.json()
    assert job["status"] == "queued"

    events = _read_events(client, job["id"])
    assert events[-1] == {"type": "finished", "message": "completed"}
    snapshots = [event["payload"] for event in events if event["type"] == "job"]
    progress = [snapshot["progress"] for snapshot in snapshots]
    assert progress == sorted(progress)
    assert snapshots[-1]["status"] == "completed"
    assert snapshots[-1]["progress"] == 100

    final = client.get(f"/api/jobs/{job['id']}").json()
    assert final["status"] == "completed"
    content_id = final["result"]["id"]

    content = client.get(f"/api/contents/{content_id}").json()
    assert [section["title"] for section in content["sections"]] == [
        "Executive Summary",
        "Market Analysis",
        "Risk Factors",
        "Competitive Landscape",
    ]
    assert content["metadata"]["asset_name"] == "Harbor Point"

    docx = client.get(f"/api/contents/{content_id}/docx")
    assert docx.status_code == 200
    assert docx.headers["content-type"] == "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    assert docx.content[:2] == b"PK"

    assert client.post(f"/api/jobs/{job['id']}/cancel").json() == {"job_id": job["id"], "cancelled": False}
    assert client.post(f"/api/jobs/{job['id']}/retry").json() == {"job_id": job["id"], "restarted": False}


def test_failed_job_can_be_retried(client, fake_llm):
    fake_llm.generation_failures = 1
    template, documents = _upload_inputs(client)
    job = client.post("/api/jobs", json=_job_payload(template, documents)).json()

    events = _read_events(client, job["id"])
    assert events[-1]["message"] == "failed"
    assert events[-2]["payload"]["error"] == "provider unavailable"

    assert client.post(f"/api/jobs/{job['id']}/retry").json()["restarted"] is True
    events = _read_events(client, job["id"])
    assert events[-1]["message"] == "completed"


def test_unknown_content_is_404(client):
    assert client.get("/api/contents/missing").status_code == 404
    assert client.get("/api/contents/missing/docx").status_code == 404


def test_llm_errors_have_no_http_handler():
    from memogen.services.llm import JSONParsingError
    from memogen.services.llm import LLMError

    # Provider failures are turned into job state, never into HTTP responses
    assert LLMError not in app.exception_handlers
    assert JSONParsingError not in app.exception_handlers
