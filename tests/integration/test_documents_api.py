from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

# Ensure required settings are available before importing the app.
os.environ["LONGFORM_ALLOWED_ORIGINS"] = "http://localhost"
os.environ.pop("LONGFORM_TASK_SECRET", None)

from app.api.deps import get_document_service, get_ready_pipeline  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.main import app  # noqa: E402
from app.services.pipeline import Pipeline, build_pipeline  # noqa: E402
from tests.fakes import FAST_POLICY, FakeImageModel, InMemoryAssetStorage, InMemoryDocumentsRepository, ScriptedTextModel, make_settings  # noqa: E402

PRO = {"x-actor-id": "user-pro", "x-actor-plan": "PRO"}
FREE = {"x-actor-id": "user-free", "x-actor-plan": "FREE"}
OTHER = {"x-actor-id": "user-other", "x-actor-plan": "PRO"}

PAYLOAD = {"title": "Resumable pipelines", "keywords": ["pipelines"], "target_chars": 8000}


@dataclass
class Harness:
  client: TestClient
  pipeline: Pipeline
  repo: InMemoryDocumentsRepository
  storage: InMemoryAssetStorage


@pytest.fixture
def harness() -> Iterator[Harness]:
  repo = InMemoryDocumentsRepository()
  storage = InMemoryAssetStorage()
  pipeline = build_pipeline(
    make_settings(task_secret="task-secret"),
    repo,
    text_model=ScriptedTextModel(sections=3, diagrams=[{"title": "Flow", "description": "How a job advances"}]),
    image_model=FakeImageModel(),
    storage=storage,
    text_policy=FAST_POLICY,
    image_policy=FAST_POLICY,
  )

  async def _pipeline() -> Pipeline:
    return pipeline

  async def _service():
    return pipeline.documents

  app.dependency_overrides[get_ready_pipeline] = _pipeline
  app.dependency_overrides[get_document_service] = _service
  app.dependency_overrides[get_settings] = lambda: make_settings(task_secret="task-secret")
  try:
    yield Harness(client=TestClient(app), pipeline=pipeline, repo=repo, storage=storage)
  finally:
    app.dependency_overrides.clear()


def _run_to_completion(client: TestClient, job_id: str, headers: dict[str, str]) -> dict:
  for _ in range(30):
    response = client.post(f"/v1/jobs/{job_id}/advance", headers=headers)
    assert response.status_code == 200
    body = response.json()
    if body["status"] in {"done", "error"}:
      return body
  raise AssertionError("job did not finish")


def _create(client: TestClient, headers: dict[str, str], **overrides) -> dict:
  response = client.post("/v1/documents", json={**PAYLOAD, **overrides}, headers=headers)
  assert response.status_code == 201, response.text
  return response.json()


def test_create_and_poll_document_to_completion(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  assert created["document"]["status"] == "draft"
  job = created["job"]
  assert job["status"] == "queued"
  assert job["step"] == "init"
  assert job["topology"] == "standard"

  progress = [job["progress"]]
  finished = _run_to_completion(harness.client, job["job_id"], PRO)
  progress.append(finished["progress"])
  assert finished["status"] == "done"
  assert [section["status"] for section in finished["sections"]] == ["reviewed"] * 3

  document = harness.client.get(f"/v1/documents/{created['document']['document_id']}", headers=PRO).json()
  assert document["status"] == "done"
  assert "Body of section 2." in document["body"]

  listing = harness.client.get("/v1/documents", headers=PRO).json()
  assert [item["document_id"] for item in listing["items"]] == [document["document_id"]]

  knowledge = harness.client.get(f"/v1/documents/{document['document_id']}/knowledge", headers=PRO).json()
  assert {item["kind"] for item in knowledge["items"]} == {"intro_ab", "internal_link", "social"}


def test_create_without_job(harness: Harness) -> None:
  created = _create(harness.client, PRO, create_job=False)
  assert created["job"] is None
  assert harness.repo.jobs == {}


def test_request_validation_is_sanitized(harness: Harness) -> None:
  response = harness.client.post("/v1/documents", json={**PAYLOAD, "unexpected": "x"}, headers=PRO)
  assert response.status_code == 422
  body = response.json()
  assert body["requestId"] == response.headers["x-request-id"]
  assert all("input" not in error for error in body["detail"])


def test_inbound_request_id_is_echoed(harness: Harness) -> None:
  response = harness.client.get("/v1/documents", headers={**PRO, "x-request-id": "abc-123"})
  assert response.headers["x-request-id"] == "abc-123"


def test_guest_quota_and_char_limit(harness: Harness) -> None:
  response = harness.client.post("/v1/documents", json={**PAYLOAD, "target_chars": 20000})
  assert response.status_code == 403

  _create(harness.client, {})
  response = harness.client.post("/v1/documents", json=PAYLOAD)
  assert response.status_code == 429


def test_documents_are_private_to_their_owner(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  document_id = created["document"]["document_id"]

  assert harness.client.get(f"/v1/documents/{document_id}", headers=OTHER).status_code == 403
  assert harness.client.get(f"/v1/jobs/{created['job']['job_id']}", headers=OTHER).status_code == 403
  assert harness.client.get("/v1/documents/missing", headers=PRO).status_code == 404
  assert harness.client.post("/v1/jobs/missing/advance", headers=PRO).status_code == 404


def test_start_job_conflicts_while_active_and_resets_when_done(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  document_id = created["document"]["document_id"]

  assert harness.client.post(f"/v1/documents/{document_id}/jobs", headers=PRO).status_code == 409

  _run_to_completion(harness.client, created["job"]["job_id"], PRO)
  response = harness.client.post(f"/v1/documents/{document_id}/jobs", json={"reset_sections": True}, headers=PRO)
  assert response.status_code == 201
  assert response.json()["step"] == "init"
  assert response.json()["sections"] == []
  assert harness.repo.documents[document_id].body is None

  finished = _run_to_completion(harness.client, response.json()["job_id"], PRO)
  assert finished["status"] == "done"


def test_start_job_without_reset_resumes_at_sections(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  document_id = created["document"]["document_id"]
  _run_to_completion(harness.client, created["job"]["job_id"], PRO)

  response = harness.client.post(f"/v1/documents/{document_id}/jobs", json={"reset_sections": False}, headers=PRO)

  assert response.status_code == 201
  job = response.json()
  assert job["step"] == "sections"
  assert job["cursor"] == 3
  finished = _run_to_completion(harness.client, job["job_id"], PRO)
  assert finished["status"] == "done"


def test_retry_requires_failed_job(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  response = harness.client.post(f"/v1/jobs/{created['job']['job_id']}/retry", headers=PRO)
  assert response.status_code == 409


def test_regenerate_section(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  finished = _run_to_completion(harness.client, created["job"]["job_id"], PRO)
  section_id = finished["sections"][1]["section_id"]

  response = harness.client.post(f"/v1/sections/{section_id}/regenerate", headers=PRO)

  assert response.status_code == 200
  section = response.json()
  assert section["index"] == 1
  assert section["status"] == "reviewed"
  assert harness.client.post(f"/v1/sections/{section_id}/regenerate", headers=OTHER).status_code == 403


def test_media_lifecycle(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  document_id = created["document"]["document_id"]

  assert harness.client.post(f"/v1/documents/{document_id}/assets/ensure", headers=PRO).status_code == 400
  _run_to_completion(harness.client, created["job"]["job_id"], PRO)

  gallery = harness.client.post(f"/v1/documents/{document_id}/assets/ensure", headers=PRO).json()
  assert gallery["counts"]["BANNER"] == 4
  assert 1 <= gallery["counts"]["DIAGRAM"] <= 10
  total = len(gallery["items"])
  assert harness.client.get(f"/v1/documents/{document_id}/assets", headers=PRO).json()["counts"] == gallery["counts"]

  asset = gallery["items"][0]
  content = harness.client.get(f"/v1/assets/{asset['asset_id']}/content", headers=PRO)
  assert content.status_code == 200
  assert content.headers["content-type"] == "image/webp"
  assert content.content[:4] == b"RIFF"

  regenerated = harness.client.post(f"/v1/assets/{asset['asset_id']}/regenerate", headers=PRO).json()
  assert regenerated["asset_id"] == asset["asset_id"]
  assert regenerated["file_path"] != asset["file_path"]

  assert harness.client.delete(f"/v1/assets/{asset['asset_id']}", headers=PRO).status_code == 204
  assert harness.client.delete(f"/v1/assets/{asset['asset_id']}", headers=PRO).status_code == 404
  assert len(harness.client.get(f"/v1/documents/{document_id}/assets", headers=PRO).json()["items"]) == total - 1


def test_media_requires_paid_plan(harness: Harness) -> None:
  created = _create(harness.client, FREE)
  response = harness.client.post(f"/v1/documents/{created['document']['document_id']}/assets/ensure", headers=FREE)
  assert response.status_code == 403


def test_research_endpoint_without_urls(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  response = harness.client.post(f"/v1/documents/{created['document']['document_id']}/research", headers=PRO)
  assert response.status_code == 200
  assert response.json()["stored"] == 0


def test_task_endpoint_checks_secret_and_advances(harness: Harness) -> None:
  created = _create(harness.client, PRO)
  job_id = created["job"]["job_id"]

  denied = harness.client.post("/internal/tasks/advance-job", json={"job_id": job_id}, headers={"x-longform-task-secret": "wrong"})
  assert denied.status_code == 403

  accepted = harness.client.post("/internal/tasks/advance-job", json={"job_id": job_id}, headers={"x-longform-task-secret": "task-secret"})
  assert accepted.status_code == 200
  assert accepted.json() == {"status": "accepted"}
  # Background tasks run before TestClient returns.
  assert harness.repo.jobs[job_id].step == "outline"


def test_health(harness: Harness) -> None:
  assert harness.client.get("/health").json()["status"] == "ok"
