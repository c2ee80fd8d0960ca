"""Unit tests for API exception sanitization and domain error mapping."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.exceptions import DOMAIN_ERRORS, _sanitize_validation_errors, domain_exception_handler, global_exception_handler
from app.jobs.errors import AccessDeniedError, DocumentNotReadyError, JobNotFoundError, JobStateError, SectionBusyError, StepFailure


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body",), "msg": "Value error, Keywords must be 1-100 characters.", "input": {"keywords": [""]}, "ctx": {"error": ValueError("Keywords must be 1-100 characters."), "input": {"keywords": [""]}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Keywords must be 1-100 characters."
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body"]


def _app(error: Exception) -> FastAPI:
  app = FastAPI()
  app.add_exception_handler(Exception, global_exception_handler)
  for error_type in DOMAIN_ERRORS:
    app.add_exception_handler(error_type, domain_exception_handler)

  @app.get("/boom")
  async def boom() -> None:
    raise error

  return app


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("error", "status_code"),
  [
    (JobNotFoundError("Job x not found."), 404),
    (SectionBusyError("busy"), 409),
    (JobStateError("already running"), 409),
    (AccessDeniedError("not yours"), 403),
    (AccessDeniedError("quota reached", quota=True), 429),
    (DocumentNotReadyError("no body"), 400),
  ],
)
async def test_domain_errors_map_to_status_codes(error: Exception, status_code: int) -> None:
  async with AsyncClient(transport=ASGITransport(app=_app(error)), base_url="http://test") as client:
    response = await client.get("/boom")
  assert response.status_code == status_code
  assert response.json()["detail"] == str(error)


@pytest.mark.anyio
async def test_step_failure_hides_provider_details() -> None:
  async with AsyncClient(transport=ASGITransport(app=_app(StepFailure("Section 2 generation failed: secret provider text"))), base_url="http://test") as client:
    response = await client.get("/boom")
  assert response.status_code == 502
  assert "secret provider text" not in response.text
