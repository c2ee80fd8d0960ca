from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.ai.pipeline.contracts import ConsistencyReport, DocumentRequest, OutlinePlan, OutlineSection
from app.api.models import CreateDocumentRequest


def test_document_request_rejects_unknown_fields() -> None:
  with pytest.raises(ValidationError):
    DocumentRequest.model_validate({"title": "T", "keywords": ["k"], "target_chars": 5000, "widgets": ["p"]})


@pytest.mark.parametrize("target_chars", [999, 60001])
def test_document_request_bounds_target_chars(target_chars: int) -> None:
  with pytest.raises(ValidationError):
    DocumentRequest(title="T", keywords=["k"], target_chars=target_chars)


def test_document_request_requires_keywords_and_http_urls() -> None:
  with pytest.raises(ValidationError):
    DocumentRequest(title="T", keywords=[], target_chars=5000)
  with pytest.raises(ValidationError):
    DocumentRequest(title="T", keywords=["k"], target_chars=5000, reference_urls=["ftp://example.com/file"])


def test_comparison_config_defaults_when_missing() -> None:
  request = DocumentRequest(title="T", keywords=["k"], target_chars=5000, mode="comparison_research")
  assert request.comparison_config().max_candidates == 8
  assert request.llmo.enabled()[0] == "tldr"


def test_outline_section_clamps_planned_chars() -> None:
  assert OutlineSection(h2="A", planned_chars=100).planned_chars == 800
  assert OutlineSection(h2="A", planned_chars=99999).planned_chars == 3500
  assert OutlineSection(h2="A", planned_chars="nonsense").planned_chars == 2000
  assert OutlineSection(h2="A", planned_chars=None).planned_chars == 2000


def test_outline_plan_needs_three_sections_and_coerces_objects() -> None:
  with pytest.raises(ValidationError):
    OutlinePlan.model_validate({"sections": [{"h2": "A"}, {"h2": "B"}]})
  plan = OutlinePlan.model_validate({"sections": [{"h2": "A", "h3": [{"text": "A.1"}]}, {"h2": "B"}, {"h2": "C"}], "faq": [{"q": "Why?"}], "glossary": "nope"})
  assert plan.sections[0].h3 == ["A.1"]
  assert plan.faq == ["Why?"]
  assert plan.glossary == []


def test_consistency_report_notes() -> None:
  report = ConsistencyReport.model_validate({"issues": ["loose wording", {"kind": "contradiction", "severity": "high", "note": "conflicts with section 1"}]})
  assert report.issues[0].kind == "style"
  assert report.to_notes() == "ISSUES:\n- [low/style] loose wording\n- [high/contradiction] conflicts with section 1"
  assert ConsistencyReport().to_notes() is None


def test_create_document_request_strips_create_job() -> None:
  payload = CreateDocumentRequest(title="T", keywords=["k"], target_chars=5000, create_job=False)
  request = payload.to_document_request()
  assert isinstance(request, DocumentRequest)
  assert "create_job" not in request.model_dump()
