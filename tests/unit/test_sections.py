from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.ai.agents import ConsistencyAgent, SectionWriterAgent
from app.ai.pipeline.contracts import ConsistencyReport
from app.jobs.errors import SectionBusyError
from app.jobs.models import SectionRecord
from app.jobs.sections import ConsistencyPolicy, SectionPipeline
from tests.fakes import FAST_POLICY, NOW, InMemoryDocumentsRepository, ScriptedTextModel, seed_document


def _pipeline(repo: InMemoryDocumentsRepository, model: ScriptedTextModel, *, max_rewrites: int = 1, severity: str = "high") -> SectionPipeline:
  return SectionPipeline(
    repo=repo,
    writer=SectionWriterAgent(model=model, policy=FAST_POLICY),
    checker=ConsistencyAgent(model=model, policy=FAST_POLICY),
    policy=ConsistencyPolicy(max_rewrites=max_rewrites, severity_threshold=severity),
    lease_ttl_seconds=60,
  )


async def _seed_sections(repo: InMemoryDocumentsRepository, count: int = 3) -> list[SectionRecord]:
  records = [SectionRecord(section_id=f"sec-{index}", document_id="doc-1", job_id="job-1", index=index, status="pending", heading_path=f"H2: Part {index + 1}", created_at=NOW, updated_at=NOW) for index in range(count)]
  await repo.create_sections(records)
  return records


def _contradiction_until_revised(prompt: str) -> dict:
  if "(revised)" in prompt:
    return {"issues": []}
  return {"issues": [{"kind": "contradiction", "severity": "high", "note": "Conflicts with section 0."}]}


def test_policy_requires_rewrite_only_for_blocking_issues() -> None:
  policy = ConsistencyPolicy(max_rewrites=1, severity_threshold="medium")
  assert policy.requires_rewrite(ConsistencyReport.model_validate({"issues": [{"kind": "duplication", "severity": "medium", "note": "x"}]}))
  assert not policy.requires_rewrite(ConsistencyReport.model_validate({"issues": [{"kind": "duplication", "severity": "low", "note": "x"}]}))
  assert not policy.requires_rewrite(ConsistencyReport.model_validate({"issues": [{"kind": "style", "severity": "high", "note": "x"}]}))


@pytest.mark.anyio
async def test_process_writes_reviewed_section_and_releases_lease() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo)
  await _seed_sections(repo)
  model = ScriptedTextModel(consistency=lambda _prompt: {"issues": ["Tighten the intro."]})

  record = await _pipeline(repo, model).process("sec-1", document, job_id="job-1")

  assert record is not None
  assert record.status == "reviewed"
  assert record.content == "## Part 2\n\nBody of section 1."
  assert record.consistency == "ISSUES:\n- [low/style] Tighten the intro."
  assert record.rewrite_count == 0
  stored = repo.sections["sec-1"]
  assert stored.lease_token is None
  assert stored.prompt is not None and "Write section index 1" in stored.prompt


@pytest.mark.anyio
async def test_blocking_issue_triggers_single_rewrite_with_feedback() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo)
  await _seed_sections(repo)
  model = ScriptedTextModel(consistency=_contradiction_until_revised)

  record = await _pipeline(repo, model).process("sec-2", document, job_id="job-1")

  assert record is not None
  assert record.status == "reviewed"
  assert record.rewrite_count == 1
  assert record.content.endswith("(revised).")
  assert len(model.rewrite_prompts) == 1
  assert "Conflicts with section 0." in model.rewrite_prompts[0]


@pytest.mark.anyio
async def test_rewrites_are_bounded_by_policy() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo)
  await _seed_sections(repo)
  model = ScriptedTextModel(consistency=lambda _prompt: {"issues": [{"kind": "duplication", "severity": "high", "note": "Repeats section 0."}]})

  record = await _pipeline(repo, model, max_rewrites=2).process("sec-1", document, job_id="job-1")

  assert record is not None
  assert record.status == "reviewed"
  assert record.rewrite_count == 2
  assert model.section_calls == [1, 1, 1]


@pytest.mark.anyio
async def test_checker_rewrite_is_used_without_calling_writer_again() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo)
  await _seed_sections(repo)

  def _report(prompt: str) -> dict:
    if "Fixed body" in prompt:
      return {"issues": []}
    return {"issues": [{"kind": "contradiction", "severity": "high", "note": "Wrong number."}], "rewritten": "## Part 1\n\nFixed body."}

  model = ScriptedTextModel(consistency=_report)
  record = await _pipeline(repo, model).process("sec-0", document, job_id="job-1")

  assert record is not None
  assert record.content == "## Part 1\n\nFixed body."
  assert model.section_calls == [0]


@pytest.mark.anyio
async def test_checker_failure_is_noted_and_draft_accepted() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo)
  await _seed_sections(repo)
  model = ScriptedTextModel(consistency_error=RuntimeError("permission denied"))

  record = await _pipeline(repo, model).process("sec-0", document, job_id="job-1")

  assert record is not None
  assert record.status == "reviewed"
  assert record.consistency is not None and record.consistency.startswith("CHECK FAILED:")


@pytest.mark.anyio
async def test_process_skips_section_leased_by_someone_else() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo)
  await _seed_sections(repo)
  await repo.update_section("sec-0", lease_token="other", lease_expires_at=datetime.now(UTC) + timedelta(minutes=5))
  model = ScriptedTextModel()

  assert await _pipeline(repo, model).process("sec-0", document, job_id="job-1") is None
  assert model.section_calls == []
  assert repo.sections["sec-0"].lease_token == "other"


@pytest.mark.anyio
async def test_expired_lease_is_taken_over() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo)
  await _seed_sections(repo)
  await repo.update_section("sec-0", lease_token="stale", lease_expires_at=datetime.now(UTC) - timedelta(seconds=1))

  record = await _pipeline(repo, ScriptedTextModel()).process("sec-0", document, job_id="job-1")

  assert record is not None and record.status == "reviewed"


@pytest.mark.anyio
async def test_regenerate_touches_only_the_target_section() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo)
  await _seed_sections(repo)
  for index in range(3):
    await repo.update_section(f"sec-{index}", status="reviewed", content=f"## Old {index}")

  record = await _pipeline(repo, ScriptedTextModel()).regenerate("sec-1")

  assert record.status == "reviewed"
  assert record.content == "## Part 2\n\nBody of section 1."
  assert repo.sections["sec-0"].content == "## Old 0"
  assert repo.sections["sec-2"].content == "## Old 2"


@pytest.mark.anyio
async def test_regenerate_failure_returns_failed_record() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo)
  await _seed_sections(repo)
  await repo.update_section("sec-1", status="reviewed", content="## Old 1")

  record = await _pipeline(repo, ScriptedTextModel(section_failures={1: 5})).regenerate("sec-1")

  assert record.status == "failed"
  assert record.content is None
  assert record.error is not None and "Unauthorized" in record.error
  assert repo.sections["sec-1"].lease_token is None


@pytest.mark.anyio
async def test_regenerate_busy_section_raises() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo)
  await _seed_sections(repo)
  await repo.update_section("sec-0", lease_token="other", lease_expires_at=datetime.now(UTC) + timedelta(minutes=5))

  with pytest.raises(SectionBusyError):
    await _pipeline(repo, ScriptedTextModel()).regenerate("sec-0")
