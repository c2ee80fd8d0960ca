"""Section writer plus consistency checker, with per-section leases."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.ai.agents.consistency import ConsistencyAgent
from app.ai.agents.section_writer import SectionWriterAgent
from app.ai.errors import ProviderError
from app.ai.pipeline.contracts import SEVERITY_RANK, ConsistencyInput, ConsistencyReport, DocumentRequest, JobContext, SectionWriteInput
from app.config import Settings
from app.jobs.context import build_prior_digest, build_research_context, outline_context
from app.jobs.errors import DocumentNotFoundError, SectionBusyError, SectionNotFoundError, StepFailure
from app.jobs.leases import LeaseHeartbeat
from app.jobs.models import DocumentRecord, SectionRecord
from app.storage.documents_repo import DocumentsRepository
from app.utils.ids import generate_lease_token, now_iso

logger = logging.getLogger(__name__)

_REWRITE_KINDS = frozenset({"contradiction", "duplication"})


@dataclass(frozen=True)
class ConsistencyPolicy:
  """When a consistency report forces an automatic rewrite, and how many are allowed."""

  max_rewrites: int = 1
  severity_threshold: str = "high"

  @classmethod
  def from_settings(cls, settings: Settings) -> ConsistencyPolicy:
    return cls(max_rewrites=settings.consistency_max_rewrites, severity_threshold=settings.consistency_rewrite_severity)

  def requires_rewrite(self, report: ConsistencyReport) -> bool:
    threshold = SEVERITY_RANK[self.severity_threshold]
    return any(issue.kind in _REWRITE_KINDS and SEVERITY_RANK[issue.severity] >= threshold for issue in report.issues)


def _rewrite_feedback(report: ConsistencyReport) -> str:
  return "\n".join(f"- [{issue.severity}/{issue.kind}] {issue.note}" for issue in report.issues)


class SectionPipeline:
  """Write one section, check it against prior sections and persist each transition."""

  def __init__(self, *, repo: DocumentsRepository, writer: SectionWriterAgent, checker: ConsistencyAgent, policy: ConsistencyPolicy, lease_ttl_seconds: int) -> None:
    self._repo = repo
    self._writer = writer
    self._checker = checker
    self._policy = policy
    self._lease_ttl = lease_ttl_seconds

  async def process(self, section_id: str, document: DocumentRecord, *, job_id: str | None) -> SectionRecord | None:
    """Write the section under its lease; returns None when another writer holds it."""
    token = generate_lease_token()
    leased = await self._repo.acquire_section_lease(section_id, token, self._lease_ttl)
    if leased is None:
      logger.info("Section %s is busy; skipping this advance.", section_id)
      return None
    try:
      async with self._heartbeat(section_id, token):
        return await self._write(leased, document, job_id=job_id)
    finally:
      await self._repo.release_section_lease(section_id, token)

  async def regenerate(self, section_id: str) -> SectionRecord:
    """
    Re-run the writer/checker pair for one section alone.

    Never touches the owning job; a provider failure leaves the section failed
    and is reported through the returned record.
    """
    section = await self._repo.get_section(section_id)
    if section is None:
      raise SectionNotFoundError(f"Section {section_id} not found.")
    document = await self._repo.get_document(section.document_id)
    if document is None:
      raise DocumentNotFoundError(f"Document {section.document_id} not found.")

    token = generate_lease_token()
    leased = await self._repo.acquire_section_lease(section_id, token, self._lease_ttl)
    if leased is None:
      raise SectionBusyError(f"Section {section_id} is being written by another request.")
    try:
      reset = await self._repo.update_section(section_id, status="pending", content=None, error=None, consistency=None, rewrite_count=0, updated_at=now_iso())
      try:
        async with self._heartbeat(section_id, token):
          return await self._write(reset or leased, document, job_id=leased.job_id)
      except StepFailure:
        failed = await self._repo.get_section(section_id)
        if failed is None:
          raise SectionNotFoundError(f"Section {section_id} not found.") from None
        return failed
    finally:
      await self._repo.release_section_lease(section_id, token)

  def _heartbeat(self, section_id: str, token: str) -> LeaseHeartbeat:
    return LeaseHeartbeat(lambda: self._repo.renew_section_lease(section_id, token, self._lease_ttl), ttl_seconds=self._lease_ttl, name=f"section {section_id}")

  async def _write(self, section: SectionRecord, document: DocumentRecord, *, job_id: str | None) -> SectionRecord:
    request = DocumentRequest.model_validate(document.request)
    ctx = JobContext(document_id=document.document_id, job_id=job_id, metadata={"section_index": section.index})
    siblings = await self._repo.list_sections(document.document_id)
    references = await self._repo.list_references(document.document_id)
    prior_digest = build_prior_digest(siblings, section.index)
    outline_md = outline_context(document.outline_markdown)
    write_input = SectionWriteInput(
      request=request,
      index=section.index,
      heading_path=section.heading_path or "",
      planned_chars=section.planned_chars,
      outline_markdown=outline_md,
      prior_digest=prior_digest,
      research_context=build_research_context(references),
    )

    await self._repo.update_section(section.section_id, status="generating", job_id=job_id, error=None, updated_at=now_iso())
    try:
      draft = await self._writer.run(write_input, ctx)
    except ProviderError as exc:
      await self._mark_failed(section, str(exc))
      raise StepFailure(f"Section {section.index} generation failed: {exc}") from exc
    except Exception as exc:
      await self._mark_failed(section, f"{type(exc).__name__}: {exc}")
      raise

    content = draft.content
    await self._repo.update_section(section.section_id, status="written", content=content, prompt=draft.prompt, updated_at=now_iso())

    notes: list[str] = []
    rewrites = 0
    check_input = ConsistencyInput(heading_path=write_input.heading_path, draft=content, outline_markdown=outline_md, prior_digest=prior_digest)
    report = await self._check(check_input, ctx, notes)
    while report is not None and self._policy.requires_rewrite(report) and rewrites < self._policy.max_rewrites:
      rewrites += 1
      if report.rewritten:
        content = report.rewritten
      else:
        try:
          content = (await self._writer.run(write_input.model_copy(update={"feedback": _rewrite_feedback(report)}), ctx)).content
        except ProviderError as exc:
          logger.warning("Automatic rewrite of section %d failed; keeping the draft: %s", section.index, exc)
          notes.append(f"REWRITE FAILED: {exc}")
          break
      logger.info("Section %d rewritten automatically (%d/%d).", section.index, rewrites, self._policy.max_rewrites)
      report = await self._check(check_input.model_copy(update={"draft": content}), ctx, notes)

    updated = await self._repo.update_section(section.section_id, status="reviewed", content=content, consistency="\n\n".join(notes) or None, error=None, rewrite_count=rewrites, updated_at=now_iso())
    if updated is None:
      raise SectionNotFoundError(f"Section {section.section_id} disappeared while writing.")
    return updated

  async def _check(self, check_input: ConsistencyInput, ctx: JobContext, notes: list[str]) -> ConsistencyReport | None:
    """Run the checker; a failed check is noted and the draft stands."""
    try:
      report = await self._checker.run(check_input, ctx)
    except ProviderError as exc:
      logger.warning("Consistency check failed for %s; accepting draft: %s", check_input.heading_path, exc)
      notes.append(f"CHECK FAILED: {exc}")
      return None
    rendered = report.to_notes()
    if rendered:
      notes.append(rendered)
    return report

  async def _mark_failed(self, section: SectionRecord, reason: str) -> None:
    logger.error("Section %d of document %s failed: %s", section.index, section.document_id, reason)
    await self._repo.update_section(section.section_id, status="failed", content=None, error=reason, updated_at=now_iso())
