"""Job state machine: each advance performs at most one unit of pipeline work."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from app.ai.agents.comparison import ComparisonTableAgent
from app.ai.agents.extras import EXTRA_PLACEHOLDERS, EXTRA_TITLES, ExtrasAgent
from app.ai.agents.outline import OutlineAgent
from app.ai.agents.prompts import outline_to_markdown
from app.ai.errors import ProviderError
from app.ai.pipeline.contracts import ComparisonTableInput, DocumentRequest, ExtraKind, ExtrasInput, JobContext, OutlineInput, OutlinePlan
from app.jobs.context import build_research_context
from app.jobs.errors import DocumentAlreadyDoneError, InvariantViolation, JobNotFoundError, JobStateError
from app.jobs.integrator import first_unreviewed_index, integrate
from app.jobs.leases import LeaseHeartbeat
from app.jobs.media import MediaAssetOrchestrator
from app.jobs.models import DocumentRecord, JobRecord, JobSnapshot, SectionRecord
from app.jobs.sections import SectionPipeline
from app.jobs.topology import Stage, Topology, TopologySpec, get_topology
from app.services.research import ReferenceResearcher
from app.storage.documents_repo import DocumentsRepository, KnowledgeItemRecord
from app.utils.ids import generate_item_id, generate_lease_token, generate_section_id, now_iso

logger = logging.getLogger(__name__)

MIN_SECTION_BUDGET = 10000
SECTION_CHARS_MIN = 1200
SECTION_CHARS_MAX = 3200
COMPARISON_TABLE_KIND = "comparison_table"


def plan_section_sizes(plan: OutlinePlan, target_chars: int) -> list[int]:
  """Rescale planned lengths to the document budget, clamped per section."""
  planned = [section.planned_chars for section in plan.sections]
  total = sum(planned) or 1
  scale = max(MIN_SECTION_BUDGET, target_chars) / total
  return [max(SECTION_CHARS_MIN, min(SECTION_CHARS_MAX, round(chars * scale))) for chars in planned]


def _lease_is_live(record: SectionRecord, now: datetime) -> bool:
  return record.lease_token is not None and record.lease_expires_at is not None and record.lease_expires_at > now


class JobOrchestrator:
  """Drive a job through its topology, persisting state before every return."""

  def __init__(
    self,
    *,
    repo: DocumentsRepository,
    outline_agent: OutlineAgent,
    sections: SectionPipeline,
    researcher: ReferenceResearcher,
    table_agent: ComparisonTableAgent,
    extras_agent: ExtrasAgent,
    media: MediaAssetOrchestrator | None,
    lease_ttl_seconds: int,
    auto_media: bool = False,
  ) -> None:
    self._repo = repo
    self._outline_agent = outline_agent
    self._sections = sections
    self._researcher = researcher
    self._table_agent = table_agent
    self._extras_agent = extras_agent
    self._media = media
    self._lease_ttl = lease_ttl_seconds
    self._auto_media = auto_media and media is not None

  async def snapshot(self, job_id: str) -> JobSnapshot:
    job = await self._repo.get_job(job_id)
    if job is None:
      raise JobNotFoundError(f"Job {job_id} not found.")
    return JobSnapshot.build(job, await self._repo.list_sections(job.document_id))

  async def advance(self, job_id: str) -> JobSnapshot:
    """
    Perform at most one unit of work for the job and return the new snapshot.

    Terminal jobs and jobs leased by another caller are returned untouched.
    Step failures move the job to error; they are never raised to the caller.
    """
    job = await self._repo.get_job(job_id)
    if job is None:
      raise JobNotFoundError(f"Job {job_id} not found.")
    if job.is_terminal:
      return await self.snapshot(job_id)

    token = generate_lease_token()
    leased = await self._repo.acquire_job_lease(job_id, token, self._lease_ttl)
    if leased is None:
      logger.info("Job %s is being advanced by another caller; no-op.", job_id)
      return await self.snapshot(job_id)

    try:
      if not leased.is_terminal:
        async with LeaseHeartbeat(lambda: self._repo.renew_job_lease(job_id, token, self._lease_ttl), ttl_seconds=self._lease_ttl, name=f"job {job_id}"):
          await self._step(leased)
    except Exception as exc:  # noqa: BLE001
      await self._fail(leased, exc)
    finally:
      await self._repo.release_job_lease(job_id, token)
    return await self.snapshot(job_id)

  async def retry_job(self, job_id: str) -> JobSnapshot:
    """Move an errored job back to queued, resuming at the first section that is not reviewed."""
    job = await self._repo.get_job(job_id)
    if job is None:
      raise JobNotFoundError(f"Job {job_id} not found.")
    if job.status != "error":
      raise JobStateError(f"Only failed jobs can be retried; job {job_id} is {job.status}.")

    spec = get_topology(job.topology)
    stage = spec.stage_for(job.step)
    updates: dict[str, Any] = {"status": "queued", "error": None, "finished_at": None, "updated_at": now_iso()}
    if stage in (Stage.SECTIONS, Stage.TABLE, Stage.INTEGRATE):
      sections = await self._repo.list_sections(job.document_id)
      blocking = first_unreviewed_index(sections, len(sections))
      if blocking is not None:
        updates["cursor"] = min(job.cursor, blocking) if stage is Stage.SECTIONS else blocking
        updates["step"] = spec.label(Stage.SECTIONS)

    await self._repo.update_job(job_id, **updates)
    await self._repo.update_document(job.document_id, status="running", updated_at=now_iso())
    logger.info("Job %s queued for retry step=%s cursor=%s", job_id, updates.get("step", job.step), updates.get("cursor", job.cursor))
    return await self.snapshot(job_id)

  async def _step(self, job: JobRecord) -> None:
    spec = get_topology(job.topology)
    stage = spec.stage_for(job.step)
    if stage is Stage.INIT:
      await self._init(job, spec)
      return

    document = await self._load_document(job)
    if job.status == "queued":
      job = await self._update(job, status="running", started_at=job.started_at or now_iso())
      await self._repo.update_document(document.document_id, status="running", updated_at=now_iso())

    if stage is Stage.RESEARCH:
      await self._researcher.research(document, job_id=job.job_id)
      await self._move(job, spec, stage, spec.progress_after(stage))
    elif stage is Stage.OUTLINE:
      await self._outline(job, spec, document)
    elif stage is Stage.SECTIONS:
      await self._section_step(job, spec, document)
    elif stage is Stage.TABLE:
      await self._table(job, spec, document)
    elif stage is Stage.INTEGRATE:
      await self._integrate(job, spec, document)
    elif stage is Stage.MEDIA:
      await self._media_step(job, document)
    else:
      await self._finish(job, document)

  async def _init(self, job: JobRecord, spec: TopologySpec) -> None:
    document = await self._repo.get_document(job.document_id)
    if document is None:
      raise InvariantViolation(f"Document {job.document_id} for job {job.job_id} does not exist.")
    if document.status == "done":
      raise DocumentAlreadyDoneError(f"Document {document.document_id} is already done; start a new job to regenerate it.")
    started = now_iso()
    await self._update(job, status="running", step=spec.label(spec.first_stage), started_at=started, progress=0)
    await self._repo.update_document(document.document_id, status="running", updated_at=started)

  async def _outline(self, job: JobRecord, spec: TopologySpec, document: DocumentRecord) -> None:
    request = DocumentRequest.model_validate(document.request)
    references = await self._repo.list_references(document.document_id)
    plan = await self._outline_agent.run(OutlineInput(request=request, research_context=build_research_context(references)), self._ctx(job))

    created = now_iso()
    sizes = plan_section_sizes(plan, request.target_chars)
    records = [
      SectionRecord(
        section_id=generate_section_id(),
        document_id=document.document_id,
        job_id=job.job_id,
        index=index,
        status="pending",
        heading_path=f"H2: {section.h2} [{section.intent_tag}]" if section.intent_tag else f"H2: {section.h2}",
        planned_chars=sizes[index],
        created_at=created,
        updated_at=created,
      )
      for index, section in enumerate(plan.sections)
    ]
    # A crash between creating sections and moving the job would otherwise duplicate them.
    await self._repo.delete_sections(document.document_id)
    await self._repo.create_sections(records)
    await self._repo.update_document(document.document_id, outline_markdown=outline_to_markdown(plan), updated_at=created)
    await self._store_extra(job, document, "intro_ab", request)
    await self._update(job, step=spec.label(Stage.SECTIONS), cursor=0, progress=max(job.progress, spec.progress_after(Stage.OUTLINE)))

  async def _section_step(self, job: JobRecord, spec: TopologySpec, document: DocumentRecord) -> None:
    sections = await self._repo.list_sections(document.document_id)
    total = len(sections)
    if total == 0:
      raise InvariantViolation(f"Job {job.job_id} is writing sections but the outline produced none.")

    if job.cursor < total:
      section = next((item for item in sections if item.index == job.cursor), None)
      if section is None:
        raise InvariantViolation(f"Section index {job.cursor} is missing for document {document.document_id}.")
      if section.status != "reviewed":
        written = await self._sections.process(section.section_id, document, job_id=job.job_id)
        if written is None:
          return

    cursor = min(job.cursor + 1, total)
    updates: dict[str, Any] = {"cursor": cursor, "progress": max(job.progress, spec.section_progress(cursor, total))}
    if cursor >= total:
      updates["step"] = spec.label(spec.next_stage(Stage.SECTIONS, include_media=self._auto_media))
    await self._update(job, **updates)

  async def _table(self, job: JobRecord, spec: TopologySpec, document: DocumentRecord) -> None:
    request = DocumentRequest.model_validate(document.request)
    references = await self._repo.list_references(document.document_id)
    table = await self._table_agent.run(ComparisonTableInput(request=request, research_context=build_research_context(references)), self._ctx(job))
    await self._repo.add_knowledge_item(KnowledgeItemRecord(item_id=generate_item_id(), document_id=document.document_id, owner_id=document.owner_id, kind=COMPARISON_TABLE_KIND, title="Comparison table", content=table, created_at=now_iso(), source_urls=list(request.reference_urls)))
    await self._move(job, spec, Stage.TABLE, spec.progress_after(Stage.TABLE))

  async def _integrate(self, job: JobRecord, spec: TopologySpec, document: DocumentRecord) -> None:
    sections = await self._repo.list_sections(document.document_id)
    blocking = first_unreviewed_index(sections, len(sections))
    if blocking is not None:
      holder = next((item for item in sections if item.index == blocking), None)
      if holder is not None and _lease_is_live(holder, datetime.now(UTC)):
        logger.info("Integration of job %s waits for section %d (leased).", job.job_id, blocking)
        return

    appendices = []
    if spec.topology is Topology.COMPARISON:
      tables = [item for item in await self._repo.list_knowledge_items(document.document_id) if item.kind == COMPARISON_TABLE_KIND]
      if tables:
        appendices.append(tables[-1].content)

    body = integrate(sections, expected_count=len(sections), appendices=appendices)
    await self._repo.update_document(document.document_id, body=body, updated_at=now_iso())
    request = DocumentRequest.model_validate(document.request)
    await self._store_extra(job, document, "internal_link", request, body=body)
    await self._store_extra(job, document, "social", request, body=body)

    following = spec.next_stage(Stage.INTEGRATE, include_media=self._auto_media)
    if following is Stage.DONE:
      await self._finish(job, document)
    else:
      await self._update(job, step=spec.label(following), progress=max(job.progress, spec.progress_after(Stage.INTEGRATE)))

  async def _media_step(self, job: JobRecord, document: DocumentRecord) -> None:
    if self._media is not None:
      try:
        assets = await self._media.ensure_assets(document.document_id)
        logger.info("Job %s media step finished with %d assets.", job.job_id, len(assets))
      except Exception:  # noqa: BLE001
        logger.warning("Media step failed for job %s; finishing without new assets.", job.job_id, exc_info=True)
    await self._finish(job, document)

  async def _finish(self, job: JobRecord, document: DocumentRecord) -> None:
    spec = get_topology(job.topology)
    finished = now_iso()
    await self._update(job, status="done", step=spec.label(Stage.DONE), progress=100, finished_at=finished)
    await self._repo.update_document(document.document_id, status="done", updated_at=finished)

  async def _move(self, job: JobRecord, spec: TopologySpec, stage: Stage, progress: int) -> None:
    following = spec.next_stage(stage, include_media=self._auto_media)
    await self._update(job, step=spec.label(following), progress=max(job.progress, progress))

  async def _store_extra(self, job: JobRecord, document: DocumentRecord, kind: ExtraKind, request: DocumentRequest, *, body: str = "") -> None:
    """Best-effort knowledge item; a failure stores a placeholder and never fails the step."""
    try:
      content = await self._extras_agent.run(ExtrasInput(kind=kind, request=request, body=body), self._ctx(job))
    except ProviderError as exc:
      logger.warning("Extra '%s' failed for document %s: %s", kind, document.document_id, exc)
      content = EXTRA_PLACEHOLDERS[kind]
    await self._repo.add_knowledge_item(KnowledgeItemRecord(item_id=generate_item_id(), document_id=document.document_id, owner_id=document.owner_id, kind=kind, title=EXTRA_TITLES[kind], content=content, created_at=now_iso(), source_urls=list(request.reference_urls)))

  async def _load_document(self, job: JobRecord) -> DocumentRecord:
    document = await self._repo.get_document(job.document_id)
    if document is None:
      raise InvariantViolation(f"Document {job.document_id} for job {job.job_id} does not exist.")
    return document

  async def _update(self, job: JobRecord, **fields: Any) -> JobRecord:
    updated = await self._repo.update_job(job.job_id, updated_at=now_iso(), **fields)
    if updated is None:
      raise JobNotFoundError(f"Job {job.job_id} not found.")
    logger.info("Job %s status=%s step=%s cursor=%d progress=%d", updated.job_id, updated.status, updated.step, updated.cursor, updated.progress)
    return updated

  async def _fail(self, job: JobRecord, exc: Exception) -> None:
    message = str(exc) or type(exc).__name__
    logger.error("Job %s failed at step=%s cursor=%d: %s", job.job_id, job.step, job.cursor, message, exc_info=True)
    finished = now_iso()
    await self._repo.update_job(job.job_id, status="error", error=message, finished_at=finished, updated_at=finished)
    if isinstance(exc, DocumentAlreadyDoneError):
      return
    await self._repo.update_document(job.document_id, status="error", updated_at=finished)

  def _ctx(self, job: JobRecord) -> JobContext:
    return JobContext(document_id=job.document_id, job_id=job.job_id)
