"""Document lifecycle operations behind the HTTP API."""

from __future__ import annotations

import logging

from app.ai.pipeline.contracts import DocumentRequest
from app.jobs.errors import AccessDeniedError, AssetNotFoundError, DocumentNotFoundError, JobNotFoundError, JobStateError, SectionNotFoundError
from app.jobs.integrator import first_unreviewed_index
from app.jobs.media import MediaAssetOrchestrator
from app.jobs.models import DocumentRecord, JobRecord, JobSnapshot, SectionRecord
from app.jobs.orchestrator import JobOrchestrator
from app.jobs.sections import SectionPipeline
from app.jobs.topology import Stage, Topology, get_topology
from app.services.access import AccessGate, Actor
from app.services.research import ReferenceResearcher
from app.services.tasks.interface import TaskEnqueuer
from app.storage.documents_repo import DocumentsRepository, ImageAssetRecord, KnowledgeItemRecord
from app.utils.ids import generate_document_id, generate_job_id, now_iso

logger = logging.getLogger(__name__)


class DocumentService:
  """Owner-scoped facade over the repository and the pipeline components."""

  def __init__(
    self,
    *,
    repo: DocumentsRepository,
    gate: AccessGate,
    orchestrator: JobOrchestrator,
    sections: SectionPipeline,
    researcher: ReferenceResearcher,
    media: MediaAssetOrchestrator,
    enqueuer: TaskEnqueuer | None = None,
  ) -> None:
    self._repo = repo
    self._gate = gate
    self._orchestrator = orchestrator
    self._sections = sections
    self._researcher = researcher
    self._media = media
    self._enqueuer = enqueuer

  async def create_document(self, actor: Actor, request: DocumentRequest, *, create_job: bool = True) -> tuple[DocumentRecord, JobRecord | None]:
    """Create a draft document and, unless told otherwise, its first job."""
    await self._gate.ensure_can_create(actor, request.target_chars)

    created = now_iso()
    document = DocumentRecord(document_id=generate_document_id(), owner_id=actor.actor_id, title=request.title, status="draft", request=request.model_dump(mode="json"), created_at=created, updated_at=created)
    await self._repo.create_document(document)
    logger.info("Document %s created owner=%s mode=%s", document.document_id, actor.actor_id, request.mode)

    job = None
    if create_job:
      job = await self._create_job(document, request)
    return document, job

  async def get_document(self, actor: Actor, document_id: str) -> DocumentRecord:
    return await self._owned_document(actor, document_id)

  async def list_documents(self, actor: Actor, *, limit: int = 50) -> list[DocumentRecord]:
    return await self._repo.list_documents(actor.actor_id, limit=limit)

  async def start_job(self, actor: Actor, document_id: str, *, reset_sections: bool = True) -> JobRecord:
    """
    Start a fresh job for an existing document.

    With reset_sections the outline, sections and body are cleared and the job
    starts from the beginning. Without it, reviewed sections are kept and the
    job resumes at the first section that still needs work.
    """
    document = await self._owned_document(actor, document_id)
    latest = await self._repo.latest_job_for_document(document_id)
    if latest is not None and not latest.is_terminal:
      raise JobStateError(f"Document {document_id} already has an active job {latest.job_id}.")

    request = DocumentRequest.model_validate(document.request)
    existing = [] if reset_sections else await self._repo.list_sections(document_id)
    if reset_sections:
      await self._repo.delete_sections(document_id)
      await self._repo.update_document(document_id, status="draft", outline_markdown=None, body=None, updated_at=now_iso())
    else:
      await self._repo.update_document(document_id, status="draft", body=None, updated_at=now_iso())
    return await self._create_job(document, request, resume_from=existing)

  async def get_job(self, actor: Actor, job_id: str) -> JobSnapshot:
    await self._owned_job(actor, job_id)
    return await self._orchestrator.snapshot(job_id)

  async def advance_job(self, actor: Actor, job_id: str) -> JobSnapshot:
    await self._owned_job(actor, job_id)
    return await self._orchestrator.advance(job_id)

  async def retry_job(self, actor: Actor, job_id: str) -> JobSnapshot:
    await self._owned_job(actor, job_id)
    snapshot = await self._orchestrator.retry_job(job_id)
    await self._enqueue(job_id)
    return snapshot

  async def research(self, actor: Actor, document_id: str) -> int:
    document = await self._owned_document(actor, document_id)
    return await self._researcher.research(document)

  async def regenerate_section(self, actor: Actor, section_id: str) -> SectionRecord:
    section = await self._repo.get_section(section_id)
    if section is None:
      raise SectionNotFoundError(f"Section {section_id} not found.")
    await self._owned_document(actor, section.document_id)
    return await self._sections.regenerate(section_id)

  async def list_knowledge(self, actor: Actor, document_id: str) -> list[KnowledgeItemRecord]:
    await self._owned_document(actor, document_id)
    return await self._repo.list_knowledge_items(document_id)

  async def ensure_assets(self, actor: Actor, document_id: str) -> list[ImageAssetRecord]:
    await self._owned_document(actor, document_id)
    self._gate.ensure_can_generate_media(actor)
    return await self._media.ensure_assets(document_id)

  async def list_assets(self, actor: Actor, document_id: str) -> list[ImageAssetRecord]:
    await self._owned_document(actor, document_id)
    return await self._repo.list_assets(document_id)

  async def regenerate_asset(self, actor: Actor, asset_id: str) -> ImageAssetRecord:
    await self._owned_asset(actor, asset_id)
    self._gate.ensure_can_generate_media(actor)
    return await self._media.regenerate_asset(asset_id)

  async def asset_content(self, actor: Actor, asset_id: str) -> tuple[ImageAssetRecord, bytes]:
    asset = await self._owned_asset(actor, asset_id)
    return asset, await self._media.read_asset(asset)

  async def delete_asset(self, actor: Actor, asset_id: str) -> None:
    await self._owned_asset(actor, asset_id)
    await self._media.delete_asset(asset_id)

  async def _create_job(self, document: DocumentRecord, request: DocumentRequest, *, resume_from: list[SectionRecord] | None = None) -> JobRecord:
    spec = get_topology(Topology.for_mode(request.mode))
    created = now_iso()
    step = Stage.INIT.value
    cursor = 0
    if resume_from:
      blocking = first_unreviewed_index(resume_from, len(resume_from))
      step = spec.label(Stage.SECTIONS)
      cursor = len(resume_from) if blocking is None else blocking

    job = JobRecord(job_id=generate_job_id(), document_id=document.document_id, topology=spec.topology.value, status="queued", step=step, cursor=cursor, created_at=created, updated_at=created)
    await self._repo.create_job(job)
    logger.info("Job %s created document=%s topology=%s step=%s", job.job_id, document.document_id, job.topology, job.step)
    await self._enqueue(job.job_id)
    return job

  async def _enqueue(self, job_id: str) -> None:
    if self._enqueuer is None:
      return
    try:
      await self._enqueuer.enqueue_advance(job_id)
    except Exception:  # noqa: BLE001
      # The job stays queued and can still be advanced by polling.
      logger.warning("Failed to enqueue advance for job %s.", job_id, exc_info=True)

  async def _owned_document(self, actor: Actor, document_id: str) -> DocumentRecord:
    document = await self._repo.get_document(document_id)
    if document is None:
      raise DocumentNotFoundError(f"Document {document_id} not found.")
    if document.owner_id != actor.actor_id:
      raise AccessDeniedError("You do not have access to this document.")
    return document

  async def _owned_job(self, actor: Actor, job_id: str) -> JobRecord:
    job = await self._repo.get_job(job_id)
    if job is None:
      raise JobNotFoundError(f"Job {job_id} not found.")
    await self._owned_document(actor, job.document_id)
    return job

  async def _owned_asset(self, actor: Actor, asset_id: str) -> ImageAssetRecord:
    asset = await self._repo.get_asset(asset_id)
    if asset is None:
      raise AssetNotFoundError(f"Asset {asset_id} not found.")
    await self._owned_document(actor, asset.document_id)
    return asset
