import logging

from fastapi import APIRouter, Body, Depends, Query, status
from starlette.responses import Response

from app.api.deps import get_actor, get_document_service
from app.api.models import AssetList, CreateDocumentRequest, DocumentCreateResponse, DocumentListResponse, DocumentResponse, DocumentSummary, JobSnapshotResponse, KnowledgeList, ResearchResponse, StartJobRequest
from app.api.msgspec_utils import encode_msgspec_response
from app.services.access import Actor
from app.services.documents import DocumentService

router = APIRouter()
logger = logging.getLogger("app.api.routes.documents")


@router.post("", response_model=DocumentCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_document(  # noqa: B008
  payload: CreateDocumentRequest,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> DocumentCreateResponse:
  """Create a document and, unless create_job is false, its first generation job."""
  document, job = await service.create_document(actor, payload.to_document_request(), create_job=payload.create_job)
  snapshot = await service.get_job(actor, job.job_id) if job is not None else None
  return DocumentCreateResponse(document=DocumentResponse.from_record(document), job=JobSnapshotResponse.from_snapshot(snapshot) if snapshot is not None else None)


@router.get("", response_model=DocumentListResponse)
async def list_documents(  # noqa: B008
  limit: int = Query(default=50, ge=1, le=50),
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> DocumentListResponse:
  """Return the caller's most recent documents, newest first."""
  records = await service.list_documents(actor, limit=limit)
  return DocumentListResponse(items=[DocumentSummary(document_id=r.document_id, title=r.title, status=r.status, created_at=r.created_at, updated_at=r.updated_at) for r in records])


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(  # noqa: B008
  document_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> DocumentResponse:
  return DocumentResponse.from_record(await service.get_document(actor, document_id))


@router.post("/{document_id}/jobs", response_model=JobSnapshotResponse, status_code=status.HTTP_201_CREATED)
async def start_job(  # noqa: B008
  document_id: str,
  payload: StartJobRequest | None = Body(default=None),  # noqa: B008
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> JobSnapshotResponse:
  """Start a fresh generation job for an existing document."""
  options = payload or StartJobRequest()
  job = await service.start_job(actor, document_id, reset_sections=options.reset_sections)
  return JobSnapshotResponse.from_snapshot(await service.get_job(actor, job.job_id))


@router.post("/{document_id}/research", response_model=ResearchResponse)
async def research_document(  # noqa: B008
  document_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> ResearchResponse:
  """Fetch and summarize the document's reference URLs."""
  stored = await service.research(actor, document_id)
  return ResearchResponse(document_id=document_id, stored=stored)


@router.get("/{document_id}/knowledge")
async def list_knowledge(  # noqa: B008
  document_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> Response:
  items = await service.list_knowledge(actor, document_id)
  return encode_msgspec_response(KnowledgeList(document_id=document_id, items=items))


@router.post("/{document_id}/assets/ensure")
async def ensure_assets(  # noqa: B008
  document_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> Response:
  """Top up missing banner and diagram slots and return the gallery."""
  items = await service.ensure_assets(actor, document_id)
  return encode_msgspec_response(AssetList.build(document_id, items))


@router.get("/{document_id}/assets")
async def list_assets(  # noqa: B008
  document_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> Response:
  items = await service.list_assets(actor, document_id)
  return encode_msgspec_response(AssetList.build(document_id, items))
