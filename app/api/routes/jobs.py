import logging

from fastapi import APIRouter, Depends

from app.api.deps import get_actor, get_document_service
from app.api.models import JobSnapshotResponse
from app.services.access import Actor
from app.services.documents import DocumentService

router = APIRouter()
logger = logging.getLogger("app.api.routes.jobs")


@router.get("/{job_id}", response_model=JobSnapshotResponse)
async def get_job(  # noqa: B008
  job_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> JobSnapshotResponse:
  """Fetch the job state and per-section status."""
  return JobSnapshotResponse.from_snapshot(await service.get_job(actor, job_id))


@router.post("/{job_id}/advance", response_model=JobSnapshotResponse)
async def advance_job(  # noqa: B008
  job_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> JobSnapshotResponse:
  """Perform at most one unit of work; terminal or busy jobs return unchanged."""
  return JobSnapshotResponse.from_snapshot(await service.advance_job(actor, job_id))


@router.post("/{job_id}/retry", response_model=JobSnapshotResponse)
async def retry_job(  # noqa: B008
  job_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> JobSnapshotResponse:
  """Move a failed job back to queued at the first section that is not reviewed."""
  return JobSnapshotResponse.from_snapshot(await service.retry_job(actor, job_id))
