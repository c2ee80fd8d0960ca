import logging

from fastapi import APIRouter, Depends

from app.api.deps import get_actor, get_document_service
from app.api.models import SectionResponse
from app.services.access import Actor
from app.services.documents import DocumentService

router = APIRouter()
logger = logging.getLogger("app.api.routes.sections")


@router.post("/{section_id}/regenerate", response_model=SectionResponse)
async def regenerate_section(  # noqa: B008
  section_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> SectionResponse:
  """Rewrite one section in isolation; the owning job is not touched."""
  record = await service.regenerate_section(actor, section_id)
  return SectionResponse.from_record(record)
