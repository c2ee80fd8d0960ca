import logging

from fastapi import APIRouter, Depends, status
from starlette.responses import Response

from app.api.deps import get_actor, get_document_service
from app.api.msgspec_utils import encode_msgspec_response
from app.services.access import Actor
from app.services.documents import DocumentService

router = APIRouter()
logger = logging.getLogger("app.api.routes.assets")


@router.post("/{asset_id}/regenerate")
async def regenerate_asset(  # noqa: B008
  asset_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> Response:
  """Replace one asset's image in place."""
  return encode_msgspec_response(await service.regenerate_asset(actor, asset_id))


@router.get("/{asset_id}/content")
async def get_asset_content(  # noqa: B008
  asset_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> Response:
  asset, data = await service.asset_content(actor, asset_id)
  return Response(content=data, media_type=asset.mime_type, headers={"cache-control": "private, max-age=3600"})


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(  # noqa: B008
  asset_id: str,
  actor: Actor = Depends(get_actor),  # noqa: B008
  service: DocumentService = Depends(get_document_service),  # noqa: B008
) -> Response:
  await service.delete_asset(actor, asset_id)
  return Response(status_code=status.HTTP_204_NO_CONTENT)
