"""Idempotent top-up of a document's banner and diagram gallery."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from app.ai.agents.media import DiagramProposalAgent, ImageAgent, ImageRequest, build_banner_prompt, build_diagram_prompt, clean_article_text, extract_headings, fallback_diagram_proposals, guess_genre, pick_random_patterns
from app.ai.agents.prompts import clamp_text
from app.ai.errors import ProviderError
from app.ai.pipeline.contracts import DiagramProposal, DiagramProposalInput, JobContext
from app.ai.providers.base import AspectRatio
from app.jobs.errors import AssetNotFoundError, DocumentNotFoundError, DocumentNotReadyError, StepFailure
from app.jobs.leases import LeaseHeartbeat
from app.jobs.models import ASSET_CAPS, AssetKind, DocumentRecord
from app.services.storage_client import AssetStorage
from app.storage.documents_repo import DocumentsRepository, ImageAssetRecord
from app.utils.ids import generate_asset_id, generate_lease_token, now_iso

logger = logging.getLogger(__name__)

DIAGRAM_CONTENT_CHARS = 7000
PROPOSAL_EXCERPT_CHARS = 3500


class MediaAssetOrchestrator:
  """Fill up to 4 BANNER and 10 DIAGRAM assets per document without touching existing ones."""

  def __init__(
    self,
    *,
    repo: DocumentsRepository,
    proposals: DiagramProposalAgent,
    images: ImageAgent,
    storage: AssetStorage,
    lease_ttl_seconds: int,
    pacing_seconds: float = 0.5,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: random.Random | None = None,
  ) -> None:
    self._repo = repo
    self._proposals = proposals
    self._images = images
    self._storage = storage
    self._lease_ttl = lease_ttl_seconds
    self._pacing = pacing_seconds
    self._sleep = sleep
    self._rng = rng

  async def ensure_assets(self, document_id: str) -> list[ImageAssetRecord]:
    """
    Top up missing banner and diagram slots, then return the full asset list.

    Per-item failures are logged and skipped. A concurrent top-up for the same
    document makes this call a no-op that still returns the current list.
    """
    document = await self._repo.get_document(document_id)
    if document is None:
      raise DocumentNotFoundError(f"Document {document_id} not found.")
    if not document.body:
      raise DocumentNotReadyError(f"Document {document_id} has no body yet; finish generation first.")

    token = generate_lease_token()
    if not await self._repo.acquire_media_lease(document_id, token, self._lease_ttl):
      logger.info("Media top-up already running for document %s.", document_id)
      return await self._repo.list_assets(document_id)

    try:
      async with LeaseHeartbeat(lambda: self._repo.renew_media_lease(document_id, token, self._lease_ttl), ttl_seconds=self._lease_ttl, name=f"media {document_id}"):
        pacer = _Pacer(self._sleep, self._pacing)
        created = await self._top_up_banners(document, pacer)
        created += await self._top_up_diagrams(document, pacer)
      logger.info("Media top-up document=%s created=%d", document_id, created)
    finally:
      await self._repo.release_media_lease(document_id, token)
    return await self._repo.list_assets(document_id)

  async def _top_up_banners(self, document: DocumentRecord, pacer: _Pacer) -> int:
    existing = await self._repo.list_assets(document.document_id, "BANNER")
    needed = max(0, ASSET_CAPS["BANNER"] - len(existing))
    if needed == 0:
      return 0

    body = document.body or ""
    article_text = clean_article_text(body)
    genre = _document_genre(document)
    created = 0
    for pattern in pick_random_patterns(needed, rng=self._rng):
      await pacer.wait()
      prompt = build_banner_prompt(pattern, title=document.title, article_text=article_text, genre=genre)
      description = f"Banner for '{document.title}' ({pattern.label})"
      if await self._generate_one(document, kind="BANNER", title=f"{pattern.label} style", description=description, prompt=prompt, aspect_ratio="16:9"):
        created += 1
    return created

  async def _top_up_diagrams(self, document: DocumentRecord, pacer: _Pacer) -> int:
    existing = await self._repo.list_assets(document.document_id, "DIAGRAM")
    remaining = max(0, ASSET_CAPS["DIAGRAM"] - len(existing))
    if remaining == 0:
      return 0

    body = document.body or ""
    headings = extract_headings(body)
    proposals = await self._propose(document, headings, remaining)
    if len(proposals) < remaining:
      proposed_titles = {proposal.title for proposal in proposals}
      unused = [heading for heading in headings if heading not in proposed_titles]
      proposals += fallback_diagram_proposals(unused, title=document.title, count=remaining - len(proposals))

    article_content = clamp_text(body, DIAGRAM_CONTENT_CHARS)
    created = 0
    for proposal in proposals[:remaining]:
      await pacer.wait()
      prompt = build_diagram_prompt(article_content=article_content, title=proposal.title, description=proposal.description)
      if await self._generate_one(document, kind="DIAGRAM", title=proposal.title, description=proposal.description, prompt=prompt, aspect_ratio="1:1"):
        created += 1
    return created

  async def _propose(self, document: DocumentRecord, headings: list[str], remaining: int) -> list[DiagramProposal]:
    input_data = DiagramProposalInput(title=document.title, headings=headings, excerpt=(document.body or "")[:PROPOSAL_EXCERPT_CHARS], remaining=remaining)
    try:
      return await self._proposals.run(input_data, JobContext(document_id=document.document_id))
    except ProviderError as exc:
      logger.warning("Diagram proposals failed for document %s; falling back to headings: %s", document.document_id, exc)
      return []

  async def _generate_one(self, document: DocumentRecord, *, kind: AssetKind, title: str, description: str, prompt: str, aspect_ratio: AspectRatio) -> ImageAssetRecord | None:
    ctx = JobContext(document_id=document.document_id, metadata={"kind": kind})
    asset_id = generate_asset_id()
    path = f"documents/{document.document_id}/{kind.lower()}_{asset_id}.webp"
    try:
      image = await self._images.run(ImageRequest(prompt=prompt, aspect_ratio=aspect_ratio), ctx)
      stored = await self._storage.save(image.data, path=path, content_type=image.mime_type)
    except Exception as exc:  # noqa: BLE001
      logger.warning("%s '%s' generation failed for document %s; skipping: %s", kind, title, document.document_id, exc, exc_info=not isinstance(exc, ProviderError))
      return None

    record = ImageAssetRecord(
      asset_id=asset_id,
      document_id=document.document_id,
      kind=kind,
      title=title,
      description=description,
      prompt=prompt,
      file_path=stored.path,
      mime_type=image.mime_type,
      created_at=now_iso(),
      width=image.width,
      height=image.height,
      size_bytes=stored.size,
    )
    added = await self._repo.add_asset_capped(record, ASSET_CAPS[kind])
    if added is None:
      logger.info("%s cap reached for document %s; discarding generated image.", kind, document.document_id)
      await self._storage.delete(stored.path)
    return added

  async def regenerate_asset(self, asset_id: str) -> ImageAssetRecord:
    """Replace one asset's image and prompt in place; the asset count never changes."""
    asset = await self._repo.get_asset(asset_id)
    if asset is None:
      raise AssetNotFoundError(f"Asset {asset_id} not found.")
    document = await self._repo.get_document(asset.document_id)
    if document is None:
      raise DocumentNotFoundError(f"Document {asset.document_id} not found.")
    if not document.body:
      raise DocumentNotReadyError(f"Document {document.document_id} has no body yet.")

    if asset.kind == "BANNER":
      pattern = pick_random_patterns(1, rng=self._rng)[0]
      prompt = build_banner_prompt(pattern, title=document.title, article_text=clean_article_text(document.body), genre=_document_genre(document))
      aspect_ratio: AspectRatio = "16:9"
    else:
      prompt = build_diagram_prompt(article_content=clamp_text(document.body, DIAGRAM_CONTENT_CHARS), title=asset.title, description=asset.description)
      aspect_ratio = "1:1"

    try:
      image = await self._images.run(ImageRequest(prompt=prompt, aspect_ratio=aspect_ratio), JobContext(document_id=document.document_id))
    except ProviderError as exc:
      raise StepFailure(f"Image regeneration failed: {exc}") from exc

    path = f"documents/{document.document_id}/{asset.kind.lower()}_{asset.asset_id}_{generate_lease_token()[:8]}.webp"
    stored = await self._storage.save(image.data, path=path, content_type=image.mime_type)
    updated = await self._repo.update_asset(asset_id, prompt=prompt, file_path=stored.path, mime_type=image.mime_type, width=image.width, height=image.height, size_bytes=stored.size)
    if updated is None:
      await self._storage.delete(stored.path)
      raise AssetNotFoundError(f"Asset {asset_id} was deleted during regeneration.")
    await self._storage.delete(asset.file_path)
    return updated

  async def read_asset(self, asset: ImageAssetRecord) -> bytes:
    return await self._storage.load(asset.file_path)

  async def delete_asset(self, asset_id: str) -> None:
    """User-initiated removal of one asset and its stored file."""
    asset = await self._repo.get_asset(asset_id)
    if asset is None or not await self._repo.delete_asset(asset_id):
      raise AssetNotFoundError(f"Asset {asset_id} not found.")
    await self._storage.delete(asset.file_path)


def _document_genre(document: DocumentRecord) -> str:
  body = document.body or ""
  return guess_genre(" ".join([document.title, " ".join(extract_headings(body)), body[:DIAGRAM_CONTENT_CHARS]]))


class _Pacer:
  """Fixed delay between consecutive image requests."""

  def __init__(self, sleep: Callable[[float], Awaitable[Any]], seconds: float) -> None:
    self._sleep = sleep
    self._seconds = seconds
    self._issued = False

  async def wait(self) -> None:
    if self._issued and self._seconds > 0:
      await self._sleep(self._seconds)
    self._issued = True
