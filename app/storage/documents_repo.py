"""Storage interfaces for documents, jobs, sections and their artifacts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

import msgspec

from app.jobs.models import AssetKind, DocumentRecord, JobRecord, SectionRecord


class ImageAssetRecord(msgspec.Struct):
  """Stored banner or diagram image for a document."""

  asset_id: str
  document_id: str
  kind: AssetKind
  title: str
  description: str
  prompt: str
  file_path: str
  mime_type: str
  created_at: str
  width: int | None = None
  height: int | None = None
  size_bytes: int | None = None


class KnowledgeItemRecord(msgspec.Struct):
  """Auxiliary text produced alongside a document (intro drafts, link ideas, insights)."""

  item_id: str
  document_id: str
  owner_id: str
  kind: str
  title: str
  content: str
  created_at: str
  source_urls: list[str] = msgspec.field(default_factory=list)


class ReferenceRecord(msgspec.Struct):
  """A fetched and summarized reference page, unique per (document, url)."""

  reference_id: str
  document_id: str
  url: str
  fetched_at: str
  title: str = ""
  description: str = ""
  headings: list[str] = msgspec.field(default_factory=list)
  extracted_text: str = ""
  summary: str = ""
  insights: dict[str, list[str]] = msgspec.field(default_factory=dict)


class DocumentsRepository(Protocol):
  """Repository contract for document pipeline persistence.

  `update_*` methods apply every given keyword, including explicit None, and
  return the updated record or None when the row does not exist. Lease methods
  return the leased record only when no live lease is held by someone else.
  """

  async def create_document(self, record: DocumentRecord) -> None:
    """Persist a new document."""

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    """Fetch a document by identifier."""

  async def list_documents(self, owner_id: str, *, limit: int = 50) -> list[DocumentRecord]:
    """Return the owner's most recent documents, newest first."""

  async def update_document(self, document_id: str, **fields: Any) -> DocumentRecord | None:
    """Apply partial updates to a document."""

  async def count_documents_since(self, owner_id: str, since: datetime | None) -> int:
    """Count documents created by the owner since a point in time (all time when None)."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist a new job."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def update_job(self, job_id: str, **fields: Any) -> JobRecord | None:
    """Apply partial updates to a job."""

  async def latest_job_for_document(self, document_id: str) -> JobRecord | None:
    """Return the most recently created job for a document."""

  async def acquire_job_lease(self, job_id: str, token: str, ttl_seconds: int) -> JobRecord | None:
    """Take the per-job mutation lease."""

  async def release_job_lease(self, job_id: str, token: str) -> None:
    """Release the per-job lease if `token` still holds it."""

  async def renew_job_lease(self, job_id: str, token: str, ttl_seconds: int) -> bool:
    """Push the job lease expiry forward; False when `token` no longer holds it."""

  async def create_sections(self, records: list[SectionRecord]) -> None:
    """Persist all sections of a document at once."""

  async def list_sections(self, document_id: str) -> list[SectionRecord]:
    """Return the document's sections ordered by index."""

  async def get_section(self, section_id: str) -> SectionRecord | None:
    """Fetch a section by identifier."""

  async def update_section(self, section_id: str, **fields: Any) -> SectionRecord | None:
    """Apply partial updates to a section."""

  async def delete_sections(self, document_id: str) -> int:
    """Delete every section of a document; returns the number removed."""

  async def acquire_section_lease(self, section_id: str, token: str, ttl_seconds: int) -> SectionRecord | None:
    """Take the per-section write lease."""

  async def release_section_lease(self, section_id: str, token: str) -> None:
    """Release the per-section lease if `token` still holds it."""

  async def renew_section_lease(self, section_id: str, token: str, ttl_seconds: int) -> bool:
    """Push the section lease expiry forward; False when `token` no longer holds it."""

  async def list_assets(self, document_id: str, kind: AssetKind | None = None) -> list[ImageAssetRecord]:
    """Return the document's image assets, newest first."""

  async def add_asset_capped(self, record: ImageAssetRecord, cap: int) -> ImageAssetRecord | None:
    """Insert the asset unless the document already holds `cap` assets of its kind."""

  async def get_asset(self, asset_id: str) -> ImageAssetRecord | None:
    """Fetch an asset by identifier."""

  async def update_asset(self, asset_id: str, **fields: Any) -> ImageAssetRecord | None:
    """Apply partial updates to an asset."""

  async def delete_asset(self, asset_id: str) -> bool:
    """Delete an asset; returns False when it did not exist."""

  async def acquire_media_lease(self, document_id: str, token: str, ttl_seconds: int) -> bool:
    """Take the per-document media batch lease."""

  async def release_media_lease(self, document_id: str, token: str) -> None:
    """Release the media lease if `token` still holds it."""

  async def renew_media_lease(self, document_id: str, token: str, ttl_seconds: int) -> bool:
    """Push the media lease expiry forward; False when `token` no longer holds it."""

  async def add_knowledge_item(self, record: KnowledgeItemRecord) -> None:
    """Persist a knowledge item."""

  async def list_knowledge_items(self, document_id: str) -> list[KnowledgeItemRecord]:
    """Return the document's knowledge items, oldest first."""

  async def upsert_reference(self, record: ReferenceRecord) -> None:
    """Insert or replace the reference for (document_id, url)."""

  async def list_references(self, document_id: str) -> list[ReferenceRecord]:
    """Return the document's references, oldest first."""
