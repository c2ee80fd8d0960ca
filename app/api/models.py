from __future__ import annotations

from typing import Any

import msgspec
from pydantic import BaseModel, ConfigDict, Field

from app.ai.pipeline.contracts import DocumentRequest
from app.jobs.models import DocumentRecord, DocumentStatus, JobSnapshot, JobStatus, SectionRecord, SectionStatus
from app.storage.documents_repo import ImageAssetRecord, KnowledgeItemRecord


class CreateDocumentRequest(DocumentRequest):
  """Document request plus whether to start generation immediately."""

  create_job: bool = Field(default=True, description="Start a generation job right away.")

  def to_document_request(self) -> DocumentRequest:
    return DocumentRequest.model_validate(self.model_dump(exclude={"create_job"}))


class StartJobRequest(BaseModel):
  reset_sections: bool = Field(default=True, description="Clear outline, sections and body before starting.")
  model_config = ConfigDict(extra="forbid")


class DocumentResponse(BaseModel):
  document_id: str
  title: str
  status: DocumentStatus
  request: dict[str, Any]
  outline_markdown: str | None = None
  body: str | None = None
  created_at: str
  updated_at: str

  @classmethod
  def from_record(cls, record: DocumentRecord) -> DocumentResponse:
    return cls(
      document_id=record.document_id,
      title=record.title,
      status=record.status,
      request=record.request,
      outline_markdown=record.outline_markdown,
      body=record.body,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )


class DocumentSummary(BaseModel):
  document_id: str
  title: str
  status: DocumentStatus
  created_at: str
  updated_at: str


class DocumentListResponse(BaseModel):
  items: list[DocumentSummary]


class SectionStatusResponse(BaseModel):
  index: int
  section_id: str
  status: SectionStatus
  heading_path: str | None = None
  error: str | None = None


class JobSnapshotResponse(BaseModel):
  """Job state as seen by pollers after each advance."""

  job_id: str
  document_id: str
  topology: str
  status: JobStatus
  step: str
  progress: int
  cursor: int
  error: str | None = None
  created_at: str
  started_at: str | None = None
  finished_at: str | None = None
  sections: list[SectionStatusResponse] = Field(default_factory=list)

  @classmethod
  def from_snapshot(cls, snapshot: JobSnapshot) -> JobSnapshotResponse:
    return cls(
      job_id=snapshot.job_id,
      document_id=snapshot.document_id,
      topology=snapshot.topology,
      status=snapshot.status,
      step=snapshot.step,
      progress=snapshot.progress,
      cursor=snapshot.cursor,
      error=snapshot.error,
      created_at=snapshot.created_at,
      started_at=snapshot.started_at,
      finished_at=snapshot.finished_at,
      sections=[SectionStatusResponse(index=s.index, section_id=s.section_id, status=s.status, heading_path=s.heading_path, error=s.error) for s in snapshot.sections],
    )


class DocumentCreateResponse(BaseModel):
  document: DocumentResponse
  job: JobSnapshotResponse | None = None


class SectionResponse(BaseModel):
  section_id: str
  document_id: str
  index: int
  status: SectionStatus
  heading_path: str | None = None
  planned_chars: int
  content: str | None = None
  consistency: str | None = None
  error: str | None = None
  rewrite_count: int = 0
  updated_at: str

  @classmethod
  def from_record(cls, record: SectionRecord) -> SectionResponse:
    return cls(
      section_id=record.section_id,
      document_id=record.document_id,
      index=record.index,
      status=record.status,
      heading_path=record.heading_path,
      planned_chars=record.planned_chars,
      content=record.content,
      consistency=record.consistency,
      error=record.error,
      rewrite_count=record.rewrite_count,
      updated_at=record.updated_at,
    )


class ResearchResponse(BaseModel):
  document_id: str
  stored: int


class AdvanceTaskPayload(BaseModel):
  job_id: str


class AssetList(msgspec.Struct):
  """Asset gallery with per-kind counts."""

  document_id: str
  items: list[ImageAssetRecord]
  counts: dict[str, int]

  @classmethod
  def build(cls, document_id: str, items: list[ImageAssetRecord]) -> AssetList:
    counts = {"BANNER": 0, "DIAGRAM": 0}
    for item in items:
      counts[item.kind] = counts.get(item.kind, 0) + 1
    return cls(document_id=document_id, items=items, counts=counts)


class KnowledgeList(msgspec.Struct):
  document_id: str
  items: list[KnowledgeItemRecord]
