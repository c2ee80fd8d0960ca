"""Domain models for resumable document generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["queued", "running", "done", "error"]
SectionStatus = Literal["pending", "generating", "written", "reviewed", "failed"]
DocumentStatus = Literal["draft", "running", "done", "error"]
AssetKind = Literal["BANNER", "DIAGRAM"]

TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"done", "error"})
ASSET_CAPS: dict[str, int] = {"BANNER": 4, "DIAGRAM": 10}


@dataclass
class DocumentRecord:
  """A document and its generated artifacts."""

  document_id: str
  owner_id: str
  title: str
  status: DocumentStatus
  request: dict[str, Any]
  created_at: str
  updated_at: str
  outline_markdown: str | None = None
  body: str | None = None
  media_lease_token: str | None = None
  media_lease_expires_at: datetime | None = None


@dataclass
class JobRecord:
  """Represents one end-to-end generation run for a document."""

  job_id: str
  document_id: str
  topology: str
  status: JobStatus
  step: str
  created_at: str
  updated_at: str
  progress: int = 0
  cursor: int = 0
  error: str | None = None
  started_at: str | None = None
  finished_at: str | None = None
  lease_token: str | None = None
  lease_expires_at: datetime | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_JOB_STATUSES


@dataclass
class SectionRecord:
  """One independently generated unit of the final document."""

  section_id: str
  document_id: str
  index: int
  status: SectionStatus
  created_at: str
  updated_at: str
  job_id: str | None = None
  heading_path: str | None = None
  planned_chars: int = 2000
  prompt: str | None = None
  content: str | None = None
  consistency: str | None = None
  error: str | None = None
  rewrite_count: int = 0
  lease_token: str | None = None
  lease_expires_at: datetime | None = None


@dataclass(frozen=True)
class SectionSnapshot:
  index: int
  section_id: str
  status: SectionStatus
  heading_path: str | None
  error: str | None = None


@dataclass(frozen=True)
class JobSnapshot:
  """What a caller sees after every advance: job state plus per-section status."""

  job_id: str
  document_id: str
  topology: str
  status: JobStatus
  step: str
  progress: int
  cursor: int
  error: str | None
  created_at: str
  started_at: str | None
  finished_at: str | None
  sections: list[SectionSnapshot] = field(default_factory=list)

  @classmethod
  def build(cls, job: JobRecord, sections: list[SectionRecord]) -> JobSnapshot:
    ordered = sorted(sections, key=lambda section: section.index)
    return cls(
      job_id=job.job_id,
      document_id=job.document_id,
      topology=job.topology,
      status=job.status,
      step=job.step,
      progress=job.progress,
      cursor=job.cursor,
      error=job.error,
      created_at=job.created_at,
      started_at=job.started_at,
      finished_at=job.finished_at,
      sections=[SectionSnapshot(index=s.index, section_id=s.section_id, status=s.status, heading_path=s.heading_path, error=s.error) for s in ordered],
    )
