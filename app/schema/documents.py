from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class Document(Base):
  __tablename__ = "documents"
  __table_args__ = (Index("ix_documents_owner_created", "owner_id", "created_at"),)

  document_id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  request_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  outline_markdown: Mapped[str | None] = mapped_column(Text, nullable=True)
  body: Mapped[str | None] = mapped_column(Text, nullable=True)
  media_lease_token: Mapped[str | None] = mapped_column(String, nullable=True)
  media_lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)


class Job(Base):
  __tablename__ = "document_jobs"
  __table_args__ = (Index("ix_document_jobs_document_created", "document_id", "created_at"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  document_id: Mapped[str] = mapped_column(ForeignKey("documents.document_id", ondelete="CASCADE"), nullable=False, index=True)
  topology: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  step: Mapped[str] = mapped_column(String, nullable=False)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  cursor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  lease_token: Mapped[str | None] = mapped_column(String, nullable=True)
  lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  finished_at: Mapped[str | None] = mapped_column(String, nullable=True)


class Section(Base):
  __tablename__ = "document_sections"
  __table_args__ = (UniqueConstraint("document_id", "section_index", name="ux_document_sections_document_index"),)

  section_id: Mapped[str] = mapped_column(String, primary_key=True)
  document_id: Mapped[str] = mapped_column(ForeignKey("documents.document_id", ondelete="CASCADE"), nullable=False, index=True)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  section_index: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  heading_path: Mapped[str | None] = mapped_column(Text, nullable=True)
  planned_chars: Mapped[int] = mapped_column(Integer, nullable=False, default=2000)
  prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
  content: Mapped[str | None] = mapped_column(Text, nullable=True)
  consistency: Mapped[str | None] = mapped_column(Text, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  rewrite_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  lease_token: Mapped[str | None] = mapped_column(String, nullable=True)
  lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)


class DocumentImage(Base):
  """Banner and diagram assets; object bytes live in asset storage."""

  __tablename__ = "document_images"
  __table_args__ = (Index("ix_document_images_document_kind", "document_id", "kind"),)

  asset_id: Mapped[str] = mapped_column(String, primary_key=True)
  document_id: Mapped[str] = mapped_column(ForeignKey("documents.document_id", ondelete="CASCADE"), nullable=False)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  prompt: Mapped[str] = mapped_column(Text, nullable=False)
  file_path: Mapped[str] = mapped_column(Text, nullable=False)
  mime_type: Mapped[str] = mapped_column(String, nullable=False)
  width: Mapped[int | None] = mapped_column(Integer, nullable=True)
  height: Mapped[int | None] = mapped_column(Integer, nullable=True)
  size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)


class KnowledgeItem(Base):
  __tablename__ = "knowledge_items"

  item_id: Mapped[str] = mapped_column(String, primary_key=True)
  document_id: Mapped[str] = mapped_column(ForeignKey("documents.document_id", ondelete="CASCADE"), nullable=False, index=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  source_urls: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)


class ReferenceSource(Base):
  __tablename__ = "reference_sources"
  __table_args__ = (UniqueConstraint("document_id", "url", name="ux_reference_sources_document_url"),)

  reference_id: Mapped[str] = mapped_column(String, primary_key=True)
  document_id: Mapped[str] = mapped_column(ForeignKey("documents.document_id", ondelete="CASCADE"), nullable=False, index=True)
  url: Mapped[str] = mapped_column(Text, nullable=False)
  title: Mapped[str] = mapped_column(Text, nullable=False, default="")
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  headings: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
  extracted_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
  summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
  insights: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  fetched_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_NOW_ISO)
