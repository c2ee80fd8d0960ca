"""Postgres-backed repository for documents, jobs, sections and their artifacts."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.jobs.models import AssetKind, DocumentRecord, JobRecord, SectionRecord
from app.schema.documents import Document, DocumentImage, Job, KnowledgeItem, ReferenceSource, Section
from app.storage.documents_repo import DocumentsRepository, ImageAssetRecord, KnowledgeItemRecord, ReferenceRecord
from app.utils.db_retry import execute_with_retry

T = TypeVar("T")

# Record field name -> ORM attribute name where they differ.
_DOCUMENT_COLUMNS = {"request": "request_json"}
_SECTION_COLUMNS = {"index": "section_index"}


def _expires_at(ttl_seconds: int) -> datetime:
  return datetime.now(UTC) + timedelta(seconds=ttl_seconds)


def _lease_free(model: Any, now: datetime) -> Any:
  return or_(model.lease_token.is_(None), model.lease_expires_at.is_(None), model.lease_expires_at < now)


def _columns(fields: dict[str, Any], renames: dict[str, str]) -> dict[str, Any]:
  return {renames.get(key, key): value for key, value in fields.items()}


class PostgresDocumentsRepository(DocumentsRepository):
  """Persist the document pipeline to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def _run(self, operation_name: str, func_: Callable[[], Awaitable[T]]) -> T:
    return await execute_with_retry(operation_name=operation_name, func=func_)

  # Documents

  async def create_document(self, record: DocumentRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        Document(
          document_id=record.document_id,
          owner_id=record.owner_id,
          title=record.title,
          status=record.status,
          request_json=record.request,
          outline_markdown=record.outline_markdown,
          body=record.body,
          created_at=record.created_at,
          updated_at=record.updated_at,
        )
      )
      await session.commit()

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Document, document_id)
      return self._document_to_record(row) if row is not None else None

  async def list_documents(self, owner_id: str, *, limit: int = 50) -> list[DocumentRecord]:
    async with self._session_factory() as session:
      stmt = select(Document).where(Document.owner_id == owner_id).order_by(Document.created_at.desc(), Document.document_id.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._document_to_record(row) for row in rows]

  async def update_document(self, document_id: str, **fields: Any) -> DocumentRecord | None:
    async def _update() -> DocumentRecord | None:
      async with self._session_factory() as session:
        stmt = update(Document).where(Document.document_id == document_id).values(**_columns(fields, _DOCUMENT_COLUMNS)).returning(Document)
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return self._document_to_record(row) if row is not None else None

    return await self._run("update_document", _update)

  async def count_documents_since(self, owner_id: str, since: datetime | None) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(Document).where(Document.owner_id == owner_id)
      if since is not None:
        stmt = stmt.where(Document.created_at >= since.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"))
      return int((await session.execute(stmt)).scalar_one())

  async def acquire_media_lease(self, document_id: str, token: str, ttl_seconds: int) -> bool:
    async def _acquire() -> bool:
      async with self._session_factory() as session:
        now = datetime.now(UTC)
        stmt = (
          update(Document)
          .where(Document.document_id == document_id, or_(Document.media_lease_token.is_(None), Document.media_lease_expires_at.is_(None), Document.media_lease_expires_at < now))
          .values(media_lease_token=token, media_lease_expires_at=_expires_at(ttl_seconds))
          .returning(Document.document_id)
        )
        acquired = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return acquired is not None

    return await self._run("acquire_media_lease", _acquire)

  async def release_media_lease(self, document_id: str, token: str) -> None:
    async def _release() -> None:
      async with self._session_factory() as session:
        await session.execute(update(Document).where(Document.document_id == document_id, Document.media_lease_token == token).values(media_lease_token=None, media_lease_expires_at=None))
        await session.commit()

    await self._run("release_media_lease", _release)

  async def renew_media_lease(self, document_id: str, token: str, ttl_seconds: int) -> bool:
    async def _renew() -> bool:
      async with self._session_factory() as session:
        stmt = update(Document).where(Document.document_id == document_id, Document.media_lease_token == token).values(media_lease_expires_at=_expires_at(ttl_seconds)).returning(Document.document_id)
        renewed = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return renewed is not None

    return await self._run("renew_media_lease", _renew)

  # Jobs

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        Job(
          job_id=record.job_id,
          document_id=record.document_id,
          topology=record.topology,
          status=record.status,
          step=record.step,
          progress=record.progress,
          cursor=record.cursor,
          error=record.error,
          created_at=record.created_at,
          updated_at=record.updated_at,
          started_at=record.started_at,
          finished_at=record.finished_at,
        )
      )
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      return self._job_to_record(row) if row is not None else None

  async def update_job(self, job_id: str, **fields: Any) -> JobRecord | None:
    async def _update() -> JobRecord | None:
      async with self._session_factory() as session:
        row = (await session.execute(update(Job).where(Job.job_id == job_id).values(**fields).returning(Job))).scalar_one_or_none()
        await session.commit()
        return self._job_to_record(row) if row is not None else None

    return await self._run("update_job", _update)

  async def latest_job_for_document(self, document_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(Job).where(Job.document_id == document_id).order_by(Job.created_at.desc(), Job.job_id.desc()).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      return self._job_to_record(row) if row is not None else None

  async def acquire_job_lease(self, job_id: str, token: str, ttl_seconds: int) -> JobRecord | None:
    async def _acquire() -> JobRecord | None:
      async with self._session_factory() as session:
        stmt = update(Job).where(Job.job_id == job_id, _lease_free(Job, datetime.now(UTC))).values(lease_token=token, lease_expires_at=_expires_at(ttl_seconds)).returning(Job)
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return self._job_to_record(row) if row is not None else None

    return await self._run("acquire_job_lease", _acquire)

  async def release_job_lease(self, job_id: str, token: str) -> None:
    async def _release() -> None:
      async with self._session_factory() as session:
        await session.execute(update(Job).where(Job.job_id == job_id, Job.lease_token == token).values(lease_token=None, lease_expires_at=None))
        await session.commit()

    await self._run("release_job_lease", _release)

  async def renew_job_lease(self, job_id: str, token: str, ttl_seconds: int) -> bool:
    async def _renew() -> bool:
      async with self._session_factory() as session:
        stmt = update(Job).where(Job.job_id == job_id, Job.lease_token == token).values(lease_expires_at=_expires_at(ttl_seconds)).returning(Job.job_id)
        renewed = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return renewed is not None

    return await self._run("renew_job_lease", _renew)

  # Sections

  async def create_sections(self, records: list[SectionRecord]) -> None:
    async with self._session_factory() as session:
      session.add_all(
        [
          Section(
            section_id=record.section_id,
            document_id=record.document_id,
            job_id=record.job_id,
            section_index=record.index,
            status=record.status,
            heading_path=record.heading_path,
            planned_chars=record.planned_chars,
            prompt=record.prompt,
            content=record.content,
            consistency=record.consistency,
            error=record.error,
            rewrite_count=record.rewrite_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
          )
          for record in records
        ]
      )
      await session.commit()

  async def list_sections(self, document_id: str) -> list[SectionRecord]:
    async with self._session_factory() as session:
      rows = (await session.execute(select(Section).where(Section.document_id == document_id).order_by(Section.section_index.asc()))).scalars().all()
      return [self._section_to_record(row) for row in rows]

  async def get_section(self, section_id: str) -> SectionRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Section, section_id)
      return self._section_to_record(row) if row is not None else None

  async def update_section(self, section_id: str, **fields: Any) -> SectionRecord | None:
    async def _update() -> SectionRecord | None:
      async with self._session_factory() as session:
        stmt = update(Section).where(Section.section_id == section_id).values(**_columns(fields, _SECTION_COLUMNS)).returning(Section)
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return self._section_to_record(row) if row is not None else None

    return await self._run("update_section", _update)

  async def delete_sections(self, document_id: str) -> int:
    async with self._session_factory() as session:
      result = await session.execute(delete(Section).where(Section.document_id == document_id))
      await session.commit()
      return int(result.rowcount or 0)

  async def acquire_section_lease(self, section_id: str, token: str, ttl_seconds: int) -> SectionRecord | None:
    async def _acquire() -> SectionRecord | None:
      async with self._session_factory() as session:
        stmt = update(Section).where(Section.section_id == section_id, _lease_free(Section, datetime.now(UTC))).values(lease_token=token, lease_expires_at=_expires_at(ttl_seconds)).returning(Section)
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return self._section_to_record(row) if row is not None else None

    return await self._run("acquire_section_lease", _acquire)

  async def release_section_lease(self, section_id: str, token: str) -> None:
    async def _release() -> None:
      async with self._session_factory() as session:
        await session.execute(update(Section).where(Section.section_id == section_id, Section.lease_token == token).values(lease_token=None, lease_expires_at=None))
        await session.commit()

    await self._run("release_section_lease", _release)

  async def renew_section_lease(self, section_id: str, token: str, ttl_seconds: int) -> bool:
    async def _renew() -> bool:
      async with self._session_factory() as session:
        stmt = update(Section).where(Section.section_id == section_id, Section.lease_token == token).values(lease_expires_at=_expires_at(ttl_seconds)).returning(Section.section_id)
        renewed = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return renewed is not None

    return await self._run("renew_section_lease", _renew)

  # Assets

  async def list_assets(self, document_id: str, kind: AssetKind | None = None) -> list[ImageAssetRecord]:
    async with self._session_factory() as session:
      stmt = select(DocumentImage).where(DocumentImage.document_id == document_id)
      if kind is not None:
        stmt = stmt.where(DocumentImage.kind == kind)
      rows = (await session.execute(stmt.order_by(DocumentImage.created_at.desc(), DocumentImage.asset_id.desc()))).scalars().all()
      return [self._asset_to_record(row) for row in rows]

  async def add_asset_capped(self, record: ImageAssetRecord, cap: int) -> ImageAssetRecord | None:
    async def _insert() -> ImageAssetRecord | None:
      async with self._session_factory() as session:
        # The document row lock serializes concurrent inserts for the same document.
        locked = (await session.execute(select(Document.document_id).where(Document.document_id == record.document_id).with_for_update())).scalar_one_or_none()
        if locked is None:
          await session.rollback()
          return None
        count_stmt = select(func.count()).select_from(DocumentImage).where(DocumentImage.document_id == record.document_id, DocumentImage.kind == record.kind)
        if int((await session.execute(count_stmt)).scalar_one()) >= cap:
          await session.rollback()
          return None
        session.add(
          DocumentImage(
            asset_id=record.asset_id,
            document_id=record.document_id,
            kind=record.kind,
            title=record.title,
            description=record.description,
            prompt=record.prompt,
            file_path=record.file_path,
            mime_type=record.mime_type,
            width=record.width,
            height=record.height,
            size_bytes=record.size_bytes,
            created_at=record.created_at,
          )
        )
        await session.commit()
        return record

    return await self._run("add_asset_capped", _insert)

  async def get_asset(self, asset_id: str) -> ImageAssetRecord | None:
    async with self._session_factory() as session:
      row = await session.get(DocumentImage, asset_id)
      return self._asset_to_record(row) if row is not None else None

  async def update_asset(self, asset_id: str, **fields: Any) -> ImageAssetRecord | None:
    async with self._session_factory() as session:
      row = (await session.execute(update(DocumentImage).where(DocumentImage.asset_id == asset_id).values(**fields).returning(DocumentImage))).scalar_one_or_none()
      await session.commit()
      return self._asset_to_record(row) if row is not None else None

  async def delete_asset(self, asset_id: str) -> bool:
    async with self._session_factory() as session:
      result = await session.execute(delete(DocumentImage).where(DocumentImage.asset_id == asset_id))
      await session.commit()
      return bool(result.rowcount)

  # Knowledge items and references

  async def add_knowledge_item(self, record: KnowledgeItemRecord) -> None:
    async with self._session_factory() as session:
      session.add(KnowledgeItem(item_id=record.item_id, document_id=record.document_id, owner_id=record.owner_id, kind=record.kind, title=record.title, content=record.content, source_urls=list(record.source_urls), created_at=record.created_at))
      await session.commit()

  async def list_knowledge_items(self, document_id: str) -> list[KnowledgeItemRecord]:
    async with self._session_factory() as session:
      rows = (await session.execute(select(KnowledgeItem).where(KnowledgeItem.document_id == document_id).order_by(KnowledgeItem.created_at.asc(), KnowledgeItem.item_id.asc()))).scalars().all()
      return [
        KnowledgeItemRecord(item_id=row.item_id, document_id=row.document_id, owner_id=row.owner_id, kind=row.kind, title=row.title, content=row.content, created_at=row.created_at, source_urls=list(row.source_urls or []))
        for row in rows
      ]

  async def upsert_reference(self, record: ReferenceRecord) -> None:
    values = {
      "reference_id": record.reference_id,
      "document_id": record.document_id,
      "url": record.url,
      "title": record.title,
      "description": record.description,
      "headings": list(record.headings),
      "extracted_text": record.extracted_text,
      "summary": record.summary,
      "insights": dict(record.insights),
      "fetched_at": record.fetched_at,
    }
    stmt = pg_insert(ReferenceSource).values(**values)
    # Keep the original reference_id when the url was already researched.
    refreshed = {key: stmt.excluded[key] for key in values if key not in ("reference_id", "document_id", "url")}
    stmt = stmt.on_conflict_do_update(constraint="ux_reference_sources_document_url", set_=refreshed)

    async def _upsert() -> None:
      async with self._session_factory() as session:
        await session.execute(stmt)
        await session.commit()

    await self._run("upsert_reference", _upsert)

  async def list_references(self, document_id: str) -> list[ReferenceRecord]:
    async with self._session_factory() as session:
      rows = (await session.execute(select(ReferenceSource).where(ReferenceSource.document_id == document_id).order_by(ReferenceSource.fetched_at.asc(), ReferenceSource.url.asc()))).scalars().all()
      return [
        ReferenceRecord(
          reference_id=row.reference_id,
          document_id=row.document_id,
          url=row.url,
          fetched_at=row.fetched_at,
          title=row.title,
          description=row.description,
          headings=list(row.headings or []),
          extracted_text=row.extracted_text,
          summary=row.summary,
          insights=dict(row.insights or {}),
        )
        for row in rows
      ]

  def _document_to_record(self, row: Document) -> DocumentRecord:
    return DocumentRecord(
      document_id=row.document_id,
      owner_id=row.owner_id,
      title=row.title,
      status=row.status,  # type: ignore[arg-type]
      request=dict(row.request_json or {}),
      created_at=row.created_at,
      updated_at=row.updated_at,
      outline_markdown=row.outline_markdown,
      body=row.body,
      media_lease_token=row.media_lease_token,
      media_lease_expires_at=row.media_lease_expires_at,
    )

  def _job_to_record(self, row: Job) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      document_id=row.document_id,
      topology=row.topology,
      status=row.status,  # type: ignore[arg-type]
      step=row.step,
      created_at=row.created_at,
      updated_at=row.updated_at,
      progress=row.progress,
      cursor=row.cursor,
      error=row.error,
      started_at=row.started_at,
      finished_at=row.finished_at,
      lease_token=row.lease_token,
      lease_expires_at=row.lease_expires_at,
    )

  def _section_to_record(self, row: Section) -> SectionRecord:
    return SectionRecord(
      section_id=row.section_id,
      document_id=row.document_id,
      index=row.section_index,
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      job_id=row.job_id,
      heading_path=row.heading_path,
      planned_chars=row.planned_chars,
      prompt=row.prompt,
      content=row.content,
      consistency=row.consistency,
      error=row.error,
      rewrite_count=row.rewrite_count,
      lease_token=row.lease_token,
      lease_expires_at=row.lease_expires_at,
    )

  def _asset_to_record(self, row: DocumentImage) -> ImageAssetRecord:
    return ImageAssetRecord(
      asset_id=row.asset_id,
      document_id=row.document_id,
      kind=row.kind,  # type: ignore[arg-type]
      title=row.title,
      description=row.description,
      prompt=row.prompt,
      file_path=row.file_path,
      mime_type=row.mime_type,
      created_at=row.created_at,
      width=row.width,
      height=row.height,
      size_bytes=row.size_bytes,
    )
