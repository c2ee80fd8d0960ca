from __future__ import annotations

from functools import lru_cache

from app.storage.documents_repo import DocumentsRepository
from app.storage.postgres_documents_repo import PostgresDocumentsRepository


@lru_cache(maxsize=1)
def get_documents_repo() -> DocumentsRepository:
  """Process-wide documents repository bound to the configured database."""
  return PostgresDocumentsRepository()
