"""One-time, memoized creation of the storage schema before first use."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

import app.schema.documents  # noqa: F401
from app.core.database import Base, get_db_engine
from app.utils.db_retry import execute_with_retry

logger = logging.getLogger(__name__)

_ready = False
_lock: asyncio.Lock | None = None


def _get_lock() -> asyncio.Lock:
  global _lock
  if _lock is None:
    _lock = asyncio.Lock()
  return _lock


def is_schema_ready() -> bool:
  return _ready


def reset_schema_state() -> None:
  """Forget readiness so the next caller bootstraps again."""
  global _ready, _lock
  _ready = False
  _lock = None


async def ensure_schema(*, engine: AsyncEngine | None = None, max_attempts: int = 5, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
  """
  Create missing tables once per process.

  Concurrent callers wait on the same lock and return once the first one
  finishes. Transient infrastructure errors are retried with backoff; a final
  failure leaves the flag unset so the next caller tries again.
  """
  global _ready
  if _ready:
    return

  async with _get_lock():
    if _ready:
      return

    db_engine = engine or get_db_engine()
    if db_engine is None:
      raise RuntimeError("Database connection is not configured (LONGFORM_PG_DSN is missing).")

    async def _create_all() -> None:
      async with db_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    await execute_with_retry(operation_name="ensure_schema", func=_create_all, max_attempts=max_attempts, initial_backoff_ms=500, max_backoff_ms=5000, sleep=sleep)
    _ready = True
    logger.info("Storage schema ready.")
