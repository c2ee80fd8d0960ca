from __future__ import annotations

from collections.abc import Iterator
from contextlib import asynccontextmanager
from typing import Any

import pytest

from app.core import bootstrap
from app.core.database import Base


class _Connection:
  def __init__(self, engine: _Engine) -> None:
    self._engine = engine

  async def run_sync(self, fn: Any) -> None:
    self._engine.run_sync_calls.append(fn)


class _Engine:
  """Stands in for AsyncEngine.begin(); the first `failures` attempts lose the connection."""

  def __init__(self, failures: int = 0) -> None:
    self.failures = failures
    self.begin_calls = 0
    self.run_sync_calls: list[Any] = []

  @asynccontextmanager
  async def begin(self):
    self.begin_calls += 1
    if self.begin_calls <= self.failures:
      raise ConnectionError("connection refused")
    yield _Connection(self)


async def _no_sleep(_seconds: float) -> None:
  return None


@pytest.fixture(autouse=True)
def _reset_schema_state() -> Iterator[None]:
  bootstrap.reset_schema_state()
  yield
  bootstrap.reset_schema_state()


def test_document_tables_are_registered() -> None:
  assert {"documents", "document_jobs", "document_sections", "document_images", "knowledge_items", "reference_sources"} <= set(Base.metadata.tables)


@pytest.mark.anyio
async def test_ensure_schema_runs_once() -> None:
  engine = _Engine()

  await bootstrap.ensure_schema(engine=engine, sleep=_no_sleep)  # type: ignore[arg-type]
  await bootstrap.ensure_schema(engine=engine, sleep=_no_sleep)  # type: ignore[arg-type]

  assert bootstrap.is_schema_ready()
  assert engine.begin_calls == 1
  assert engine.run_sync_calls == [Base.metadata.create_all]


@pytest.mark.anyio
async def test_ensure_schema_retries_transient_failures() -> None:
  engine = _Engine(failures=2)

  await bootstrap.ensure_schema(engine=engine, sleep=_no_sleep)  # type: ignore[arg-type]

  assert engine.begin_calls == 3
  assert bootstrap.is_schema_ready()


@pytest.mark.anyio
async def test_ensure_schema_failure_leaves_state_unset() -> None:
  engine = _Engine(failures=10)

  with pytest.raises(ConnectionError):
    await bootstrap.ensure_schema(engine=engine, max_attempts=2, sleep=_no_sleep)  # type: ignore[arg-type]

  assert not bootstrap.is_schema_ready()
  await bootstrap.ensure_schema(engine=_Engine(), sleep=_no_sleep)  # type: ignore[arg-type]
  assert bootstrap.is_schema_ready()
