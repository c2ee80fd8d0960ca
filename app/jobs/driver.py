"""In-process driver that advances a job until it reaches a terminal state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from app.jobs.errors import JobNotFoundError
from app.jobs.models import TERMINAL_JOB_STATUSES, JobSnapshot
from app.jobs.orchestrator import JobOrchestrator
from app.services.tasks.interface import TaskEnqueuer

logger = logging.getLogger(__name__)


async def drive_job(orchestrator: JobOrchestrator, job_id: str, *, max_steps: int = 500, interval_seconds: float = 0.0, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> JobSnapshot:
  """Call advance until the job is done or errored, or until max_steps calls were spent."""
  snapshot = await orchestrator.snapshot(job_id)
  steps = 0
  while snapshot.status not in TERMINAL_JOB_STATUSES and steps < max_steps:
    snapshot = await orchestrator.advance(job_id)
    steps += 1
    if snapshot.status not in TERMINAL_JOB_STATUSES and interval_seconds > 0:
      await sleep(interval_seconds)

  if snapshot.status not in TERMINAL_JOB_STATUSES:
    logger.warning("Job %s still %s after %d advance calls (step=%s).", job_id, snapshot.status, steps, snapshot.step)
  return snapshot


async def advance_and_requeue(orchestrator: JobOrchestrator, enqueuer: TaskEnqueuer | None, job_id: str, *, delay_seconds: float = 0.0) -> JobSnapshot | None:
  """Task-driver body: advance once, then schedule the next advance until the job is terminal."""
  try:
    snapshot = await orchestrator.advance(job_id)
  except JobNotFoundError:
    logger.warning("Advance task for unknown job %s dropped.", job_id)
    return None

  if snapshot.status in TERMINAL_JOB_STATUSES:
    logger.info("Job %s reached %s; task chain finished.", job_id, snapshot.status)
  elif enqueuer is not None:
    await enqueuer.enqueue_advance(job_id, delay_seconds=delay_seconds)
  return snapshot
