from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status

from app.api.deps import get_ready_pipeline
from app.api.models import AdvanceTaskPayload
from app.config import Settings, get_settings
from app.jobs.driver import advance_and_requeue
from app.services.pipeline import Pipeline

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


@router.post("/advance-job", status_code=status.HTTP_200_OK)
async def advance_job_task(
  payload: AdvanceTaskPayload,
  background_tasks: BackgroundTasks,
  settings: Annotated[Settings, Depends(get_settings)],
  pipeline: Annotated[Pipeline, Depends(get_ready_pipeline)],
  x_longform_task_secret: str | None = Header(default=None),
) -> dict[str, str]:
  """
  Handler for Cloud Tasks (and local simulation).
  Accepts the task quickly and advances the job in the background, re-enqueueing until it is terminal.
  """
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  if not secrets.compare_digest(x_longform_task_secret or "", settings.task_secret):
    logger.warning("Unauthorized access attempt to /advance-job")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")

  logger.info("Received advance task for job %s", payload.job_id)
  background_tasks.add_task(advance_and_requeue, pipeline.orchestrator, pipeline.enqueuer, payload.job_id, delay_seconds=settings.advance_interval_seconds)
  return {"status": "accepted"}
