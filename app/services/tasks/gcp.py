from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta

from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.services.tasks.interface import ADVANCE_JOB_PATH, TASK_SECRET_HEADER, TaskEnqueuer

logger = logging.getLogger(__name__)


class CloudTasksEnqueuer(TaskEnqueuer):
  """Enqueues advance tasks to Google Cloud Tasks."""

  def __init__(self, settings: Settings, client: tasks_v2.CloudTasksClient | None = None) -> None:
    self.settings = settings
    self.client = client or tasks_v2.CloudTasksClient()

  def build_task(self, job_id: str, *, delay_seconds: float = 0.0) -> dict:
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured, strictly required for CloudTasksEnqueuer.")
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")

    url = f"{self.settings.base_url.rstrip('/')}{ADVANCE_JOB_PATH}"
    task: dict = {
      "http_request": {
        "http_method": tasks_v2.HttpMethod.POST,
        "url": url,
        "headers": {"Content-Type": "application/json", TASK_SECRET_HEADER: self.settings.task_secret},
        "body": json.dumps({"job_id": job_id}).encode(),
      }
    }
    if delay_seconds > 0:
      schedule_time = timestamp_pb2.Timestamp()
      schedule_time.FromDatetime(datetime.now(UTC) + timedelta(seconds=delay_seconds))
      task["schedule_time"] = schedule_time
    return task

  async def enqueue_advance(self, job_id: str, *, delay_seconds: float = 0.0) -> None:
    task = self.build_task(job_id, delay_seconds=delay_seconds)
    parent = self.settings.cloud_tasks_queue_path
    # The client is synchronous; keep the event loop free while it talks to the API.
    response = await run_in_threadpool(self.client.create_task, request={"parent": parent, "task": task})
    logger.info("Enqueued task %s for job %s", response.name, job_id)
