from __future__ import annotations

from typing import Protocol


class TaskEnqueuer(Protocol):
  """Interface for scheduling job advancement outside the request path."""

  async def enqueue_advance(self, job_id: str, *, delay_seconds: float = 0.0) -> None:
    """Schedule one advance call for the job."""
    ...


TASK_SECRET_HEADER = "x-longform-task-secret"
ADVANCE_JOB_PATH = "/internal/tasks/advance-job"
