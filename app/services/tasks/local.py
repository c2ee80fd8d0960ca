from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx

from app.config import Settings
from app.services.tasks.interface import ADVANCE_JOB_PATH, TASK_SECRET_HEADER, TaskEnqueuer

logger = logging.getLogger(__name__)


class LocalHttpEnqueuer(TaskEnqueuer):
  """Dispatches advance tasks via local HTTP requests to simulate Cloud Tasks."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self._pending: set[asyncio.Task[None]] = set()

  def _should_use_asgi_transport(self, base_url: str) -> bool:
    """Decide if we should route requests in-process via ASGITransport."""
    parsed = urlparse(base_url)
    hostname = (parsed.hostname or "").lower()
    return hostname in {"localhost", "127.0.0.1", "::1", "0.0.0.0"}

  def _build_client(self, base_url: str) -> httpx.AsyncClient:
    """Build an httpx client for local task dispatch."""
    # Never trust environment proxy variables for internal task dispatch.
    if self._should_use_asgi_transport(base_url):
      from app.main import app

      transport = httpx.ASGITransport(app=app)
      return httpx.AsyncClient(transport=transport, base_url=base_url, trust_env=False)
    return httpx.AsyncClient(trust_env=False)

  def _task_headers(self) -> dict[str, str]:
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")
    return {TASK_SECRET_HEADER: self.settings.task_secret}

  async def enqueue_advance(self, job_id: str, *, delay_seconds: float = 0.0) -> None:
    """Schedule the dispatch and return immediately, like a real queue would."""
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured, strictly required for LocalHttpEnqueuer.")
    headers = self._task_headers()
    task = asyncio.create_task(self._dispatch(job_id, headers, delay_seconds))
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)

  async def _dispatch(self, job_id: str, headers: dict[str, str], delay_seconds: float) -> None:
    if delay_seconds > 0:
      await asyncio.sleep(delay_seconds)
    base_url = self.settings.base_url or ""
    url = f"{base_url.rstrip('/')}{ADVANCE_JOB_PATH}"
    try:
      async with self._build_client(base_url) as client:
        logger.info("Dispatching advance task locally to %s job=%s", url, job_id)
        response = await client.post(url, json={"job_id": job_id}, headers=headers, timeout=60.0)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      logger.error("Local task dispatch returned %s for job %s: %s", exc.response.status_code, job_id, exc.response.text)
    except httpx.RequestError as exc:
      logger.error("Failed to dispatch local task for job %s: %s", job_id, exc)
