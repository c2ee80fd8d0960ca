"""Background renewal of job, section and media leases while long steps run."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

logger = logging.getLogger(__name__)

MIN_RENEW_INTERVAL_SECONDS = 0.05


class LeaseHeartbeat:
  """
  Keep a lease alive for as long as the `async with` block runs.

  `renew` is called every third of the TTL so a single missed renewal never
  lets the lease lapse. A renewal that reports the token is no longer held
  stops the heartbeat and sets `lost`; database errors are logged and retried
  on the next beat.
  """

  def __init__(self, renew: Callable[[], Awaitable[bool]], *, ttl_seconds: float, name: str, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
    self._renew = renew
    self._interval = max(MIN_RENEW_INTERVAL_SECONDS, ttl_seconds / 3)
    self._name = name
    self._sleep = sleep
    self._task: asyncio.Task[None] | None = None
    self.lost = False
    self.beats = 0

  async def __aenter__(self) -> LeaseHeartbeat:
    self._task = asyncio.create_task(self._run(), name=f"lease-heartbeat:{self._name}")
    return self

  async def __aexit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None) -> None:
    if self._task is None:
      return
    self._task.cancel()
    try:
      await self._task
    except asyncio.CancelledError:
      pass
    self._task = None

  async def _run(self) -> None:
    while True:
      await self._sleep(self._interval)
      try:
        held = await self._renew()
      except Exception:  # noqa: BLE001
        logger.warning("Lease renewal for %s failed; retrying on the next beat.", self._name, exc_info=True)
        continue
      self.beats += 1
      if not held:
        self.lost = True
        logger.warning("Lease for %s was lost before the step finished.", self._name)
        return
