"""Bounded retry with exponential backoff for provider calls."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from app.ai.errors import RetryExhaustedError, classify_provider_error
from app.config import Settings

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
  """Retry budget for one provider call."""

  max_attempts: int = 3
  base_delay: float = 1.0
  max_delay: float = 30.0
  timeout: float | None = 120.0
  jitter: bool = True
  sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, compare=False, repr=False)

  @classmethod
  def from_settings(cls, settings: Settings, *, timeout: float | None = None) -> RetryPolicy:
    return cls(max_attempts=settings.retry_max_attempts, base_delay=settings.retry_base_delay_seconds, max_delay=settings.retry_max_delay_seconds, timeout=timeout if timeout is not None else settings.generation_timeout_seconds)

  def delay_for(self, attempt: int) -> float:
    """Return the backoff delay after the given (1-based) failed attempt."""
    delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
    if self.jitter and delay > 0:
      delay += random.uniform(0, delay * 0.25)
    return delay


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args: Any, policy: RetryPolicy, operation: str = "provider_call", **kwargs: Any) -> T:
  """
  Execute a provider call, retrying transient failures only.

  Each attempt is bounded by `policy.timeout`. Fatal and output errors are
  raised immediately; transient errors are retried until the attempt budget
  is spent, then surfaced as RetryExhaustedError.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      if policy.timeout is None:
        return await func(*args, **kwargs)
      return await asyncio.wait_for(func(*args, **kwargs), timeout=policy.timeout)
    except Exception as exc:  # noqa: BLE001
      classified = classify_provider_error(exc)
      if not classified.transient:
        if classified is exc:
          raise
        raise classified from exc

      if attempt >= policy.max_attempts:
        logger.error("%s exhausted %d attempts: %s", operation, attempt, classified)
        raise RetryExhaustedError(operation, attempt, classified) from exc

      delay = policy.delay_for(attempt)
      logger.warning("%s transient failure attempt %d/%d: %s. Retrying in %.2fs", operation, attempt, policy.max_attempts, classified, delay)
      await policy.sleep(delay)
