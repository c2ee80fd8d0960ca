"""Database retry helpers with retryable vs non-retryable failure classification."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

T = TypeVar("T")
logger = logging.getLogger(__name__)

# SQLSTATE codes (exact or class prefix) that indicate a transient condition.
_RETRYABLE_SQLSTATES: dict[str, str] = {
  "40001": "serialization_conflict",
  "40P01": "deadlock",
  "53300": "too_many_connections",
  "57P03": "cannot_connect_now",
  "08": "connection_exception",
}

# SQLSTATE class prefixes that will never succeed on retry.
_FATAL_SQLSTATE_CLASSES: dict[str, str] = {
  "23": "integrity_error",
  "42": "schema_error",
  "28": "permission_error",
}

_TRANSIENT_MESSAGE_HINTS: tuple[str, ...] = (
  "connection",
  "timeout",
  "reset",
  "network",
  "broken pipe",
  "too many clients",
  "max clients reached",
  "pool_size",
  "remaining connection slots",
)


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a database failure."""

  retryable: bool
  category: str
  sqlstate: str | None


def _extract_sqlstate(exc: Exception) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy-wrapped driver error."""
  if not isinstance(exc, DBAPIError):
    return None
  orig = getattr(exc, "orig", None)
  for attr in ("sqlstate", "pgcode"):
    value = getattr(orig, attr, None)
    if value:
      return str(value)
  return None


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """Classify a database failure as retryable or not, preferring SQLSTATE over message sniffing."""
  sqlstate = _extract_sqlstate(exc)
  if sqlstate:
    for code, category in _RETRYABLE_SQLSTATES.items():
      if sqlstate == code or (len(code) == 2 and sqlstate.startswith(code)):
        return DBFailureClassification(retryable=True, category=category, sqlstate=sqlstate)
    category = _FATAL_SQLSTATE_CLASSES.get(sqlstate[:2])
    if category:
      return DBFailureClassification(retryable=False, category=category, sqlstate=sqlstate)

  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, category="integrity_error", sqlstate=sqlstate)

  # Pool exhaustion and dropped connections surface as operational/interface errors or plain OS errors.
  if isinstance(exc, OperationalError | InterfaceError | ConnectionError | OSError):
    message = str(exc).lower()
    if any(hint in message for hint in _TRANSIENT_MESSAGE_HINTS) or isinstance(exc, ConnectionError):
      return DBFailureClassification(retryable=True, category="connectivity_error", sqlstate=sqlstate)
    return DBFailureClassification(retryable=False, category="operational_error_unknown", sqlstate=sqlstate)

  return DBFailureClassification(retryable=False, category=f"unknown:{type(exc).__name__}", sqlstate=sqlstate)


async def execute_with_retry(
  *, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 3, initial_backoff_ms: int = 200, max_backoff_ms: int = 3000, jitter: bool = True, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> T:
  """
  Execute an idempotent database operation, retrying transient failures.

  Non-retryable failures are raised immediately. Retryable failures back off
  exponentially (with +/-25% jitter) until max_attempts is reached.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      result = await func()
    except Exception as exc:
      classification = classify_db_failure(exc)
      logger.warning(
        "DB operation failed: operation=%s attempt=%d/%d category=%s sqlstate=%s retryable=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
        exc_info=not classification.retryable,
      )
      if not classification.retryable or attempt >= max_attempts:
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        backoff_ms += random.uniform(-backoff_ms * 0.25, backoff_ms * 0.25)
      await sleep(backoff_ms / 1000.0)
      continue

    if attempt > 1:
      logger.info("DB operation succeeded after retry: operation=%s attempt=%d/%d", operation_name, attempt, max_attempts)
    return result
