"""Provider error taxonomy and classification helpers."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable

from pydantic import ValidationError

_TRANSIENT_HINTS: tuple[str, ...] = (
  "rate limit",
  "too many requests",
  "resource exhausted",
  "quota",
  "429",
  "timeout",
  "timed out",
  "deadline exceeded",
  "connection",
  "network",
  "temporarily",
  "service unavailable",
  "bad gateway",
  "gateway timeout",
  "overloaded",
  "internal error",
  "503",
  "502",
  "500",
)

_FATAL_HINTS: tuple[str, ...] = (
  "unsupported model",
  "model not found",
  "no such model",
  "api key",
  "unauthorized",
  "permission denied",
  "forbidden",
  "invalid argument",
  "safety",
  "blocked",
)

_OUTPUT_HINTS: tuple[str, ...] = (
  "invalid json",
  "failed to parse",
  "parse json",
  "schema",
  "validation",
)

_TRANSIENT_STATUS = {408, 409, 425, 429, 500, 502, 503, 504}


class ProviderError(RuntimeError):
  """Base class for generation provider failures."""

  transient: bool = False


class TransientProviderError(ProviderError):
  """Timeouts, rate limits and upstream hiccups; safe to retry."""

  transient = True


class FatalProviderError(ProviderError):
  """Failures that will not improve on retry (auth, bad request, unsupported model)."""


class OutputValidationError(ProviderError):
  """The provider answered but the output is structurally unusable."""


class RetryExhaustedError(ProviderError):
  """Transient failures persisted past the retry budget."""

  def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
    super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")
    self.operation = operation
    self.attempts = attempts
    self.last_error = last_error


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  return any(hint in message for hint in hints)


def _status_code(exc: BaseException) -> int | None:
  # openai exposes `status_code`, google-genai exposes `code`.
  for attr in ("status_code", "code"):
    value = getattr(exc, attr, None)
    if isinstance(value, int):
      return value
  return None


def is_provider_error(exc: BaseException) -> bool:
  """Return True when an exception looks like a provider availability failure."""
  message = str(exc).lower()
  return _match_hint(message, _TRANSIENT_HINTS) or _match_hint(message, _FATAL_HINTS)


def is_output_error(exc: BaseException) -> bool:
  """Return True when an exception indicates invalid output formatting."""
  if isinstance(exc, OutputValidationError | ValidationError | json.JSONDecodeError):
    return True
  message = str(exc).lower()
  return _match_hint(message, _OUTPUT_HINTS)


def classify_provider_error(exc: BaseException) -> ProviderError:
  """Map an arbitrary SDK exception onto the provider error taxonomy."""
  if isinstance(exc, ProviderError):
    return exc

  if isinstance(exc, asyncio.TimeoutError | TimeoutError | ConnectionError):
    return TransientProviderError(f"Provider call timed out or lost connection: {exc}")

  status = _status_code(exc)
  if status is not None:
    if status in _TRANSIENT_STATUS:
      return TransientProviderError(f"Provider returned HTTP {status}: {exc}")
    if 400 <= status < 500:
      return FatalProviderError(f"Provider rejected the request with HTTP {status}: {exc}")

  if is_output_error(exc):
    return OutputValidationError(str(exc))

  message = str(exc).lower()
  if _match_hint(message, _FATAL_HINTS):
    return FatalProviderError(str(exc))
  if _match_hint(message, _TRANSIENT_HINTS):
    return TransientProviderError(str(exc))

  return FatalProviderError(f"{type(exc).__name__}: {exc}")
