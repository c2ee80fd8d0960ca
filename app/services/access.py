"""Quota and character-limit checks consulted when documents and jobs are created."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from app.config import Settings
from app.jobs.errors import AccessDeniedError
from app.storage.documents_repo import DocumentsRepository

Plan = Literal["GUEST", "FREE", "PRO", "ENTERPRISE"]
_PLANS: frozenset[str] = frozenset({"GUEST", "FREE", "PRO", "ENTERPRISE"})
_PAID_PLANS: frozenset[str] = frozenset({"PRO", "ENTERPRISE"})

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
  """Caller identity as resolved by the edge; anonymous callers are guests."""

  actor_id: str
  plan: Plan

  @property
  def is_guest(self) -> bool:
    return self.plan == "GUEST"

  @property
  def is_paid(self) -> bool:
    return self.plan in _PAID_PLANS


def normalize_plan(raw: str | None, *, authenticated: bool) -> Plan:
  value = (raw or "").strip().upper()
  if value in _PLANS:
    return value  # type: ignore[return-value]
  return "FREE" if authenticated else "GUEST"


@dataclass(frozen=True)
class AccessDecision:
  allowed: bool
  reason: str | None = None


def _start_of_month(now: datetime) -> datetime:
  return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class AccessGate:
  """Per-plan document quotas and character limits."""

  def __init__(self, repo: DocumentsRepository, settings: Settings, *, clock: Callable[[], datetime] | None = None) -> None:
    self._repo = repo
    self._settings = settings
    self._clock = clock or (lambda: datetime.now(UTC))

  def char_limit(self, actor: Actor) -> int:
    limits = {"GUEST": self._settings.guest_char_limit, "FREE": self._settings.free_char_limit, "PRO": self._settings.pro_char_limit, "ENTERPRISE": self._settings.enterprise_char_limit}
    return limits[actor.plan]

  async def can_create_job(self, actor: Actor) -> AccessDecision:
    if actor.is_guest:
      limit = self._settings.guest_total_limit
      since = None
      label = "in total"
    else:
      limit = {"FREE": self._settings.free_monthly_limit, "PRO": self._settings.pro_monthly_limit, "ENTERPRISE": self._settings.enterprise_monthly_limit}[actor.plan]
      since = _start_of_month(self._clock())
      label = "this month"

    if limit < 0:
      return AccessDecision(allowed=True)
    used = await self._repo.count_documents_since(actor.actor_id, since)
    if used >= limit:
      return AccessDecision(allowed=False, reason=f"The {actor.plan} plan allows {limit} documents {label}; {used} already used.")
    return AccessDecision(allowed=True)

  def can_generate_media(self, actor: Actor) -> AccessDecision:
    if actor.is_paid:
      return AccessDecision(allowed=True)
    return AccessDecision(allowed=False, reason="Image generation is available on paid plans only.")

  async def ensure_can_create(self, actor: Actor, target_chars: int) -> None:
    """Raise AccessDeniedError when the actor is over quota or over the length limit."""
    limit = self.char_limit(actor)
    if target_chars > limit:
      raise AccessDeniedError(f"target_chars {target_chars} exceeds the {actor.plan} plan limit of {limit}.")
    decision = await self.can_create_job(actor)
    if not decision.allowed:
      logger.info("Document quota reached actor=%s plan=%s", actor.actor_id, actor.plan)
      raise AccessDeniedError(decision.reason or "Document quota reached.", quota=True)

  def ensure_can_generate_media(self, actor: Actor) -> None:
    decision = self.can_generate_media(actor)
    if not decision.allowed:
      raise AccessDeniedError(decision.reason or "Media generation is not allowed.")
