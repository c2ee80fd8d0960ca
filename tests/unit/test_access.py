from __future__ import annotations

from datetime import UTC, datetime

import pytest

from app.jobs.errors import AccessDeniedError
from app.services.access import AccessGate, Actor, normalize_plan
from tests.fakes import InMemoryDocumentsRepository, make_settings, seed_document


def _gate(repo: InMemoryDocumentsRepository, **overrides) -> AccessGate:
  return AccessGate(repo, make_settings(**overrides), clock=lambda: datetime(2025, 3, 15, tzinfo=UTC))


def test_normalize_plan() -> None:
  assert normalize_plan("pro", authenticated=True) == "PRO"
  assert normalize_plan("platinum", authenticated=True) == "FREE"
  assert normalize_plan(None, authenticated=False) == "GUEST"


@pytest.mark.anyio
async def test_guest_total_limit_counts_all_time() -> None:
  repo = InMemoryDocumentsRepository()
  gate = _gate(repo, guest_total_limit=1)
  guest = Actor(actor_id="guest:1.2.3.4", plan="GUEST")

  assert (await gate.can_create_job(guest)).allowed
  await seed_document(repo, owner_id=guest.actor_id)
  decision = await gate.can_create_job(guest)
  assert not decision.allowed
  assert decision.reason is not None and "in total" in decision.reason


@pytest.mark.anyio
async def test_monthly_limit_ignores_previous_months() -> None:
  repo = InMemoryDocumentsRepository()
  gate = _gate(repo, free_monthly_limit=1)
  actor = Actor(actor_id="user-1", plan="FREE")
  # Seeded documents are created in January, before the clock's month.
  await seed_document(repo, document_id="old-1")
  await seed_document(repo, document_id="old-2")

  assert (await gate.can_create_job(actor)).allowed

  await seed_document(repo, document_id="new-1")
  repo.documents["new-1"].created_at = "2025-03-02T10:00:00Z"
  with pytest.raises(AccessDeniedError) as excinfo:
    await gate.ensure_can_create(actor, 5000)
  assert excinfo.value.quota


@pytest.mark.anyio
async def test_negative_limit_is_unlimited() -> None:
  repo = InMemoryDocumentsRepository()
  gate = _gate(repo, enterprise_monthly_limit=-1)
  for index in range(5):
    await seed_document(repo, document_id=f"doc-{index}")
  assert (await gate.can_create_job(Actor(actor_id="user-1", plan="ENTERPRISE"))).allowed


@pytest.mark.anyio
async def test_char_limit_is_checked_per_plan() -> None:
  gate = _gate(InMemoryDocumentsRepository(), guest_char_limit=10000, pro_char_limit=60000)
  with pytest.raises(AccessDeniedError) as excinfo:
    await gate.ensure_can_create(Actor(actor_id="guest:x", plan="GUEST"), 20000)
  assert not excinfo.value.quota
  await gate.ensure_can_create(Actor(actor_id="user-2", plan="PRO"), 60000)


def test_media_requires_paid_plan() -> None:
  gate = _gate(InMemoryDocumentsRepository())
  assert gate.can_generate_media(Actor(actor_id="u", plan="PRO")).allowed
  assert gate.can_generate_media(Actor(actor_id="u", plan="ENTERPRISE")).allowed
  assert not gate.can_generate_media(Actor(actor_id="u", plan="FREE")).allowed
  with pytest.raises(AccessDeniedError):
    gate.ensure_can_generate_media(Actor(actor_id="guest:x", plan="GUEST"))
