"""Shared FastAPI dependencies for actor resolution and pipeline access."""

from __future__ import annotations

from fastapi import Header, Request

from app.core.bootstrap import ensure_schema
from app.services.access import Actor, normalize_plan
from app.services.documents import DocumentService
from app.services.pipeline import Pipeline, get_pipeline


def get_actor(request: Request, x_actor_id: str | None = Header(default=None), x_actor_plan: str | None = Header(default=None)) -> Actor:
  """Resolve the caller from edge-provided headers; anonymous callers are guests keyed by client address."""
  actor_id = (x_actor_id or "").strip()
  if actor_id:
    return Actor(actor_id=actor_id, plan=normalize_plan(x_actor_plan, authenticated=True))
  host = request.client.host if request.client else "unknown"
  return Actor(actor_id=f"guest:{host}", plan="GUEST")


async def get_ready_pipeline() -> Pipeline:
  """Return the pipeline after the storage schema has been bootstrapped."""
  await ensure_schema()
  return get_pipeline()


async def get_document_service() -> DocumentService:
  pipeline = await get_ready_pipeline()
  return pipeline.documents
