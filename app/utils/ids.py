"""Identifier utilities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime


def generate_document_id() -> str:
  """Return a new document identifier."""
  return str(uuid.uuid4())


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_section_id() -> str:
  """Return a new section identifier."""
  return str(uuid.uuid4())


def generate_asset_id() -> str:
  """Return a new image asset identifier."""
  return str(uuid.uuid4())


def generate_item_id() -> str:
  """Return a new identifier for knowledge items and references."""
  return str(uuid.uuid4())


def generate_lease_token() -> str:
  """Return an opaque token identifying one lease holder."""
  return uuid.uuid4().hex


def now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
