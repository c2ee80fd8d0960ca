"""Object storage for generated image assets (GCS or local filesystem)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse, urlunparse

from google.api_core.exceptions import NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from app.config import Settings


@dataclass(frozen=True)
class StoredObject:
  """Where an asset was written and how large it is."""

  path: str
  size: int


class AssetStorage(Protocol):
  """Path-addressed binary storage; durability belongs to the backend."""

  async def save(self, data: bytes, *, path: str, content_type: str) -> StoredObject:
    """Write bytes at `path`, replacing any existing object."""

  async def load(self, path: str) -> bytes:
    """Read the bytes stored at `path`."""

  async def delete(self, path: str) -> None:
    """Remove the object at `path`; missing objects are ignored."""


class LocalAssetStorage:
  """Store assets under a local directory; used in development and tests."""

  def __init__(self, root: str | Path) -> None:
    self._root = Path(root).resolve()

  def _resolve(self, path: str) -> Path:
    target = (self._root / path).resolve()
    if self._root not in target.parents:
      raise ValueError(f"Asset path escapes the storage root: {path}")
    return target

  async def save(self, data: bytes, *, path: str, content_type: str) -> StoredObject:
    target = self._resolve(path)

    def _write() -> None:
      target.parent.mkdir(parents=True, exist_ok=True)
      target.write_bytes(data)

    await run_in_threadpool(_write)
    return StoredObject(path=path, size=len(data))

  async def load(self, path: str) -> bytes:
    return await run_in_threadpool(self._resolve(path).read_bytes)

  async def delete(self, path: str) -> None:
    await run_in_threadpool(self._resolve(path).unlink, missing_ok=True)


class GcsAssetStorage:
  """Thin wrapper over GCS and emulator access for asset upload/download."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.asset_bucket
    self._storage_host = settings.gcs_storage_host
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing in emulator flows."""
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def save(self, data: bytes, *, path: str, content_type: str, cache_control: str = "public, max-age=3600") -> StoredObject:
    blob = self._client.bucket(self._bucket_name).blob(path)
    blob.cache_control = cache_control
    blob.content_type = content_type
    await run_in_threadpool(blob.upload_from_string, data, content_type)
    return StoredObject(path=path, size=len(data))

  async def load(self, path: str) -> bytes:
    blob = self._client.bucket(self._bucket_name).blob(path)
    return await run_in_threadpool(blob.download_as_bytes)

  async def delete(self, path: str) -> None:
    blob = self._client.bucket(self._bucket_name).blob(path)
    try:
      await run_in_threadpool(blob.delete)
    except NotFound:
      return


def build_asset_storage(settings: Settings) -> AssetStorage:
  """Create the configured asset storage backend."""
  if settings.asset_storage_backend == "gcs":
    return GcsAssetStorage(settings)
  return LocalAssetStorage(settings.asset_local_dir)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
