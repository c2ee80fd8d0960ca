import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.core.bootstrap import ensure_schema
from app.core.database import get_db_engine
from app.core.logging import _initialize_logging
from app.services.storage_client import GcsAssetStorage, build_asset_storage


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, the asset bucket and the storage schema."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")

    if settings.asset_storage_backend == "gcs":
      try:
        storage = build_asset_storage(settings)
        if isinstance(storage, GcsAssetStorage):
          await storage.ensure_bucket()
          logger.info("Asset bucket ensured: %s", storage.bucket_name)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to ensure asset bucket at startup: %s", exc)

    if settings.pg_dsn:
      logger.info("Bootstrapping schema on %s", _redact_dsn(settings.pg_dsn))
      try:
        await ensure_schema()
      except Exception:  # noqa: BLE001
        # Requests bootstrap on demand, so a cold database does not block startup.
        logger.warning("Schema bootstrap at startup failed; will retry on first use.", exc_info=True)
  except Exception:  # noqa: BLE001
    logger.warning("Startup initialization failed; will retry on demand.", exc_info=True)

  yield

  engine = get_db_engine()
  if engine is not None:
    await engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
