"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_PROVIDER_MODES = {"gemini", "openrouter"}
_STORAGE_BACKENDS = {"local", "gcs"}
_TASK_PROVIDERS = {"local-http", "gcp"}
_SEVERITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the long-form generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  pg_command_timeout: int
  provider_mode: str
  text_model: str | None
  image_model: str
  gemini_api_key: str | None
  openrouter_api_key: str | None
  generation_timeout_seconds: float
  image_timeout_seconds: float
  retry_max_attempts: int
  retry_base_delay_seconds: float
  retry_max_delay_seconds: float
  lease_ttl_seconds: int
  consistency_max_rewrites: int
  consistency_rewrite_severity: str
  auto_media: bool
  media_pacing_seconds: float
  asset_storage_backend: str
  asset_local_dir: str
  asset_bucket: str
  gcs_storage_host: str | None
  gcp_project_id: str | None
  task_service_provider: str
  cloud_tasks_queue_path: str | None
  base_url: str | None
  task_secret: str | None
  advance_interval_seconds: float
  guest_total_limit: int
  free_monthly_limit: int
  pro_monthly_limit: int
  enterprise_monthly_limit: int
  guest_char_limit: int
  free_char_limit: int
  pro_char_limit: int
  enterprise_char_limit: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  pg_command_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("LONGFORM_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("LONGFORM_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("LONGFORM_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str, *, allow_zero: bool = False) -> int:
  value = int(os.getenv(name, default))
  if value < 0 or (value == 0 and not allow_zero):
    qualifier = "zero or a positive integer" if allow_zero else "a positive integer"
    raise ValueError(f"{name} must be {qualifier}.")
  return value


def _positive_float(name: str, default: str, *, allow_zero: bool = False) -> float:
  value = float(os.getenv(name, default))
  if value < 0 or (value == 0 and not allow_zero):
    qualifier = "zero or a positive number" if allow_zero else "a positive number"
    raise ValueError(f"{name} must be {qualifier}.")
  return value


def _limit(name: str, default: str) -> int:
  # Negative limits mean unlimited.
  return int(os.getenv(name, default))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("LONGFORM_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("LONGFORM_DEBUG"))

  log_max_bytes = _positive_int("LONGFORM_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _positive_int("LONGFORM_LOG_BACKUP_COUNT", "10", allow_zero=True)

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("LONGFORM_LOG_HTTP_4XX"))

  provider_mode = (os.getenv("LONGFORM_PROVIDER_MODE") or "gemini").strip().lower()
  if provider_mode not in _PROVIDER_MODES:
    raise ValueError(f"LONGFORM_PROVIDER_MODE must be one of {sorted(_PROVIDER_MODES)}.")

  retry_max_attempts = _positive_int("LONGFORM_RETRY_MAX_ATTEMPTS", "3")
  retry_base_delay_seconds = _positive_float("LONGFORM_RETRY_BASE_DELAY_SECONDS", "1.0", allow_zero=True)
  retry_max_delay_seconds = _positive_float("LONGFORM_RETRY_MAX_DELAY_SECONDS", "30.0", allow_zero=True)
  if retry_max_delay_seconds < retry_base_delay_seconds:
    raise ValueError("LONGFORM_RETRY_MAX_DELAY_SECONDS must be >= LONGFORM_RETRY_BASE_DELAY_SECONDS.")

  consistency_rewrite_severity = (os.getenv("LONGFORM_CONSISTENCY_REWRITE_SEVERITY") or "high").strip().lower()
  if consistency_rewrite_severity not in _SEVERITIES:
    raise ValueError(f"LONGFORM_CONSISTENCY_REWRITE_SEVERITY must be one of {list(_SEVERITIES)}.")

  asset_storage_backend = (os.getenv("LONGFORM_ASSET_STORAGE") or "local").strip().lower()
  if asset_storage_backend not in _STORAGE_BACKENDS:
    raise ValueError(f"LONGFORM_ASSET_STORAGE must be one of {sorted(_STORAGE_BACKENDS)}.")

  task_service_provider = (os.getenv("LONGFORM_TASK_SERVICE_PROVIDER") or "local-http").strip().lower()
  if task_service_provider not in _TASK_PROVIDERS:
    raise ValueError(f"LONGFORM_TASK_SERVICE_PROVIDER must be one of {sorted(_TASK_PROVIDERS)}.")

  cloud_tasks_queue_path = _optional_str(os.getenv("LONGFORM_CLOUD_TASKS_QUEUE_PATH"))
  if task_service_provider == "gcp" and not cloud_tasks_queue_path:
    raise ValueError("LONGFORM_CLOUD_TASKS_QUEUE_PATH must be set when LONGFORM_TASK_SERVICE_PROVIDER=gcp.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("LONGFORM_ALLOWED_ORIGINS", "http://localhost:3000")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=os.getenv("LONGFORM_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("LONGFORM_PG_CONNECT_TIMEOUT", "5"),
    pg_command_timeout=_positive_int("LONGFORM_PG_COMMAND_TIMEOUT", "30"),
    provider_mode=provider_mode,
    text_model=_optional_str(os.getenv("LONGFORM_TEXT_MODEL")),
    image_model=(os.getenv("LONGFORM_IMAGE_MODEL") or "gemini-2.5-flash-image").strip(),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    generation_timeout_seconds=_positive_float("LONGFORM_GENERATION_TIMEOUT_SECONDS", "120"),
    image_timeout_seconds=_positive_float("LONGFORM_IMAGE_TIMEOUT_SECONDS", "180"),
    retry_max_attempts=retry_max_attempts,
    retry_base_delay_seconds=retry_base_delay_seconds,
    retry_max_delay_seconds=retry_max_delay_seconds,
    lease_ttl_seconds=_positive_int("LONGFORM_LEASE_TTL_SECONDS", "600"),
    consistency_max_rewrites=_positive_int("LONGFORM_CONSISTENCY_MAX_REWRITES", "1", allow_zero=True),
    consistency_rewrite_severity=consistency_rewrite_severity,
    auto_media=_parse_bool(os.getenv("LONGFORM_AUTO_MEDIA")),
    media_pacing_seconds=_positive_float("LONGFORM_MEDIA_PACING_SECONDS", "0.5", allow_zero=True),
    asset_storage_backend=asset_storage_backend,
    asset_local_dir=(os.getenv("LONGFORM_ASSET_LOCAL_DIR") or "./storage").strip(),
    asset_bucket=(os.getenv("LONGFORM_ASSET_BUCKET") or "longform-assets").strip(),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    task_service_provider=task_service_provider,
    cloud_tasks_queue_path=cloud_tasks_queue_path,
    base_url=_optional_str(os.getenv("LONGFORM_BASE_URL")),
    task_secret=_optional_str(os.getenv("LONGFORM_TASK_SECRET")),
    advance_interval_seconds=_positive_float("LONGFORM_ADVANCE_INTERVAL_SECONDS", "1.0", allow_zero=True),
    guest_total_limit=_limit("LONGFORM_GUEST_TOTAL_LIMIT", "1"),
    free_monthly_limit=_limit("LONGFORM_FREE_MONTHLY_LIMIT", "3"),
    pro_monthly_limit=_limit("LONGFORM_PRO_MONTHLY_LIMIT", "50"),
    enterprise_monthly_limit=_limit("LONGFORM_ENTERPRISE_MONTHLY_LIMIT", "-1"),
    guest_char_limit=_positive_int("LONGFORM_GUEST_CHAR_LIMIT", "10000"),
    free_char_limit=_positive_int("LONGFORM_FREE_CHAR_LIMIT", "20000"),
    pro_char_limit=_positive_int("LONGFORM_PRO_CHAR_LIMIT", "60000"),
    enterprise_char_limit=_positive_int("LONGFORM_ENTERPRISE_CHAR_LIMIT", "60000"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("LONGFORM_DEBUG"))
  pg_connect_timeout = _positive_int("LONGFORM_PG_CONNECT_TIMEOUT", "5")
  pg_command_timeout = _positive_int("LONGFORM_PG_COMMAND_TIMEOUT", "30")
  pg_dsn = os.getenv("LONGFORM_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout, pg_command_timeout=pg_command_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
