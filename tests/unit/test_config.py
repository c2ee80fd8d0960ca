from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import get_database_settings, get_settings
from app.core.database import _connect_args


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
  get_settings.cache_clear()
  get_database_settings.cache_clear()
  yield
  get_settings.cache_clear()
  get_database_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("LONGFORM_ALLOWED_ORIGINS", "http://localhost:3000, https://app.example.com")
  monkeypatch.delenv("LONGFORM_AUTO_MEDIA", raising=False)
  monkeypatch.delenv("LONGFORM_CONSISTENCY_MAX_REWRITES", raising=False)

  settings = get_settings()

  assert settings.allowed_origins == ("http://localhost:3000", "https://app.example.com")
  assert settings.auto_media is False
  assert settings.consistency_max_rewrites == 1
  assert settings.enterprise_monthly_limit == -1


def test_wildcard_origin_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("LONGFORM_ALLOWED_ORIGINS", "*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


def test_invalid_severity_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("LONGFORM_CONSISTENCY_REWRITE_SEVERITY", "critical")
  with pytest.raises(ValueError, match="SEVERITY"):
    get_settings()


def test_gcp_tasks_need_queue_path(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("LONGFORM_TASK_SERVICE_PROVIDER", "gcp")
  monkeypatch.delenv("LONGFORM_CLOUD_TASKS_QUEUE_PATH", raising=False)
  with pytest.raises(ValueError, match="QUEUE_PATH"):
    get_settings()


def test_retry_delays_must_be_ordered(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("LONGFORM_RETRY_BASE_DELAY_SECONDS", "10")
  monkeypatch.setenv("LONGFORM_RETRY_MAX_DELAY_SECONDS", "1")
  with pytest.raises(ValueError, match="MAX_DELAY"):
    get_settings()


def test_database_command_timeout_reaches_asyncpg(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("LONGFORM_PG_COMMAND_TIMEOUT", "12")
  monkeypatch.setenv("LONGFORM_PG_CONNECT_TIMEOUT", "3")

  settings = get_database_settings()
  connect_args = _connect_args(settings)

  assert settings.pg_command_timeout == 12
  assert connect_args["timeout"] == 3
  assert connect_args["command_timeout"] == 12
  assert connect_args["server_settings"] == {"statement_timeout": "12000"}


def test_database_command_timeout_defaults_to_thirty_seconds(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("LONGFORM_PG_COMMAND_TIMEOUT", raising=False)
  monkeypatch.setenv("LONGFORM_ALLOWED_ORIGINS", "http://localhost:3000")

  assert get_database_settings().pg_command_timeout == 30
  assert get_settings().pg_command_timeout == 30


def test_non_positive_command_timeout_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("LONGFORM_PG_COMMAND_TIMEOUT", "0")
  with pytest.raises(ValueError, match="LONGFORM_PG_COMMAND_TIMEOUT"):
    get_database_settings()
