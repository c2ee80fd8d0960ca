"""Test configuration shared by unit and integration suites."""

from __future__ import annotations

import os

os.environ.setdefault("LONGFORM_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("LONGFORM_ASSET_STORAGE", "local")
os.environ.setdefault("LONGFORM_TASK_SERVICE_PROVIDER", "local-http")

import pytest  # noqa: E402

from tests.fakes import FAST_POLICY, FakeImageModel, InMemoryAssetStorage, InMemoryDocumentsRepository, ScriptedTextModel, make_settings  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def repo() -> InMemoryDocumentsRepository:
  return InMemoryDocumentsRepository()


@pytest.fixture
def text_model() -> ScriptedTextModel:
  return ScriptedTextModel()


@pytest.fixture
def image_model() -> FakeImageModel:
  return FakeImageModel()


@pytest.fixture
def asset_storage() -> InMemoryAssetStorage:
  return InMemoryAssetStorage()


@pytest.fixture
def settings():
  return make_settings()


@pytest.fixture
def fast_policy():
  return FAST_POLICY
