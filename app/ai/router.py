"""Routing utilities for provider/model selection."""

from __future__ import annotations

from enum import Enum

from app.ai.providers.base import AIModel, Provider
from app.ai.providers.gemini import GeminiProvider
from app.ai.providers.openrouter import OpenRouterProvider
from app.config import Settings


class ProviderMode(str, Enum):
  """Supported provider modes."""

  GEMINI = "gemini"
  OPENROUTER = "openrouter"


def get_provider_for_mode(mode: str | ProviderMode, settings: Settings) -> Provider:
  """Return a provider instance for the given mode."""
  key = mode.value if isinstance(mode, ProviderMode) else mode
  if key == ProviderMode.GEMINI.value:
    return GeminiProvider(api_key=settings.gemini_api_key)
  if key == ProviderMode.OPENROUTER.value:
    return OpenRouterProvider(api_key=settings.openrouter_api_key)
  raise ValueError(f"Unsupported provider mode '{mode}'.")


def get_text_model(settings: Settings) -> AIModel:
  """Return the configured text model client."""
  return get_provider_for_mode(settings.provider_mode, settings).get_model(settings.text_model)


def get_image_model(settings: Settings) -> AIModel:
  """Return the image model client; images are always produced by Gemini."""
  model = GeminiProvider(api_key=settings.gemini_api_key).get_model(settings.image_model)
  if not model.supports_images:
    raise ValueError(f"Model '{settings.image_model}' cannot generate images.")
  return model
