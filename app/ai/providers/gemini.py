"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final, cast

from google import genai
from google.genai import types

from app.ai.errors import OutputValidationError, classify_provider_error
from app.ai.json_parser import parse_json_with_fallback
from app.ai.providers.base import AIModel, AspectRatio, ImageResponse, ModelResponse, Provider, SimpleModelResponse, StructuredModelResponse

logger = logging.getLogger(__name__)


def _usage_from(response: Any) -> dict[str, int] | None:
  metadata = getattr(response, "usage_metadata", None)
  if not metadata:
    return None
  return {"prompt_tokens": metadata.prompt_token_count or 0, "completion_tokens": metadata.candidates_token_count or 0, "total_tokens": metadata.total_token_count or 0}


class GeminiModel(AIModel):
  """Gemini model client with structured output and image support."""

  def __init__(self, name: str, api_key: str | None = None) -> None:
    self.name: str = name
    self.supports_structured_output = True
    self.supports_images = "image" in name

    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")

    self._client = genai.Client(api_key=api_key)

  async def generate(self, prompt: str) -> ModelResponse:
    """Generate text response from Gemini."""
    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await self._client.aio.models.generate_content(model=self.name, contents=prompt)
    except Exception as exc:  # noqa: BLE001
      raise classify_provider_error(exc) from exc

    text = response.text or ""
    logger.debug("Gemini response model=%s chars=%d", self.name, len(text))
    return SimpleModelResponse(content=text, usage=_usage_from(response))

  async def generate_structured(self, prompt: str, schema: dict[str, Any]) -> StructuredModelResponse:
    """Generate structured JSON output using Gemini's JSON mode."""
    config = types.GenerateContentConfig(response_mime_type="application/json", response_json_schema=schema)
    try:
      response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=config)
    except Exception as exc:  # noqa: BLE001
      raise classify_provider_error(exc) from exc

    raw = response.text or ""
    logger.debug("Gemini structured response model=%s chars=%d", self.name, len(raw))
    # Parse the model response with a lenient fallback to reduce retry churn.
    try:
      parsed = parse_json_with_fallback(raw)
    except json.JSONDecodeError as exc:
      raise OutputValidationError(f"Gemini returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
      raise OutputValidationError("Gemini returned JSON that is not an object.")
    return StructuredModelResponse(content=cast(dict[str, Any], parsed), usage=_usage_from(response))

  async def generate_image(self, prompt: str, *, aspect_ratio: AspectRatio = "1:1") -> ImageResponse:
    """Generate one image and return the first inline image part."""
    config = types.GenerateContentConfig(response_modalities=["IMAGE"], image_config=types.ImageConfig(aspect_ratio=aspect_ratio))
    try:
      response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=config)
    except Exception as exc:  # noqa: BLE001
      raise classify_provider_error(exc) from exc

    for candidate in response.candidates or []:
      content = candidate.content
      for part in (content.parts if content else None) or []:
        inline = part.inline_data
        if inline and inline.data:
          return ImageResponse(data=inline.data, mime_type=inline.mime_type or "image/png")

    raise OutputValidationError("Gemini returned no image data.")


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash", "gemini-2.5-flash-image", "gemini-3-pro-image-preview"}

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, api_key=self._api_key)
