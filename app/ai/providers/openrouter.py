"""OpenRouter provider implementation using the openai SDK."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final, cast

from openai import AsyncOpenAI

from app.ai.errors import OutputValidationError, classify_provider_error
from app.ai.json_parser import parse_json_with_fallback
from app.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse, StructuredModelResponse

logger = logging.getLogger(__name__)


class OpenRouterModel(AIModel):
  """OpenRouter model client with structured output support."""

  _STRUCTURED_OUTPUT_MODELS: Final[set[str]] = {"openai/gpt-oss-120b", "openai/gpt-4.1-mini", "google/gemini-2.5-flash"}

  def __init__(self, name: str, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = name
    self.supports_structured_output = name in self._STRUCTURED_OUTPUT_MODELS

    api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
      raise ValueError("OPENROUTER_API_KEY environment variable is required")

    # OpenRouter uses the OpenAI-compatible API; attribution headers are optional.
    default_headers = {}
    referer = os.getenv("OPENROUTER_HTTP_REFERER")
    if referer:
      default_headers["HTTP-Referer"] = referer
    title = os.getenv("OPENROUTER_TITLE")
    if title:
      default_headers["X-Title"] = title

    # Retries are owned by the pipeline retry policy, not the SDK.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or "https://openrouter.ai/api/v1", default_headers=default_headers or None, max_retries=0)

  async def generate(self, prompt: str) -> ModelResponse:
    """Generate text response from OpenRouter."""
    try:
      response = await self._client.chat.completions.create(model=self.name, messages=[{"role": "user", "content": prompt}])
    except Exception as exc:  # noqa: BLE001
      raise classify_provider_error(exc) from exc

    content = response.choices[0].message.content or ""
    logger.debug("OpenRouter response model=%s chars=%d", self.name, len(content))
    return SimpleModelResponse(content=content, usage=_usage_from(response))

  async def generate_structured(self, prompt: str, schema: dict[str, Any]) -> StructuredModelResponse:
    """Generate structured JSON output using the json_schema response format."""
    # Reinforce the schema in the system message; not every routed model honors response_format.
    system_msg = f"You output valid JSON only, with no markdown formatting, strictly matching this schema:\n{json.dumps(schema)}"
    response_format = {"type": "json_schema", "json_schema": {"name": "document_response", "schema": schema}} if self.supports_structured_output else {"type": "json_object"}
    try:
      response = await self._client.chat.completions.create(model=self.name, messages=[{"role": "system", "content": system_msg}, {"role": "user", "content": prompt}], response_format=response_format)
    except Exception as exc:  # noqa: BLE001
      raise classify_provider_error(exc) from exc

    content = response.choices[0].message.content or "{}"
    try:
      parsed = parse_json_with_fallback(content)
    except json.JSONDecodeError as exc:
      raise OutputValidationError(f"OpenRouter returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
      raise OutputValidationError("OpenRouter returned JSON that is not an object.")
    return StructuredModelResponse(content=cast(dict[str, Any], parsed), usage=_usage_from(response))


def _usage_from(response: Any) -> dict[str, int] | None:
  usage = getattr(response, "usage", None)
  if not usage:
    return None
  return {"prompt_tokens": usage.prompt_tokens, "completion_tokens": usage.completion_tokens, "total_tokens": usage.total_tokens}


class OpenRouterProvider(Provider):
  """OpenRouter provider."""

  _DEFAULT_MODEL: Final[str] = "openai/gpt-4.1-mini"
  _AVAILABLE_MODELS: Final[set[str]] = {"openai/gpt-oss-120b", "openai/gpt-4.1-mini", "google/gemini-2.5-flash", "meta-llama/llama-3.3-70b-instruct", "deepseek/deepseek-chat-v3.1"}

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "openrouter"
    self._api_key = api_key
    self._base_url = base_url

  def get_model(self, model: str | None = None) -> AIModel:
    """Return an OpenRouter model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported OpenRouter model '{model_name}'.")
    return OpenRouterModel(model_name, api_key=self._api_key, base_url=self._base_url)
