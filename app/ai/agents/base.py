"""Base class for AI agents."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from app.ai.backoff import RetryPolicy, retry_with_backoff
from app.ai.errors import OutputValidationError, is_output_error
from app.ai.pipeline.contracts import JobContext
from app.ai.providers.base import AIModel

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
ContractT = TypeVar("ContractT", bound=BaseModel)
UsageSink = Callable[[dict[str, Any]], None] | None

logger = logging.getLogger(__name__)


class BaseAgent(ABC, Generic[InputT, OutputT]):
  """Base agent with shared dependencies."""

  name: str

  def __init__(self, *, model: AIModel, policy: RetryPolicy | None = None, use: UsageSink = None) -> None:
    self._model = model
    self._policy = policy or RetryPolicy()
    self._usage_sink = use

  @abstractmethod
  async def run(self, input_data: InputT, ctx: JobContext) -> OutputT:
    """Run the agent on input data."""

  def _record_usage(self, *, purpose: str, usage: dict[str, int] | None) -> None:
    if not usage or not self._usage_sink:
      return
    payload = {"model": getattr(self._model, "name", "unknown"), "agent": self.name, "purpose": purpose, **usage}
    self._usage_sink(payload)

  def _build_json_retry_prompt(self, *, prompt_text: str, error: Exception) -> str:
    """Append parser errors to prompts so retries can fix invalid JSON."""
    suffix = "\n\n".join(["Previous response could not be parsed as JSON.", f"Parser error: {error}", "Return ONLY valid JSON and ensure the schema is followed exactly."])
    return f"{prompt_text}\n\n{suffix}"

  async def _generate_text(self, prompt: str, *, purpose: str) -> str:
    """Generate free text with the agent's retry policy; empty output is a step failure."""
    response = await retry_with_backoff(self._model.generate, prompt, policy=self._policy, operation=f"{self.name}.{purpose}")
    self._record_usage(purpose=purpose, usage=response.usage)
    text = (response.content or "").strip()
    if not text:
      raise OutputValidationError(f"{self.name} returned empty output for {purpose}.")
    return text

  async def _generate_validated(self, prompt: str, contract: type[ContractT], *, purpose: str) -> ContractT:
    """Request structured output and validate it, retrying once with the parser error appended."""
    schema = contract.model_json_schema()
    try:
      return await self._structured_once(prompt, schema, contract, purpose=purpose)
    except Exception as exc:  # noqa: BLE001
      if not is_output_error(exc):
        raise
      logger.warning("%s returned invalid output for %s; retrying once: %s", self.name, purpose, exc)
      retry_prompt = self._build_json_retry_prompt(prompt_text=prompt, error=exc)
      return await self._structured_once(retry_prompt, schema, contract, purpose=f"{purpose}_retry")

  async def _structured_once(self, prompt: str, schema: dict[str, Any], contract: type[ContractT], *, purpose: str) -> ContractT:
    response = await retry_with_backoff(self._model.generate_structured, prompt, schema, policy=self._policy, operation=f"{self.name}.{purpose}")
    self._record_usage(purpose=purpose, usage=response.usage)
    try:
      return contract.model_validate(response.content)
    except ValidationError as exc:
      raise OutputValidationError(f"{self.name} output failed validation: {exc.error_count()} error(s)") from exc
