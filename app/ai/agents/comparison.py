"""Comparison table agent implementation."""

from __future__ import annotations

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_comparison_table_prompt
from app.ai.errors import OutputValidationError
from app.ai.pipeline.contracts import ComparisonTableInput, JobContext


class ComparisonTableAgent(BaseAgent[ComparisonTableInput, str]):
  """Synthesize a markdown comparison table (criteria x candidates)."""

  name = "ComparisonTable"

  async def run(self, input_data: ComparisonTableInput, ctx: JobContext) -> str:
    table = await self._generate_text(render_comparison_table_prompt(input_data), purpose="comparison_table")
    if "|" not in table:
      raise OutputValidationError("Comparison table output contains no markdown table.")
    return table
