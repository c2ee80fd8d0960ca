"""Consistency checker agent implementation."""

from __future__ import annotations

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_consistency_prompt
from app.ai.pipeline.contracts import ConsistencyInput, ConsistencyReport, JobContext


class ConsistencyAgent(BaseAgent[ConsistencyInput, ConsistencyReport]):
  """Compare a new section draft against the outline and the preceding sections."""

  name = "Consistency"

  async def run(self, input_data: ConsistencyInput, ctx: JobContext) -> ConsistencyReport:
    report = await self._generate_validated(render_consistency_prompt(input_data), ConsistencyReport, purpose="consistency")
    # A blank rewrite is the same as no rewrite.
    if report.rewritten is not None and not report.rewritten.strip():
      report = report.model_copy(update={"rewritten": None})
    return report
