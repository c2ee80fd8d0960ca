"""Outline agent implementation."""

from __future__ import annotations

import logging

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_outline_prompt
from app.ai.pipeline.contracts import JobContext, OutlineInput, OutlinePlan

logger = logging.getLogger(__name__)


class OutlineAgent(BaseAgent[OutlineInput, OutlinePlan]):
  """Turn a document request into an ordered list of H2 sections."""

  name = "Outline"

  async def run(self, input_data: OutlineInput, ctx: JobContext) -> OutlinePlan:
    prompt_text = render_outline_prompt(input_data)
    plan = await self._generate_validated(prompt_text, OutlinePlan, purpose="outline")
    logger.info("Outline generated document=%s job=%s sections=%d", ctx.document_id, ctx.job_id, len(plan.sections))
    return plan
