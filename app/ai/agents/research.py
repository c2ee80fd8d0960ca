"""Reference summarizer agent implementation."""

from __future__ import annotations

import logging

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_reference_prompt
from app.ai.pipeline.contracts import JobContext, ReferenceInput, ReferenceSummary

logger = logging.getLogger(__name__)


class ReferenceSummaryAgent(BaseAgent[ReferenceInput, ReferenceSummary]):
  """Paraphrase a fetched reference page into a summary and insights."""

  name = "ReferenceSummary"

  async def run(self, input_data: ReferenceInput, ctx: JobContext) -> ReferenceSummary:
    summary = await self._generate_validated(render_reference_prompt(input_data), ReferenceSummary, purpose="reference_summary")
    logger.debug("Summarized reference url=%s claims=%d", input_data.url, len(summary.claims))
    return summary
