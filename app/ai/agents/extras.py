"""Best-effort knowledge extras: intro drafts, internal link ideas and social copy."""

from __future__ import annotations

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_extras_prompt
from app.ai.pipeline.contracts import ExtraKind, ExtrasInput, JobContext

EXTRA_TITLES: dict[ExtraKind, str] = {"intro_ab": "Intro drafts A/B", "internal_link": "Internal link suggestions", "social": "Social summary and CTA"}
EXTRA_PLACEHOLDERS: dict[ExtraKind, str] = {"intro_ab": "A: (generation failed)\nB: (generation failed)", "internal_link": "(generation failed)", "social": "(generation failed)"}


class ExtrasAgent(BaseAgent[ExtrasInput, str]):
  """Generate one knowledge extra as plain markdown."""

  name = "Extras"

  async def run(self, input_data: ExtrasInput, ctx: JobContext) -> str:
    return await self._generate_text(render_extras_prompt(input_data), purpose=input_data.kind)
