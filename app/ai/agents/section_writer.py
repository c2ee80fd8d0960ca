"""Section writer agent implementation."""

from __future__ import annotations

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_section_prompt
from app.ai.pipeline.contracts import JobContext, SectionDraft, SectionWriteInput


class SectionWriterAgent(BaseAgent[SectionWriteInput, SectionDraft]):
  """Write the markdown prose for one section."""

  name = "SectionWriter"

  async def run(self, input_data: SectionWriteInput, ctx: JobContext) -> SectionDraft:
    prompt_text = render_section_prompt(input_data)
    purpose = "section_rewrite" if input_data.feedback else "section"
    content = await self._generate_text(prompt_text, purpose=purpose)
    return SectionDraft(content=content, prompt=prompt_text)
