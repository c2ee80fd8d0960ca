"""Bounded prompt context built from stored sections and references."""

from __future__ import annotations

from collections.abc import Iterable

from app.ai.agents.prompts import clamp_text
from app.jobs.models import SectionRecord
from app.storage.documents_repo import ReferenceRecord

PRIOR_SECTION_COUNT = 2
PRIOR_SECTION_CHARS = 2200
OUTLINE_CONTEXT_CHARS = 2500
RESEARCH_CONTEXT_CHARS = 8000


def build_prior_digest(sections: Iterable[SectionRecord], index: int) -> str:
  """Digest of the most recent preceding sections that have content."""
  prior = [section for section in sorted(sections, key=lambda s: s.index) if section.index < index and section.content]
  blocks = [f"# Previous section {section.index}\n{clamp_text(section.content, PRIOR_SECTION_CHARS)}" for section in prior[-PRIOR_SECTION_COUNT:]]
  return "\n\n".join(blocks)


def outline_context(outline_markdown: str | None) -> str:
  return clamp_text(outline_markdown or "", OUTLINE_CONTEXT_CHARS)


def build_research_context(references: Iterable[ReferenceRecord]) -> str:
  """Summaries of fetched references, bounded for prompt size."""
  blocks = []
  for reference in references:
    if not reference.summary:
      continue
    insights = reference.insights or {}
    lines = [
      f"URL: {reference.url}",
      f"TITLE: {reference.title}" if reference.title else "",
      f"SUMMARY: {clamp_text(reference.summary, 1200)}",
      f"HEADINGS: {' / '.join(reference.headings[:15])}" if reference.headings else "",
      f"CLAIMS: {' / '.join(insights.get('claims', [])[:10])}" if insights.get("claims") else "",
      f"FAQ: {' / '.join(insights.get('faq', [])[:10])}" if insights.get("faq") else "",
      f"INTERNAL_LINKS: {' / '.join(insights.get('internal_links', [])[:10])}" if insights.get("internal_links") else "",
    ]
    blocks.append("\n".join(line for line in lines if line))

  if not blocks:
    return ""
  return clamp_text("=== RESEARCH (summarized) ===\n" + "\n\n---\n\n".join(blocks), RESEARCH_CONTEXT_CHARS)
