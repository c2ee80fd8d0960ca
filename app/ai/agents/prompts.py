"""Prompt helpers shared by agents."""

from __future__ import annotations

from app.ai.pipeline.contracts import ComparisonTableInput, ConsistencyInput, DiagramProposalInput, DocumentRequest, ExtrasInput, OutlineInput, OutlinePlan, ReferenceInput, SectionWriteInput

_LLMO_LABELS: dict[str, str] = {
  "tldr": "TL;DR",
  "conclusion_first": "Conclusion first, then reasons",
  "faq": "FAQ",
  "glossary": "Glossary",
  "comparison": "Comparison table",
  "quotes": "Paraphrased evidence and citations",
  "templates": "Practical templates (steps, checklists, examples)",
  "objections": "Answers to common objections",
}


def clamp_text(text: str | None, limit: int) -> str:
  """Clamp text to a character budget, marking truncation."""
  if not text:
    return ""
  if len(text) <= limit:
    return text
  return f"{text[:limit]}\n...(truncated)"


def _join(lines: list[str]) -> str:
  return "\n".join(line for line in lines if line)


def llmo_options_text(request: DocumentRequest) -> str:
  options = request.llmo.model_dump()
  return "\n".join(f"{'ON' if options[key] else 'OFF'}: {label}" for key, label in _LLMO_LABELS.items())


def outline_to_markdown(plan: OutlinePlan) -> str:
  """Render an outline plan to markdown for storage and prompt context."""
  lines = ["# Outline"]
  for position, section in enumerate(plan.sections, start=1):
    intent = f" (intent: {section.intent_tag})" if section.intent_tag else ""
    lines.append(f"\n## {position}. {section.h2}{intent}")
    for h3 in section.h3:
      lines.append(f"- {h3}")
      for h4 in section.h4.get(h3, []):
        lines.append(f"  - {h4}")

  if plan.faq:
    lines.append("\n## FAQ candidates")
    lines.extend(f"- {item}" for item in plan.faq)
  if plan.glossary:
    lines.append("\n## Glossary candidates")
    lines.extend(f"- {item}" for item in plan.glossary)
  if plan.internal_link_ideas:
    lines.append("\n## Internal link ideas")
    lines.extend(f"- {item}" for item in plan.internal_link_ideas)
  if plan.diagram_ideas:
    lines.append("\n## Diagram ideas")
    for idea in plan.diagram_ideas:
      hint = f" (insert: {idea.insertion_hint})" if idea.insertion_hint else ""
      lines.append(f"- {idea.title}: {idea.description}{hint}")
  return "\n".join(lines)


def _request_lines(request: DocumentRequest, *, persona_limit: int = 1200) -> list[str]:
  return [
    f"- Title: {request.title}",
    f"- Keywords: {', '.join(request.keywords)}",
    f"- Persona: {clamp_text(request.persona, persona_limit)}" if request.persona else "",
    f"- Search intent: {clamp_text(request.search_intent, persona_limit)}" if request.search_intent else "",
    f"- Target chars: {request.target_chars}",
    f"- Tone: {request.tone}",
    f"- Forbidden: {' / '.join(request.forbidden)}" if request.forbidden else "",
    f"- Additional request:\n{clamp_text(request.request_text, 4000)}" if request.request_text else "",
  ]


def render_outline_prompt(input_data: OutlineInput) -> str:
  request = input_data.request
  comparison = request.mode == "comparison_research"
  return _join(
    [
      "You are an expert long-form editor optimizing for search and answer engines.",
      "Goal: produce an outline that scales to the target length without breaking.",
      "Do NOT copy text from sources. Only paraphrase insights.",
      "Output JSON with keys: sections, internal_link_ideas, faq, glossary, diagram_ideas.",
      "",
      "Document requirements:",
      *_request_lines(request),
      "",
      "Structural element toggles:",
      llmo_options_text(request),
      "",
      "This is a comparison document; include sections that evaluate each candidate against the criteria." if comparison else "",
      input_data.research_context,
      "",
      "Constraints:",
      "- sections: 3-28 items (H2). Each planned_chars 1500-3000 (except intro/conclusion).",
      "- Add intent_tag per section (e.g. definition, comparison, steps, case study, caveats, FAQ).",
      "- Include experience, decision tradeoffs and failure cases.",
      "- Ensure headings are consistent and non-overlapping.",
    ]
  )


def render_section_prompt(input_data: SectionWriteInput) -> str:
  request = input_data.request
  return _join(
    [
      "You are an expert long-form writer.",
      "Write ONE section only, as markdown.",
      "Do NOT copy from sources; paraphrase ideas and add originality (experience, tradeoffs, examples, failure cases).",
      "Avoid generic filler. Be specific and practical.",
      "",
      f"Document title: {request.title}",
      f"Tone: {request.tone}",
      f"Forbidden: {' / '.join(request.forbidden)}" if request.forbidden else "",
      "",
      "Outline (for consistency):",
      input_data.outline_markdown,
      "",
      f"Recent context:\n{input_data.prior_digest}" if input_data.prior_digest else "",
      "",
      f"Write section index {input_data.index} with planned_chars ~{input_data.planned_chars}.",
      f"Section heading path: {input_data.heading_path}",
      "",
      "Rules:",
      "- Start with a '## ' heading (H2) that matches the outline.",
      "- Use H3/H4 as needed.",
      "- Include concrete checklists, steps or examples where appropriate.",
      "- Avoid repeating earlier sections.",
      f"\nReviewer feedback to address in this rewrite:\n{input_data.feedback}" if input_data.feedback else "",
      "",
      input_data.research_context,
    ]
  )


def render_consistency_prompt(input_data: ConsistencyInput) -> str:
  return _join(
    [
      "You are an editor. Check the section draft for:",
      "- contradictions with the outline or the recent context (kind=contradiction)",
      "- redundancy with previous sections (kind=duplication)",
      "- missing details versus the heading (kind=missing_detail)",
      "- tone or formatting problems (kind=style)",
      "Rate each issue low, medium or high severity.",
      "When an issue is a contradiction or duplication, also return the full corrected section as 'rewritten'.",
      "Output STRICT JSON only: {\"issues\": [{\"kind\": \"...\", \"severity\": \"...\", \"note\": \"...\"}], \"rewritten\": \"markdown or null\"}",
      "",
      f"Section heading path: {input_data.heading_path}",
      "",
      "Outline:",
      clamp_text(input_data.outline_markdown, 2200),
      "",
      f"Recent context:\n{input_data.prior_digest}" if input_data.prior_digest else "",
      "",
      "Section draft:",
      clamp_text(input_data.draft, 6000),
    ]
  )


def render_reference_prompt(input_data: ReferenceInput) -> str:
  return _join(
    [
      "You are a content analyst.",
      "Summarize and analyze this page WITHOUT copying sentences.",
      "Output STRICT JSON only with keys: summary, claims, structure, faq, internal_links.",
      "",
      f"URL: {input_data.url}",
      f"TITLE: {input_data.title}" if input_data.title else "",
      f"DESCRIPTION: {input_data.description}" if input_data.description else "",
      f"HEADINGS: {' / '.join(input_data.headings[:30])}" if input_data.headings else "",
      "",
      "BODY (truncated):",
      clamp_text(input_data.text, 12000),
    ]
  )


def render_comparison_table_prompt(input_data: ComparisonTableInput) -> str:
  request = input_data.request
  config = request.comparison_config()
  candidates = request.candidates[: config.max_candidates]
  candidate_lines = []
  for candidate in candidates:
    details = [candidate.name]
    if candidate.pricing and config.include_pricing:
      details.append(f"pricing: {candidate.pricing}")
    if candidate.features:
      details.append(f"features: {', '.join(candidate.features)}")
    if candidate.description:
      details.append(clamp_text(candidate.description, 600))
    candidate_lines.append("- " + " | ".join(details))

  return _join(
    [
      "You are a product analyst writing an impartial comparison.",
      "Produce ONE markdown table: one row per candidate, one column per criterion.",
      "Follow the table with at most three short bullet notes on how to choose.",
      "Do not invent prices; write 'unknown' when the data does not say.",
      "",
      f"Topic: {request.title}",
      f"Region: {config.region}" if config.region else "",
      f"Criteria: {', '.join(config.criteria)}",
      "",
      "Candidates:",
      "\n".join(candidate_lines) if candidate_lines else "- (derive candidates from the research below)",
      "",
      input_data.research_context,
    ]
  )


def render_extras_prompt(input_data: ExtrasInput) -> str:
  request = input_data.request
  if input_data.kind == "intro_ab":
    return _join(
      [
        "You are a copywriter for long-form article intros.",
        "Create two different intro drafts (A/B) for the article.",
        "A: logical and business-like. B: friendly and story-driven.",
        "Each 250-400 characters. No exaggeration. Avoid a generic AI tone.",
        "",
        f"Title: {request.title}",
        f"Keywords: {', '.join(request.keywords)}",
        f"Persona: {clamp_text(request.persona, 800)}" if request.persona else "",
        f"Intent: {clamp_text(request.search_intent, 800)}" if request.search_intent else "",
        "",
        "Output format:",
        "A: ...",
        "B: ...",
      ]
    )
  if input_data.kind == "internal_link":
    return _join(
      [
        "You are a content strategist.",
        "From the article, propose internal links that would strengthen topical authority.",
        "Output 8-15 items, each with an anchor, a suggested target type and a rationale.",
        "Do NOT invent existing pages. Use target types like 'service', 'pricing', 'comparison', 'case study', 'FAQ', 'glossary'.",
        "Output as a markdown bullet list (not JSON).",
        "",
        clamp_text(input_data.body, 8000),
      ]
    )
  return _join(
    [
      "You are a social media editor.",
      "Create: (1) a short post (<=140 chars), (2) a professional network post (~400 chars), (3) a call-to-action paragraph for the article end (80-140 chars).",
      "Avoid clickbait. Keep it specific and helpful.",
      "",
      f"Title: {request.title}",
      clamp_text(input_data.body, 5000),
    ]
  )


def render_diagram_proposal_prompt(input_data: DiagramProposalInput) -> str:
  return _join(
    [
      "You are a visual designer for articles.",
      f"Analyze the article below and propose up to {input_data.remaining} diagrams that help readers understand it.",
      "",
      f"Title: {input_data.title}",
      f"Headings: {' / '.join(input_data.headings[:15])}" if input_data.headings else "",
      f"Excerpt: {clamp_text(input_data.excerpt, 3500)}",
      "",
      'Output JSON only: {"diagrams": [{"title": "diagram title", "description": "detailed description an image model can draw"}]}',
    ]
  )
