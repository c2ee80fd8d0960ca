"""Shared data contracts for the generation pipeline."""

from __future__ import annotations

import json
import math
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

Tone = Literal["polite", "casual", "business", "expert"]
DocumentMode = Literal["standard", "comparison_research"]
IssueKind = Literal["contradiction", "duplication", "missing_detail", "style"]
Severity = Literal["low", "medium", "high"]

SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2}


def _require_http_url(value: str) -> str:
  parsed = urlparse(value.strip())
  if parsed.scheme not in ("http", "https") or not parsed.netloc:
    raise ValueError(f"'{value}' is not an http(s) URL.")
  return value.strip()


class LlmoOptions(BaseModel):
  """Answer-engine friendly structural elements; each toggles one part of the output."""

  tldr: bool = True
  conclusion_first: bool = True
  faq: bool = True
  glossary: bool = True
  comparison: bool = True
  quotes: bool = True
  templates: bool = True
  objections: bool = True
  model_config = ConfigDict(extra="forbid")

  def enabled(self) -> list[str]:
    return [name for name, value in self.model_dump().items() if value]


class ComparisonConfig(BaseModel):
  """Settings for comparison-research documents."""

  max_candidates: int = Field(default=8, ge=1, le=20)
  criteria: list[str] = Field(default_factory=lambda: ["pricing", "key features", "ease of use", "support"], max_length=12)
  region: str | None = Field(default=None, max_length=100)
  include_pricing: bool = True
  model_config = ConfigDict(extra="forbid")


class ComparisonCandidate(BaseModel):
  """One product or service compared in a comparison-research document."""

  name: str = Field(min_length=1, max_length=200)
  website_url: str | None = None
  pricing: str | None = Field(default=None, max_length=1000)
  features: list[str] = Field(default_factory=list, max_length=30)
  description: str | None = Field(default=None, max_length=3000)
  model_config = ConfigDict(extra="forbid")

  @field_validator("website_url")
  @classmethod
  def validate_url(cls, value: str | None) -> str | None:
    return _require_http_url(value) if value else None


class DocumentRequest(BaseModel):
  """Inputs describing the document to generate."""

  title: str = Field(min_length=1, max_length=200)
  keywords: list[str] = Field(min_length=1, max_length=50)
  persona: str = Field(default="", max_length=5000)
  search_intent: str = Field(default="", max_length=5000)
  target_chars: int = Field(ge=1000, le=60000)
  reference_urls: list[str] = Field(default_factory=list, max_length=20)
  tone: Tone = "polite"
  forbidden: list[str] = Field(default_factory=list, max_length=50)
  request_text: str | None = Field(default=None, max_length=50000)
  llmo: LlmoOptions = Field(default_factory=LlmoOptions)
  mode: DocumentMode = "standard"
  comparison: ComparisonConfig | None = None
  candidates: list[ComparisonCandidate] = Field(default_factory=list, max_length=20)
  model_config = ConfigDict(extra="forbid")

  @field_validator("keywords")
  @classmethod
  def validate_keywords(cls, value: list[str]) -> list[str]:
    cleaned = [item.strip() for item in value]
    if any(not item or len(item) > 100 for item in cleaned):
      raise ValueError("Keywords must be 1-100 characters.")
    return cleaned

  @field_validator("forbidden")
  @classmethod
  def validate_forbidden(cls, value: list[str]) -> list[str]:
    cleaned = [item.strip() for item in value]
    if any(not item or len(item) > 200 for item in cleaned):
      raise ValueError("Forbidden phrases must be 1-200 characters.")
    return cleaned

  @field_validator("reference_urls")
  @classmethod
  def validate_reference_urls(cls, value: list[str]) -> list[str]:
    return [_require_http_url(item) for item in value]

  def comparison_config(self) -> ComparisonConfig:
    return self.comparison or ComparisonConfig()


class JobContext(BaseModel):
  """Context metadata for one generation call."""

  document_id: str
  job_id: str | None = None
  provider: str | None = None
  model: str | None = None
  metadata: dict[str, Any] | None = None


def _coerce_outline_text(value: Any) -> str:
  """Models sometimes return objects where strings are expected; pick the obvious text field."""
  if isinstance(value, str):
    return value
  if isinstance(value, dict):
    for key in ("text", "value", "title", "name", "q", "question", "term"):
      picked = value.get(key)
      if isinstance(picked, str) and picked:
        return picked
    return json.dumps(value, ensure_ascii=False)
  return ""


class DiagramIdea(BaseModel):
  title: str
  description: str
  insertion_hint: str = ""


class OutlineSection(BaseModel):
  """One H2 section of the outline."""

  h2: str = Field(min_length=1)
  intent_tag: str = ""
  planned_chars: int = 2000
  h3: list[str] = Field(default_factory=list)
  h4: dict[str, list[str]] = Field(default_factory=dict)

  @field_validator("intent_tag", mode="before")
  @classmethod
  def coerce_intent(cls, value: Any) -> str:
    return value if isinstance(value, str) else ""

  @field_validator("planned_chars", mode="before")
  @classmethod
  def coerce_planned_chars(cls, value: Any) -> int:
    # Clamp instead of rejecting so an over-eager model does not stall generation.
    if value is None or isinstance(value, bool):
      return 2000
    try:
      number = float(value)
    except (TypeError, ValueError):
      return 2000
    if not math.isfinite(number):
      return 2000
    return max(800, min(3500, round(number)))

  @field_validator("h3", mode="before")
  @classmethod
  def coerce_h3(cls, value: Any) -> list[str]:
    if not isinstance(value, list):
      return []
    return [text for text in (_coerce_outline_text(item).strip() for item in value) if text]

  @field_validator("h4", mode="before")
  @classmethod
  def coerce_h4(cls, value: Any) -> dict[str, list[str]]:
    if not isinstance(value, dict):
      return {}
    return {str(key): [str(item) for item in items if str(item).strip()] for key, items in value.items() if isinstance(items, list)}


class OutlinePlan(BaseModel):
  """Structured outline returned by the outline generator."""

  sections: list[OutlineSection] = Field(min_length=3)
  internal_link_ideas: list[str] = Field(default_factory=list)
  faq: list[str] = Field(default_factory=list)
  glossary: list[str] = Field(default_factory=list)
  diagram_ideas: list[DiagramIdea] = Field(default_factory=list)

  @field_validator("internal_link_ideas", "faq", "glossary", mode="before")
  @classmethod
  def coerce_text_lists(cls, value: Any) -> list[str]:
    if not isinstance(value, list):
      return []
    return [text for text in (_coerce_outline_text(item).strip() for item in value) if text]


class SectionDraft(BaseModel):
  """Prose produced for one section plus the prompt that produced it."""

  content: str
  prompt: str


class ConsistencyIssue(BaseModel):
  kind: IssueKind = "style"
  severity: Severity = "low"
  note: str


class ConsistencyReport(BaseModel):
  """Findings of the consistency check for one section draft."""

  issues: list[ConsistencyIssue] = Field(default_factory=list)
  rewritten: str | None = None

  @field_validator("issues", mode="before")
  @classmethod
  def coerce_issues(cls, value: Any) -> list[Any]:
    # Bare strings are treated as low-severity style notes.
    if not isinstance(value, list):
      return []
    return [{"note": item} if isinstance(item, str) else item for item in value]

  def to_notes(self) -> str | None:
    if not self.issues:
      return None
    lines = [f"- [{issue.severity}/{issue.kind}] {issue.note}" for issue in self.issues]
    return "ISSUES:\n" + "\n".join(lines)


class ReferenceSummary(BaseModel):
  """Paraphrased analysis of one reference page."""

  summary: str
  claims: list[str] = Field(default_factory=list)
  structure: list[str] = Field(default_factory=list)
  faq: list[str] = Field(default_factory=list)
  internal_links: list[str] = Field(default_factory=list)


class DiagramProposal(BaseModel):
  title: str = Field(min_length=1)
  description: str = Field(min_length=1)


class DiagramProposalBatch(BaseModel):
  diagrams: list[DiagramProposal] = Field(default_factory=list)


class OutlineInput(BaseModel):
  request: DocumentRequest
  research_context: str = ""


class SectionWriteInput(BaseModel):
  """Everything the section writer needs for one section."""

  request: DocumentRequest
  index: int
  heading_path: str
  planned_chars: int
  outline_markdown: str = ""
  prior_digest: str = ""
  research_context: str = ""
  feedback: str | None = None


class ConsistencyInput(BaseModel):
  heading_path: str
  draft: str
  outline_markdown: str = ""
  prior_digest: str = ""


class ReferenceInput(BaseModel):
  """Extracted page content handed to the reference summarizer."""

  url: str
  title: str = ""
  description: str = ""
  headings: list[str] = Field(default_factory=list)
  text: str = ""


class ComparisonTableInput(BaseModel):
  request: DocumentRequest
  research_context: str = ""


ExtraKind = Literal["intro_ab", "internal_link", "social"]


class ExtrasInput(BaseModel):
  kind: ExtraKind
  request: DocumentRequest
  body: str = ""


class DiagramProposalInput(BaseModel):
  title: str
  headings: list[str] = Field(default_factory=list)
  excerpt: str = ""
  remaining: int = Field(ge=0)
