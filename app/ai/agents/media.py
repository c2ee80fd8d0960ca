"""Media agents and prompt builders for banner and diagram assets."""

from __future__ import annotations

import io
import logging
import random
import re
from dataclasses import dataclass

from PIL import Image

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_diagram_proposal_prompt
from app.ai.backoff import retry_with_backoff
from app.ai.pipeline.contracts import DiagramProposal, DiagramProposalBatch, DiagramProposalInput, JobContext
from app.ai.providers.base import AspectRatio

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^#{1,3}\s+.+$", re.MULTILINE)
_HEADING_MARK_RE = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_IMAGE_RE = re.compile(r"!\[[^\]]*?\]\([^)]+\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_FENCE_RE = re.compile(r"`{3}[\s\S]*?`{3}")
_BLANKS_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class BannerPattern:
  """One named visual direction for banner generation."""

  key: str
  label: str
  direction: str


BANNER_PATTERNS: tuple[BannerPattern, ...] = (
  BannerPattern("bold_typography", "Bold typography", "Large, confident headline lettering on a flat color field; strong contrast and generous margins."),
  BannerPattern("minimal_flat", "Minimal flat", "Flat vector shapes, two or three colors, lots of whitespace, a single focal icon."),
  BannerPattern("isometric", "Isometric", "Isometric 3D scene that depicts the topic as a small, tidy world; soft shadows."),
  BannerPattern("photo_real", "Photo-real", "Photorealistic scene with shallow depth of field that evokes the reader's situation."),
  BannerPattern("gradient_glass", "Gradient glass", "Smooth gradient background with frosted-glass cards floating in the foreground."),
  BannerPattern("hand_drawn", "Hand-drawn", "Warm hand-drawn illustration with visible pencil texture and friendly characters."),
  BannerPattern("infographic", "Infographic", "Simplified infographic with three key icons and arrows summarizing the article."),
  BannerPattern("retro_poster", "Retro poster", "Mid-century poster style with halftone texture and a limited palette."),
  BannerPattern("corporate_clean", "Corporate clean", "Clean business aesthetic, blue and white palette, abstract geometric accents."),
  BannerPattern("split_before_after", "Before / after", "Split composition contrasting the problem on the left and the solution on the right."),
  BannerPattern("dark_tech", "Dark tech", "Dark background with neon accent lines and subtle grid, modern technology feel."),
  BannerPattern("paper_cutout", "Paper cut-out", "Layered paper cut-out shapes with soft drop shadows and pastel colors."),
)

_GENRE_HINTS: tuple[tuple[str, tuple[str, ...]], ...] = (
  ("technology", ("software", "ai", "api", "cloud", "app", "data", "security", "developer")),
  ("business", ("marketing", "sales", "strategy", "management", "startup", "seo", "brand")),
  ("finance", ("tax", "invest", "loan", "budget", "price", "cost", "insurance")),
  ("health", ("health", "fitness", "diet", "sleep", "medical", "wellness")),
  ("education", ("learn", "study", "course", "exam", "school", "training")),
  ("lifestyle", ("travel", "food", "home", "fashion", "hobby", "family")),
)


def pick_random_patterns(count: int, *, rng: random.Random | None = None) -> list[BannerPattern]:
  """Pick `count` distinct patterns from the catalog."""
  count = max(0, min(count, len(BANNER_PATTERNS)))
  return (rng or random).sample(list(BANNER_PATTERNS), count)


def guess_genre(text: str) -> str:
  """Guess a coarse genre from title, headings and body text."""
  lowered = text.lower()
  tokens = set(re.findall(r"[a-z]+", lowered))
  best, best_score = "general", 0
  for genre, hints in _GENRE_HINTS:
    score = sum(1 for hint in hints if hint in tokens)
    if score > best_score:
      best, best_score = genre, score
  return best


def clean_article_text(markdown: str, *, limit: int = 5000) -> str:
  """Strip images, links, code fences and heading marks from markdown."""
  text = _IMAGE_RE.sub("", markdown)
  text = _LINK_RE.sub(r"\1", text)
  text = _FENCE_RE.sub("", text)
  text = _HEADING_MARK_RE.sub("", text)
  text = _BLANKS_RE.sub("\n\n", text).strip()
  return text[:limit]


def extract_headings(markdown: str, *, limit: int = 16) -> list[str]:
  """Return plain heading text for `#` to `###` headings."""
  headings = [_HEADING_MARK_RE.sub("", match).strip() for match in _HEADING_RE.findall(markdown)]
  return [heading for heading in headings if heading][:limit]


def build_banner_prompt(pattern: BannerPattern, *, title: str, article_text: str, genre: str) -> str:
  return "\n".join(
    [
      "Design a wide hero banner for the article below.",
      f"Style: {pattern.label}. {pattern.direction}",
      f"Genre: {genre}",
      f"Article title: {title}",
      "Render the title legibly; no logos, no watermarks, no extra small text.",
      "",
      "Article content (for theme and motifs):",
      article_text,
    ]
  )


def build_diagram_prompt(*, article_content: str, title: str, description: str) -> str:
  lines = [
    "You are a designer who specializes in explanatory diagrams for articles.",
    "Create a diagram that anyone can understand at a glance.",
    "Bright, friendly palette; thick lines; large elements; white or light single-color background.",
    "Do not cram information; keep the layout organized.",
    "",
    "Source article:",
    article_content,
    "",
    "Message of this diagram (one idea only):",
    title.strip(),
  ]
  if description.strip():
    lines.append(f"Details: {description.strip()}")
  return "\n".join(lines)


def fallback_diagram_proposals(headings: list[str], *, title: str, count: int) -> list[DiagramProposal]:
  """Derive diagram proposals from headings when the proposal step falls short."""
  proposals = []
  for position, heading in enumerate(headings[:count], start=1):
    label = heading or f"Diagram {position}"
    description = f"Visualize the key points of '{label}' from the article '{title}' so they are clear at a glance. Use bullets, a flow or a comparison as needed, with icons, arrows and frames on a white background with ample margins."
    proposals.append(DiagramProposal(title=label, description=description))
  return proposals


class DiagramProposalAgent(BaseAgent[DiagramProposalInput, list[DiagramProposal]]):
  """Propose diagram titles and descriptions from document content."""

  name = "DiagramProposal"

  async def run(self, input_data: DiagramProposalInput, ctx: JobContext) -> list[DiagramProposal]:
    if input_data.remaining <= 0:
      return []
    batch = await self._generate_validated(render_diagram_proposal_prompt(input_data), DiagramProposalBatch, purpose="diagram_proposals")
    return batch.diagrams[: input_data.remaining]


@dataclass(frozen=True)
class ImageRequest:
  prompt: str
  aspect_ratio: AspectRatio = "1:1"


@dataclass(frozen=True)
class GeneratedImage:
  """WebP image bytes with their dimensions."""

  data: bytes
  mime_type: str
  width: int
  height: int


class ImageAgent(BaseAgent[ImageRequest, GeneratedImage]):
  """Generate one image and normalize it to WebP."""

  name = "Image"

  async def run(self, input_data: ImageRequest, ctx: JobContext) -> GeneratedImage:
    response = await retry_with_backoff(self._model.generate_image, input_data.prompt, aspect_ratio=input_data.aspect_ratio, policy=self._policy, operation=f"{self.name}.generate")
    webp, width, height = _convert_to_webp(response.data)
    logger.debug("Generated image document=%s bytes=%d size=%dx%d", ctx.document_id, len(webp), width, height)
    return GeneratedImage(data=webp, mime_type="image/webp", width=width, height=height)


def _convert_to_webp(image_bytes: bytes) -> tuple[bytes, int, int]:
  """Convert provider image bytes into a WebP payload."""
  image = Image.open(io.BytesIO(image_bytes))
  converted = image.convert("RGBA") if image.mode not in {"RGB", "RGBA"} else image
  output = io.BytesIO()
  converted.save(output, format="WEBP", quality=88, method=6)
  return output.getvalue(), converted.width, converted.height


