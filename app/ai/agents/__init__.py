"""Agent implementations."""

from app.ai.agents.base import BaseAgent
from app.ai.agents.comparison import ComparisonTableAgent
from app.ai.agents.consistency import ConsistencyAgent
from app.ai.agents.extras import ExtrasAgent
from app.ai.agents.media import DiagramProposalAgent, ImageAgent
from app.ai.agents.outline import OutlineAgent
from app.ai.agents.research import ReferenceSummaryAgent
from app.ai.agents.section_writer import SectionWriterAgent

__all__ = ["BaseAgent", "ComparisonTableAgent", "ConsistencyAgent", "DiagramProposalAgent", "ExtrasAgent", "ImageAgent", "OutlineAgent", "ReferenceSummaryAgent", "SectionWriterAgent"]
