"""Schema package exports."""

from .documents import Document, DocumentImage, Job, KnowledgeItem, ReferenceSource, Section

__all__ = ["Document", "DocumentImage", "Job", "KnowledgeItem", "ReferenceSource", "Section"]
