"""Pipeline contracts."""

from app.ai.pipeline.contracts import ComparisonCandidate, ComparisonConfig, ConsistencyReport, DocumentRequest, JobContext, LlmoOptions, OutlinePlan, OutlineSection, SectionDraft

__all__ = ["ComparisonCandidate", "ComparisonConfig", "ConsistencyReport", "DocumentRequest", "JobContext", "LlmoOptions", "OutlinePlan", "OutlineSection", "SectionDraft"]
