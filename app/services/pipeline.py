"""Wiring of agents, storage and pipeline components from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from app.ai.agents import ComparisonTableAgent, ConsistencyAgent, DiagramProposalAgent, ExtrasAgent, ImageAgent, OutlineAgent, ReferenceSummaryAgent, SectionWriterAgent
from app.ai.backoff import RetryPolicy
from app.ai.providers.base import AIModel
from app.ai.router import get_image_model, get_text_model
from app.config import Settings, get_settings
from app.jobs.media import MediaAssetOrchestrator
from app.jobs.orchestrator import JobOrchestrator
from app.jobs.sections import ConsistencyPolicy, SectionPipeline
from app.services.access import AccessGate
from app.services.documents import DocumentService
from app.services.page_fetcher import PageFetcher
from app.services.research import ReferenceResearcher
from app.services.storage_client import AssetStorage, build_asset_storage
from app.services.tasks.factory import get_task_enqueuer
from app.services.tasks.interface import TaskEnqueuer
from app.storage.documents_repo import DocumentsRepository
from app.storage.factory import get_documents_repo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pipeline:
  """The assembled components shared by the API routes and the task endpoint."""

  repo: DocumentsRepository
  orchestrator: JobOrchestrator
  sections: SectionPipeline
  media: MediaAssetOrchestrator
  researcher: ReferenceResearcher
  documents: DocumentService
  enqueuer: TaskEnqueuer | None


def build_pipeline(
  settings: Settings,
  repo: DocumentsRepository,
  *,
  text_model: AIModel | None = None,
  image_model: AIModel | None = None,
  storage: AssetStorage | None = None,
  fetcher: PageFetcher | None = None,
  enqueuer: TaskEnqueuer | None = None,
  text_policy: RetryPolicy | None = None,
  image_policy: RetryPolicy | None = None,
) -> Pipeline:
  """Assemble the pipeline; explicit collaborators override the settings-derived defaults."""
  text_model = text_model or get_text_model(settings)
  image_model = image_model or get_image_model(settings)
  text_policy = text_policy or RetryPolicy.from_settings(settings)
  image_policy = image_policy or RetryPolicy.from_settings(settings, timeout=settings.image_timeout_seconds)

  sections = SectionPipeline(
    repo=repo,
    writer=SectionWriterAgent(model=text_model, policy=text_policy),
    checker=ConsistencyAgent(model=text_model, policy=text_policy),
    policy=ConsistencyPolicy.from_settings(settings),
    lease_ttl_seconds=settings.lease_ttl_seconds,
  )
  media = MediaAssetOrchestrator(
    repo=repo,
    proposals=DiagramProposalAgent(model=text_model, policy=text_policy),
    images=ImageAgent(model=image_model, policy=image_policy),
    storage=storage or build_asset_storage(settings),
    lease_ttl_seconds=settings.lease_ttl_seconds,
    pacing_seconds=settings.media_pacing_seconds,
  )
  researcher = ReferenceResearcher(repo=repo, fetcher=fetcher or PageFetcher(), summarizer=ReferenceSummaryAgent(model=text_model, policy=text_policy))
  orchestrator = JobOrchestrator(
    repo=repo,
    outline_agent=OutlineAgent(model=text_model, policy=text_policy),
    sections=sections,
    researcher=researcher,
    table_agent=ComparisonTableAgent(model=text_model, policy=text_policy),
    extras_agent=ExtrasAgent(model=text_model, policy=text_policy),
    media=media,
    lease_ttl_seconds=settings.lease_ttl_seconds,
    auto_media=settings.auto_media,
  )
  documents = DocumentService(repo=repo, gate=AccessGate(repo, settings), orchestrator=orchestrator, sections=sections, researcher=researcher, media=media, enqueuer=enqueuer)
  return Pipeline(repo=repo, orchestrator=orchestrator, sections=sections, media=media, researcher=researcher, documents=documents, enqueuer=enqueuer)


def _default_enqueuer(settings: Settings) -> TaskEnqueuer | None:
  # Without a base URL and shared secret the task endpoint cannot be reached; callers poll advance instead.
  if not settings.base_url or not settings.task_secret:
    logger.info("Background task driver disabled; jobs advance only when polled.")
    return None
  return get_task_enqueuer(settings)


@lru_cache(maxsize=1)
def get_pipeline() -> Pipeline:
  """Process-wide pipeline built from environment settings."""
  settings = get_settings()
  return build_pipeline(settings, get_documents_repo(), enqueuer=_default_enqueuer(settings))
