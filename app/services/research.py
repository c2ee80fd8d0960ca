"""Fetch and summarize reference pages and comparison candidates for a document."""

from __future__ import annotations

import logging

from app.ai.agents.research import ReferenceSummaryAgent
from app.ai.errors import ProviderError
from app.ai.pipeline.contracts import DocumentRequest, JobContext, ReferenceInput
from app.jobs.errors import DocumentNotFoundError
from app.jobs.models import DocumentRecord
from app.services.page_fetcher import PageFetcher, PageFetchError
from app.storage.documents_repo import DocumentsRepository, KnowledgeItemRecord, ReferenceRecord
from app.utils.ids import generate_item_id, now_iso

logger = logging.getLogger(__name__)


def research_urls(request: DocumentRequest) -> list[str]:
  """Reference URLs plus candidate websites, deduplicated in order."""
  urls = list(request.reference_urls)
  if request.mode == "comparison_research":
    limit = request.comparison_config().max_candidates
    urls.extend(candidate.website_url for candidate in request.candidates[:limit] if candidate.website_url)
  seen: set[str] = set()
  ordered = []
  for url in urls:
    if url not in seen:
      seen.add(url)
      ordered.append(url)
  return ordered


class ReferenceResearcher:
  """Crawl each URL once, summarize it and store the result; failures skip the URL."""

  def __init__(self, *, repo: DocumentsRepository, fetcher: PageFetcher, summarizer: ReferenceSummaryAgent) -> None:
    self._repo = repo
    self._fetcher = fetcher
    self._summarizer = summarizer

  async def research_document(self, document_id: str) -> int:
    document = await self._repo.get_document(document_id)
    if document is None:
      raise DocumentNotFoundError(f"Document {document_id} not found.")
    return await self.research(document)

  async def research(self, document: DocumentRecord, *, job_id: str | None = None) -> int:
    """Return the number of references stored."""
    request = DocumentRequest.model_validate(document.request)
    stored = 0
    for url in research_urls(request):
      try:
        page = await self._fetcher.fetch(url)
        summary = await self._summarizer.run(ReferenceInput(url=url, title=page.title, description=page.description, headings=page.headings, text=page.text), JobContext(document_id=document.document_id, job_id=job_id))
      except (PageFetchError, ProviderError) as exc:
        logger.warning("Reference research failed url=%s document=%s: %s", url, document.document_id, exc)
        continue

      fetched_at = now_iso()
      insights = {"claims": summary.claims, "structure": summary.structure, "faq": summary.faq, "internal_links": summary.internal_links}
      await self._repo.upsert_reference(ReferenceRecord(reference_id=generate_item_id(), document_id=document.document_id, url=url, fetched_at=fetched_at, title=page.title, description=page.description, headings=page.headings, extracted_text=page.text, summary=summary.summary, insights=insights))
      claims = "\n- ".join(summary.claims)
      content = f"{summary.summary}\n\nClaims:\n- {claims}" if summary.claims else summary.summary
      await self._repo.add_knowledge_item(KnowledgeItemRecord(item_id=generate_item_id(), document_id=document.document_id, owner_id=document.owner_id, kind="insight", title=f"Reference notes: {page.title or url}", content=content, created_at=fetched_at, source_urls=[url]))
      stored += 1

    logger.info("Research stored=%d document=%s", stored, document.document_id)
    return stored
