from __future__ import annotations

import pytest

from app.ai.agents import ReferenceSummaryAgent
from app.services.page_fetcher import ExtractedPage, PageFetchError
from app.services.research import ReferenceResearcher, research_urls
from tests.fakes import FAST_POLICY, InMemoryDocumentsRepository, ScriptedTextModel, document_request, seed_document


class _Fetcher:
  def __init__(self, failing: set[str] | None = None) -> None:
    self.failing = failing or set()
    self.urls: list[str] = []

  async def fetch(self, url: str) -> ExtractedPage:
    self.urls.append(url)
    if url in self.failing:
      raise PageFetchError(f"Fetching {url} returned HTTP 500")
    return ExtractedPage(url=url, title=f"Title of {url}", description="desc", text="Body text.", headings=["Intro"])


def _researcher(repo: InMemoryDocumentsRepository, fetcher: _Fetcher) -> ReferenceResearcher:
  return ReferenceResearcher(repo=repo, fetcher=fetcher, summarizer=ReferenceSummaryAgent(model=ScriptedTextModel(), policy=FAST_POLICY))  # type: ignore[arg-type]


def test_research_urls_adds_candidates_only_in_comparison_mode() -> None:
  standard = document_request(reference_urls=["https://a.example.com"], candidates=[{"name": "B", "website_url": "https://b.example.com"}])
  assert research_urls(standard) == ["https://a.example.com"]

  comparison = document_request(
    mode="comparison_research",
    reference_urls=["https://a.example.com"],
    comparison={"max_candidates": 2},
    candidates=[
      {"name": "A", "website_url": "https://a.example.com"},
      {"name": "B"},
      {"name": "C", "website_url": "https://c.example.com"},
    ],
  )
  assert research_urls(comparison) == ["https://a.example.com"]


@pytest.mark.anyio
async def test_research_stores_reference_and_insight_per_url() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo, request=document_request(reference_urls=["https://a.example.com", "https://b.example.com"]))
  fetcher = _Fetcher(failing={"https://b.example.com"})

  stored = await _researcher(repo, fetcher).research(document, job_id="job-1")

  assert stored == 1
  assert fetcher.urls == ["https://a.example.com", "https://b.example.com"]
  references = await repo.list_references("doc-1")
  assert [reference.url for reference in references] == ["https://a.example.com"]
  assert references[0].summary == "A paraphrased summary."
  assert references[0].insights["claims"] == ["Claim one"]
  insights = await repo.list_knowledge_items("doc-1")
  assert insights[0].kind == "insight"
  assert insights[0].source_urls == ["https://a.example.com"]
  assert "Claims:\n- Claim one" in insights[0].content


@pytest.mark.anyio
async def test_research_twice_keeps_one_reference_per_url() -> None:
  repo = InMemoryDocumentsRepository()
  document = await seed_document(repo, request=document_request(reference_urls=["https://a.example.com"]))
  researcher = _researcher(repo, _Fetcher())

  await researcher.research(document)
  await researcher.research(document)

  assert len(await repo.list_references("doc-1")) == 1
