from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta

import pytest

from app.ai.agents import DiagramProposalAgent, ImageAgent
from app.jobs.errors import AssetNotFoundError, DocumentNotReadyError
from app.jobs.media import MediaAssetOrchestrator
from app.storage.documents_repo import ImageAssetRecord
from tests.fakes import FAST_POLICY, NOW, FakeImageModel, InMemoryAssetStorage, InMemoryDocumentsRepository, ScriptedTextModel, seed_document

BODY = "\n\n".join(f"## Step {index}\n\nDetails about step {index}." for index in range(1, 13))


def _orchestrator(repo: InMemoryDocumentsRepository, *, text: ScriptedTextModel | None = None, images: FakeImageModel | None = None, storage: InMemoryAssetStorage | None = None) -> MediaAssetOrchestrator:
  model = text or ScriptedTextModel()
  return MediaAssetOrchestrator(
    repo=repo,
    proposals=DiagramProposalAgent(model=model, policy=FAST_POLICY),
    images=ImageAgent(model=images or FakeImageModel(), policy=FAST_POLICY),
    storage=storage or InMemoryAssetStorage(),
    lease_ttl_seconds=60,
    pacing_seconds=0.0,
    rng=random.Random(7),
  )


def _proposals(count: int) -> list[dict[str, str]]:
  return [{"title": f"Diagram {index}", "description": f"Flow of step {index}"} for index in range(count)]


def _counts(assets: list[ImageAssetRecord]) -> dict[str, int]:
  counts = {"BANNER": 0, "DIAGRAM": 0}
  for asset in assets:
    counts[asset.kind] += 1
  return counts


@pytest.mark.anyio
async def test_ensure_assets_fills_caps_and_stores_webp() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  storage = InMemoryAssetStorage()
  images = FakeImageModel()

  assets = await _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(10)), images=images, storage=storage).ensure_assets("doc-1")

  assert _counts(assets) == {"BANNER": 4, "DIAGRAM": 10}
  assert len(storage.objects) == 14
  banner = next(asset for asset in assets if asset.kind == "BANNER")
  assert banner.mime_type == "image/webp"
  assert banner.file_path.startswith("documents/doc-1/banner_")
  assert storage.objects[banner.file_path][:4] == b"RIFF"
  assert (banner.width, banner.height) == (32, 18)
  assert sorted({ratio for _prompt, ratio in images.prompts}) == ["16:9", "1:1"]
  assert len({asset.title for asset in assets if asset.kind == "BANNER"}) == 4
  assert repo.documents["doc-1"].media_lease_token is None


@pytest.mark.anyio
async def test_ensure_assets_is_idempotent_once_full() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  images = FakeImageModel()
  orchestrator = _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(10)), images=images)

  first = await orchestrator.ensure_assets("doc-1")
  calls = len(images.prompts)
  second = await orchestrator.ensure_assets("doc-1")

  assert len(images.prompts) == calls
  assert sorted(asset.asset_id for asset in second) == sorted(asset.asset_id for asset in first)


@pytest.mark.anyio
async def test_ensure_assets_only_tops_up_missing_slots() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  for index in range(3):
    await repo.add_asset_capped(ImageAssetRecord(asset_id=f"b{index}", document_id="doc-1", kind="BANNER", title="Existing", description="", prompt="p", file_path=f"documents/doc-1/b{index}.webp", mime_type="image/webp", created_at=NOW), 4)
  images = FakeImageModel()

  assets = await _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(10)), images=images).ensure_assets("doc-1")

  assert _counts(assets) == {"BANNER": 4, "DIAGRAM": 10}
  assert sum(1 for _prompt, ratio in images.prompts if ratio == "16:9") == 1
  assert {"b0", "b1", "b2"} <= {asset.asset_id for asset in assets}


@pytest.mark.anyio
async def test_short_proposals_fall_back_to_headings() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)

  assets = await _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(3))).ensure_assets("doc-1")

  diagrams = [asset.title for asset in reversed(assets) if asset.kind == "DIAGRAM"]
  assert diagrams[:3] == ["Diagram 0", "Diagram 1", "Diagram 2"]
  assert diagrams[3:] == [f"Step {index}" for index in range(1, 8)]


@pytest.mark.anyio
async def test_proposal_failure_uses_headings_only() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)

  assets = await _orchestrator(repo, text=ScriptedTextModel(diagram_error=RuntimeError("Unauthorized"))).ensure_assets("doc-1")

  assert _counts(assets)["DIAGRAM"] == 10
  assert all(asset.title.startswith("Step ") for asset in assets if asset.kind == "DIAGRAM")


@pytest.mark.anyio
async def test_per_item_failures_are_skipped() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  images = FakeImageModel(fail_when=lambda prompt: "Diagram 1" in prompt or "Diagram 4" in prompt)

  assets = await _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(10)), images=images).ensure_assets("doc-1")

  assert _counts(assets) == {"BANNER": 4, "DIAGRAM": 8}
  assert "Diagram 1" not in {asset.title for asset in assets}


@pytest.mark.anyio
async def test_concurrent_top_up_is_a_noop() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  await repo.update_document("doc-1", media_lease_token="other", media_lease_expires_at=datetime.now(UTC) + timedelta(minutes=5))
  images = FakeImageModel()

  assets = await _orchestrator(repo, images=images).ensure_assets("doc-1")

  assert assets == []
  assert images.prompts == []
  assert repo.documents["doc-1"].media_lease_token == "other"


@pytest.mark.anyio
async def test_cap_guard_discards_image_when_slot_was_taken(monkeypatch: pytest.MonkeyPatch) -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  storage = InMemoryAssetStorage()

  async def _always_full(record: ImageAssetRecord, cap: int) -> ImageAssetRecord | None:
    return None

  monkeypatch.setattr(repo, "add_asset_capped", _always_full)
  assets = await _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(10)), storage=storage).ensure_assets("doc-1")

  assert assets == []
  assert storage.objects == {}


@pytest.mark.anyio
async def test_media_requires_document_body() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo)

  with pytest.raises(DocumentNotReadyError):
    await _orchestrator(repo).ensure_assets("doc-1")


@pytest.mark.anyio
async def test_regenerate_asset_replaces_image_in_place() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  storage = InMemoryAssetStorage()
  orchestrator = _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(10)), storage=storage)
  assets = await orchestrator.ensure_assets("doc-1")
  diagram = next(asset for asset in assets if asset.kind == "DIAGRAM")

  updated = await orchestrator.regenerate_asset(diagram.asset_id)

  assert updated.asset_id == diagram.asset_id
  assert updated.title == diagram.title
  assert updated.file_path != diagram.file_path
  assert diagram.file_path not in storage.objects
  assert updated.file_path in storage.objects
  assert _counts(await repo.list_assets("doc-1")) == {"BANNER": 4, "DIAGRAM": 10}


@pytest.mark.anyio
async def test_delete_asset_frees_a_slot_for_the_next_top_up() -> None:
  repo = InMemoryDocumentsRepository()
  await seed_document(repo, body=BODY)
  storage = InMemoryAssetStorage()
  orchestrator = _orchestrator(repo, text=ScriptedTextModel(diagrams=_proposals(10)), storage=storage)
  assets = await orchestrator.ensure_assets("doc-1")
  banner = next(asset for asset in assets if asset.kind == "BANNER")

  await orchestrator.delete_asset(banner.asset_id)
  assert banner.file_path not in storage.objects
  assert _counts(await repo.list_assets("doc-1"))["BANNER"] == 3

  refilled = await orchestrator.ensure_assets("doc-1")
  assert _counts(refilled) == {"BANNER": 4, "DIAGRAM": 10}

  with pytest.raises(AssetNotFoundError):
    await orchestrator.delete_asset(banner.asset_id)
