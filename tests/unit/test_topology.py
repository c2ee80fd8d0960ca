from __future__ import annotations

import pytest

from app.jobs.topology import Stage, Topology, get_topology


def test_mode_selects_topology() -> None:
  assert Topology.for_mode("standard") is Topology.STANDARD
  assert Topology.for_mode("comparison_research") is Topology.COMPARISON


@pytest.mark.parametrize("topology", list(Topology))
def test_weights_sum_to_one_hundred(topology: Topology) -> None:
  spec = get_topology(topology)
  assert sum(spec.weights[stage] for stage in spec.stages) == 100


def test_comparison_labels_are_prefixed_and_round_trip() -> None:
  spec = get_topology("comparison")
  assert spec.label(Stage.SECTIONS) == "cmp_sections"
  assert spec.label(Stage.INIT) == "init"
  assert spec.stage_for("cmp_table") is Stage.TABLE
  assert spec.stage_for("init") is Stage.INIT
  assert spec.stage_for("cmp_done") is Stage.DONE


def test_standard_topology_rejects_comparison_only_stage() -> None:
  spec = get_topology(Topology.STANDARD)
  with pytest.raises(ValueError):
    spec.stage_for("table")
  with pytest.raises(ValueError):
    spec.stage_for("bogus")


def test_next_stage_skips_media_unless_enabled() -> None:
  spec = get_topology(Topology.STANDARD)
  assert spec.first_stage is Stage.OUTLINE
  assert spec.next_stage(Stage.INTEGRATE, include_media=False) is Stage.DONE
  assert spec.next_stage(Stage.INTEGRATE, include_media=True) is Stage.MEDIA
  assert spec.next_stage(Stage.MEDIA, include_media=True) is Stage.DONE


def test_section_progress_is_linear_in_cursor() -> None:
  spec = get_topology(Topology.STANDARD)
  values = [spec.section_progress(cursor, 4) for cursor in range(5)]
  assert values == [10, 30, 50, 70, 90]
  assert spec.section_progress(0, 0) == 10
  assert spec.progress_after(Stage.INTEGRATE) == 95
  assert spec.progress_after(Stage.DONE) == 100


def test_comparison_progress_starts_after_research() -> None:
  spec = get_topology(Topology.COMPARISON)
  assert spec.progress_after(Stage.RESEARCH) == 10
  assert spec.progress_after(Stage.OUTLINE) == 20
  assert spec.section_progress(5, 5) == 85
