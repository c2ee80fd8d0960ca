"""Fixed job topologies: ordered stages, step labels and progress weights."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Topology(str, Enum):
  """Supported job topologies; chosen once at job creation."""

  STANDARD = "standard"
  COMPARISON = "comparison"

  @classmethod
  def for_mode(cls, mode: str) -> Topology:
    return cls.COMPARISON if mode == "comparison_research" else cls.STANDARD


class Stage(str, Enum):
  INIT = "init"
  RESEARCH = "research"
  OUTLINE = "outline"
  SECTIONS = "sections"
  TABLE = "table"
  INTEGRATE = "integrate"
  MEDIA = "media"
  DONE = "done"


@dataclass(frozen=True)
class TopologySpec:
  """Ordered work stages of one topology with their progress weights (summing to 100)."""

  topology: Topology
  stages: tuple[Stage, ...]
  weights: dict[Stage, int]
  label_prefix: str = ""

  def label(self, stage: Stage) -> str:
    if stage is Stage.INIT:
      return Stage.INIT.value
    return f"{self.label_prefix}{stage.value}"

  def stage_for(self, step: str) -> Stage:
    """Resolve a persisted step label back to its stage."""
    if step == Stage.INIT.value:
      return Stage.INIT
    raw = step[len(self.label_prefix) :] if self.label_prefix and step.startswith(self.label_prefix) else step
    try:
      stage = Stage(raw)
    except ValueError as exc:
      raise ValueError(f"Unknown step '{step}' for topology '{self.topology.value}'.") from exc
    if stage is not Stage.DONE and stage not in self.stages:
      raise ValueError(f"Step '{step}' is not part of topology '{self.topology.value}'.")
    return stage

  @property
  def first_stage(self) -> Stage:
    return self.stages[0]

  def next_stage(self, stage: Stage, *, include_media: bool) -> Stage:
    """Return the stage after `stage`, skipping media when it is disabled."""
    position = self.stages.index(stage)
    for candidate in self.stages[position + 1 :]:
      if candidate is Stage.MEDIA and not include_media:
        continue
      return candidate
    return Stage.DONE

  def progress_before(self, stage: Stage) -> int:
    if stage is Stage.INIT:
      return 0
    if stage is Stage.DONE:
      return 100
    position = self.stages.index(stage)
    return sum(self.weights[item] for item in self.stages[:position])

  def progress_after(self, stage: Stage) -> int:
    if stage is Stage.DONE:
      return 100
    return self.progress_before(stage) + self.weights.get(stage, 0)

  def section_progress(self, cursor: int, total: int) -> int:
    """Progress while sections are written: base + weight * cursor / N."""
    base = self.progress_before(Stage.SECTIONS)
    if total <= 0:
      return base
    return base + (self.weights[Stage.SECTIONS] * min(cursor, total)) // total


TOPOLOGIES: dict[Topology, TopologySpec] = {
  Topology.STANDARD: TopologySpec(
    topology=Topology.STANDARD,
    stages=(Stage.OUTLINE, Stage.SECTIONS, Stage.INTEGRATE, Stage.MEDIA),
    weights={Stage.OUTLINE: 10, Stage.SECTIONS: 80, Stage.INTEGRATE: 5, Stage.MEDIA: 5},
  ),
  Topology.COMPARISON: TopologySpec(
    topology=Topology.COMPARISON,
    stages=(Stage.RESEARCH, Stage.OUTLINE, Stage.SECTIONS, Stage.TABLE, Stage.INTEGRATE, Stage.MEDIA),
    weights={Stage.RESEARCH: 10, Stage.OUTLINE: 10, Stage.SECTIONS: 65, Stage.TABLE: 5, Stage.INTEGRATE: 5, Stage.MEDIA: 5},
    label_prefix="cmp_",
  ),
}


def get_topology(value: str | Topology) -> TopologySpec:
  return TOPOLOGIES[Topology(value)]
