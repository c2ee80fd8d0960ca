"""Deterministic concatenation of reviewed sections into the document body."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from app.jobs.errors import InvariantViolation
from app.jobs.models import SectionRecord


def first_unreviewed_index(sections: Iterable[SectionRecord], expected_count: int) -> int | None:
  """Return the lowest index in [0, expected_count) that is missing or not reviewed."""
  by_index = {section.index: section for section in sections}
  for index in range(expected_count):
    section = by_index.get(index)
    if section is None or section.status != "reviewed":
      return index
  return None


def integrate(sections: Sequence[SectionRecord], *, expected_count: int, appendices: Sequence[str] = ()) -> str:
  """
  Concatenate reviewed sections in index order.

  Raises InvariantViolation when any index in [0, expected_count) is missing,
  not reviewed, or has no content; incomplete sections are never skipped.
  """
  if expected_count <= 0:
    raise InvariantViolation("Cannot integrate a document without sections.")

  blocking = first_unreviewed_index(sections, expected_count)
  if blocking is not None:
    raise InvariantViolation(f"Section {blocking} is not reviewed; integration requires all {expected_count} sections.")

  by_index = {section.index: section for section in sections}
  parts: list[str] = []
  for index in range(expected_count):
    content = (by_index[index].content or "").strip()
    if not content:
      raise InvariantViolation(f"Section {index} is reviewed but has no content.")
    parts.append(content)

  parts.extend(appendix.strip() for appendix in appendices if appendix and appendix.strip())
  return "\n\n".join(parts) + "\n"
