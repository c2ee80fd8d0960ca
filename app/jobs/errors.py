"""Domain errors raised by the job pipeline and its services."""

from __future__ import annotations


class JobNotFoundError(LookupError):
  """Raised when a job id does not resolve."""


class DocumentNotFoundError(LookupError):
  """Raised when a document id does not resolve."""


class SectionNotFoundError(LookupError):
  """Raised when a section id does not resolve."""


class AssetNotFoundError(LookupError):
  """Raised when an image asset id does not resolve."""


class SectionBusyError(RuntimeError):
  """Raised when another writer holds the section lease."""


class StepFailure(RuntimeError):
  """A pipeline step failed after its retry budget; the job moves to error."""


class InvariantViolation(RuntimeError):
  """The orchestrator was invoked out of order or stored state is inconsistent."""


class DocumentAlreadyDoneError(InvariantViolation):
  """A job was initialized against a document that already finished; the document keeps its state."""


class JobStateError(RuntimeError):
  """An external action is not allowed in the job's current state."""


class DocumentNotReadyError(RuntimeError):
  """Raised when media is requested before the document has a body."""


class AccessDeniedError(PermissionError):
  """Raised when the access gate refuses an action."""

  def __init__(self, reason: str, *, quota: bool = False) -> None:
    super().__init__(reason)
    self.reason = reason
    self.quota = quota
