"""Job status state machine shared by the producer and the worker."""

from __future__ import annotations

from enum import Enum

from slidejobs.jobs.errors import InvalidTransition


class JobStatus(str, Enum):
  """Lifecycle states of a slide generation job."""

  QUEUED = "queued"
  PROCESSING = "processing"
  COMPLETED = "completed"
  FAILED = "failed"

  @property
  def is_terminal(self) -> bool:
    return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# processing -> processing is the progress self-loop.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
  JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
  JobStatus.PROCESSING: frozenset({JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED}),
  JobStatus.COMPLETED: frozenset(),
  JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
  """Return True when the table allows moving from current to target."""
  return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(job_id: str, current: JobStatus, target: JobStatus) -> None:
  """Raise InvalidTransition unless current -> target is a legal move."""
  if not can_transition(current, target):
    raise InvalidTransition(job_id, current, target)


def parse_status(raw: object) -> JobStatus:
  """Coerce a stored status value into a JobStatus."""
  try:
    return JobStatus(str(raw))
  except ValueError as exc:
    raise ValueError(f"Unknown job status: {raw!r}") from exc
