"""Error taxonomy for the job lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
  from slidejobs.jobs.state import JobStatus


class JobError(Exception):
  """Base class for job lifecycle failures."""

  def __init__(self, message: str, *, job_id: str | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.job_id = job_id


class StoreReadFailed(JobError):
  """The document store could not be read."""


class StoreWriteFailed(JobError):
  """The document store rejected or failed a write."""


class FileStageFailed(JobError):
  """An uploaded file could not be staged for the worker."""


class FileReadFailed(JobError):
  """A staged file could not be read back by the worker."""


class DispatchFailed(JobError):
  """The job could not be handed off to the worker."""


class DispatchTransportFailed(DispatchFailed):
  """The dispatch call failed at the network level (including timeouts)."""


class DispatchRejected(DispatchFailed):
  """The worker answered the dispatch call with a non-success status."""

  def __init__(self, message: str, *, job_id: str | None = None, status_code: int, body: str = "") -> None:
    super().__init__(message, job_id=job_id)
    self.status_code = status_code
    self.body = body


class RenderFailed(JobError):
  """The content renderer failed to produce the artifacts."""


class ResultPersistFailed(JobError):
  """The rendered artifacts could not be stored."""


class JobNotFound(JobError):
  """No live job record exists for the identifier."""


class ResultNotFound(JobError):
  """No result record exists for the identifier."""


class ResultExpired(JobError):
  """The result existed but its retention window has passed."""


class WatchCancelled(JobError):
  """The subscriber cancelled a status watch."""


class InvalidTransition(JobError):
  """A status change was rejected by the job state machine."""

  def __init__(self, job_id: str, current: JobStatus, target: JobStatus) -> None:
    super().__init__(f"Job {job_id} cannot move from {current.value} to {target.value}", job_id=job_id)
    self.current = current
    self.target = target
