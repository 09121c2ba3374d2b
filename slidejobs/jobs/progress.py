"""Progress sink handed to the content renderer."""

from __future__ import annotations

from slidejobs.jobs.state import JobStatus
from slidejobs.storage.jobs_repo import JobsRepository

_PROCESSING_ONLY = frozenset({JobStatus.PROCESSING})


class JobProgressReporter:
  """Turn renderer progress messages into `processing` status updates.

  Each call replaces the job message and refreshes ``updatedAt``, which also
  serves as the processing heartbeat. Writes only apply while the job is still
  processing, so a job failed elsewhere raises InvalidTransition here and the
  renderer stops early.
  """

  def __init__(self, repo: JobsRepository, job_id: str) -> None:
    self._repo = repo
    self._job_id = job_id
    self.messages: list[str] = []

  @property
  def job_id(self) -> str:
    return self._job_id

  async def __call__(self, message: str) -> None:
    await self._repo.transition(self._job_id, JobStatus.PROCESSING, message, expected=_PROCESSING_ONLY)
    self.messages.append(message)
