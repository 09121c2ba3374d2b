"""Read-side helpers shared by the producer, the watcher and the HTTP layer."""

from __future__ import annotations

import logging
from collections.abc import Callable

from slidejobs.jobs.errors import InvalidTransition, JobError, JobNotFound, ResultExpired, ResultNotFound
from slidejobs.jobs.models import JobRecord, JobUpdate, ResultRecord, now_epoch
from slidejobs.jobs.state import JobStatus
from slidejobs.storage.jobs_repo import JobsRepository, ResultsRepository

logger = logging.getLogger(__name__)


class JobLookup:
  """Resolve job and result records, applying lazy expiry on read.

  Records whose ``expiresAt`` has passed are deleted by the read that finds
  them. A ``processing`` job whose last heartbeat is older than the
  processing deadline is failed on read through a conditional transition.
  """

  def __init__(self, jobs: JobsRepository, results: ResultsRepository, *, processing_deadline_seconds: int = 0, clock: Callable[[], int] = now_epoch) -> None:
    self._jobs = jobs
    self._results = results
    self._deadline = processing_deadline_seconds
    self._clock = clock

  def now(self) -> int:
    return self._clock()

  def stale_at(self, record: JobRecord) -> int | None:
    """Epoch second after which a processing job counts as stuck, or None."""
    if self._deadline <= 0 or record.status != JobStatus.PROCESSING:
      return None
    return record.updated_at + self._deadline

  async def load_job(self, job_id: str) -> JobRecord:
    record = await self._jobs.get_job(job_id)
    if record is None:
      raise JobNotFound(f"Job {job_id} not found", job_id=job_id)

    now = self._clock()
    if record.is_expired(now):
      try:
        await self._jobs.delete_job(job_id)
        logger.info("Deleted expired job %s", job_id)
      except JobError as exc:
        logger.warning("Failed to delete expired job %s: %s", job_id, exc.message)
      raise JobNotFound(f"Job {job_id} not found", job_id=job_id)

    return await self.fail_if_stale(record)

  async def fail_if_stale(self, record: JobRecord) -> JobRecord:
    """Fail a processing job whose heartbeat is past the deadline."""
    stale_at = self.stale_at(record)
    now = self._clock()
    if stale_at is None or now <= stale_at:
      return record

    message = f"Job timed out: no progress for {self._deadline} seconds"
    try:
      return await self._jobs.transition(record.id, JobStatus.FAILED, message, expected={JobStatus.PROCESSING}, updated_before=now - self._deadline)
    except InvalidTransition:
      # Another writer moved the job or sent a heartbeat first; report what it wrote.
      current = await self._jobs.get_job(record.id)
      if current is None:
        raise JobNotFound(f"Job {record.id} not found", job_id=record.id) from None
      return current

  async def result_url(self, record: JobRecord) -> str:
    """Best-effort result URL for a completed job; empty when unavailable."""
    if record.status != JobStatus.COMPLETED:
      return ""
    try:
      result = await self._results.get_result(record.id)
    except JobError as exc:
      logger.warning("Could not resolve result for job %s: %s", record.id, exc.message)
      return ""
    if result is None or result.is_expired(self._clock()):
      return ""
    return result.result_url

  async def to_update(self, record: JobRecord) -> JobUpdate:
    return JobUpdate.from_record(record, await self.result_url(record))

  async def view(self, job_id: str) -> JobUpdate:
    """Current job state as delivered to clients."""
    return await self.to_update(await self.load_job(job_id))

  async def get_result(self, job_id: str) -> ResultRecord:
    result = await self._results.get_result(job_id)
    if result is None:
      raise ResultNotFound(f"Result for job {job_id} not found", job_id=job_id)

    if result.is_expired(self._clock()):
      try:
        await self._results.delete_result(job_id)
        logger.info("Deleted expired result %s", job_id)
      except JobError as exc:
        logger.warning("Failed to delete expired result %s: %s", job_id, exc.message)
      raise ResultExpired(f"Result for job {job_id} has expired", job_id=job_id)

    return result
