"""Producer side of the job lifecycle: create, stage, dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from slidejobs.jobs.errors import DispatchFailed, FileStageFailed, InvalidTransition, JobError
from slidejobs.jobs.lookup import JobLookup
from slidejobs.jobs.models import DispatchPayload, FileReference, InputFile, JobRecord, JobUpdate, PendingJob, ResultRecord, now_epoch
from slidejobs.jobs.state import JobStatus
from slidejobs.services.staging import FileStager, StagingError
from slidejobs.services.tasks.interface import TaskDispatcher
from slidejobs.storage.jobs_repo import JobsRepository
from slidejobs.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

QUEUED_MESSAGE = "Job added to queue"
_QUEUED_ONLY = frozenset({JobStatus.QUEUED})


class JobProducer:
  """Creates jobs, stages their files and hands them to the worker."""

  def __init__(
    self,
    jobs: JobsRepository,
    stager: FileStager,
    dispatcher: TaskDispatcher,
    lookup: JobLookup,
    *,
    clock: Callable[[], int] = now_epoch,
    id_factory: Callable[[], str] = generate_job_id,
  ) -> None:
    self._jobs = jobs
    self._stager = stager
    self._dispatcher = dispatcher
    self._lookup = lookup
    self._clock = clock
    self._id_factory = id_factory

  async def submit(self, theme: str, settings: dict[str, Any], files: list[InputFile]) -> PendingJob:
    """Create a queued job, stage its files and dispatch it.

    Returns once the worker has accepted the handoff; the returned job still
    reports ``queued``. Any failure after the record exists is written to the
    job as a ``failed`` status before the error is raised.
    """

    if not files:
      raise ValueError("At least one file is required.")

    now = self._clock()
    job = PendingJob(id=self._id_factory(), theme=theme, settings=dict(settings), files=list(files), status=JobStatus.QUEUED, message=QUEUED_MESSAGE, created_at=now, updated_at=now)
    await self._jobs.create_job(JobRecord(id=job.id, status=job.status, message=job.message, created_at=now, updated_at=now))

    for file in job.files:
      try:
        local_path = await self._stager.stage(job.id, file.filename, file.data)
      except StagingError as exc:
        logger.error("Failed to stage file %s for job %s: %s", file.filename, job.id, exc)
        await self._mark_failed(job, f"Failed to save file {file.filename} locally: {exc}")
        raise FileStageFailed(f"Failed to save file {file.filename} locally: {exc}", job_id=job.id) from exc
      logger.info("Saved file %s locally to: %s", file.filename, local_path)
      job.file_refs.append(FileReference(filename=file.filename, type=file.type, local_path=local_path))

    payload = DispatchPayload(job_id=job.id, theme=job.theme, files=list(job.file_refs), settings=job.settings)
    try:
      await self._dispatcher.dispatch(payload)
    except DispatchFailed as exc:
      await self._mark_failed(job, f"Failed to trigger slides service: {exc.message}")
      if exc.job_id is None:
        exc.job_id = job.id
      raise

    logger.info("Successfully triggered slides service for job %s", job.id)
    return job

  async def _mark_failed(self, job: PendingJob, message: str) -> None:
    # Only a job nobody has picked up yet is ours to fail.
    try:
      record = await self._jobs.transition(job.id, JobStatus.FAILED, message, expected=_QUEUED_ONLY)
    except InvalidTransition as exc:
      logger.warning("Job %s left as %s; not marking failed: %s", job.id, exc.current.value, message)
      return
    except JobError as exc:
      logger.error("Failed to record failure for job %s: %s", job.id, exc.message)
      return
    job.status = record.status
    job.message = record.message
    job.updated_at = record.updated_at

  async def get_job(self, job_id: str) -> JobUpdate:
    """Return the live view of a job; raises JobNotFound when missing or expired."""
    return await self._lookup.view(job_id)

  async def get_result(self, job_id: str) -> ResultRecord:
    """Return the stored artifacts; raises ResultNotFound or ResultExpired."""
    return await self._lookup.get_result(job_id)
