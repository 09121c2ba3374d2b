"""Worker side of the job lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from slidejobs.jobs.errors import FileReadFailed, InvalidTransition, JobError, RenderFailed, ResultPersistFailed
from slidejobs.jobs.models import DispatchPayload, InputFile, JobRecord, RenderedArtifacts, ResultRecord, now_epoch, result_url_for
from slidejobs.jobs.progress import JobProgressReporter
from slidejobs.jobs.state import JobStatus
from slidejobs.services.renderer import ContentRenderer
from slidejobs.services.staging import FileStager, StagingError
from slidejobs.storage.jobs_repo import JobsRepository, ResultsRepository

logger = logging.getLogger(__name__)

PROCESSING_MESSAGE = "Processing slides"
COMPLETED_MESSAGE = "Slides generated successfully"


@dataclass(frozen=True)
class WorkerAck:
  """Outcome returned to whoever invoked the worker."""

  job_id: str
  status: JobStatus
  result_url: str = ""


class JobWorkerController:
  """Runs one dispatched job from `processing` to a terminal status."""

  def __init__(
    self,
    jobs: JobsRepository,
    results: ResultsRepository,
    stager: FileStager,
    renderer: ContentRenderer,
    *,
    job_ttl_seconds: int = 300,
    result_ttl_seconds: int = 3600,
    clock: Callable[[], int] = now_epoch,
  ) -> None:
    self._jobs = jobs
    self._results = results
    self._stager = stager
    self._renderer = renderer
    self._job_ttl = job_ttl_seconds
    self._result_ttl = result_ttl_seconds
    self._clock = clock

  async def accept(self, payload: DispatchPayload) -> WorkerAck:
    """Process a job end to end in the caller's task."""
    await self.begin(payload)
    return await self.execute(payload)

  async def begin(self, payload: DispatchPayload) -> JobRecord:
    """Claim a queued job by moving it to `processing`.

    Raises InvalidTransition when the job was already claimed or finished,
    which is how duplicate dispatches are refused.
    """
    return await self._jobs.transition(payload.job_id, JobStatus.PROCESSING, PROCESSING_MESSAGE, expected={JobStatus.QUEUED})

  async def execute(self, payload: DispatchPayload) -> WorkerAck:
    """Read, render, persist, clean up and complete a claimed job."""
    job_id = payload.job_id
    files = await self._read_files(payload)

    reporter = JobProgressReporter(self._jobs, job_id)
    artifacts = await self._render(payload, files, reporter)

    now = self._clock()
    result_url = result_url_for(job_id)
    result = ResultRecord(id=job_id, result_url=result_url, pdf_data=artifacts.pdf, html_data=artifacts.html, created_at=now, expires_at=now + self._result_ttl)
    try:
      await self._results.put_result(result)
    except JobError as exc:
      logger.error("Failed to store result for job %s: %s", job_id, exc.message)
      await self._mark_failed(job_id, f"Failed to store result: {exc.message}")
      raise ResultPersistFailed(f"Failed to store result: {exc.message}", job_id=job_id) from exc

    await self._cleanup(payload)

    try:
      await self._jobs.transition(job_id, JobStatus.COMPLETED, COMPLETED_MESSAGE, expected={JobStatus.PROCESSING}, expires_at=self._clock() + self._job_ttl)
    except JobError as exc:
      logger.error("Failed to mark job %s as completed", job_id, exc_info=True)
      # A result without a completed job would be orphaned.
      await self._discard_result(job_id)
      await self._mark_failed(job_id, f"Failed to complete job: {exc.message}")
      raise

    return WorkerAck(job_id=job_id, status=JobStatus.COMPLETED, result_url=result_url)

  async def execute_in_background(self, payload: DispatchPayload) -> None:
    """Entrypoint for background scheduling; failures are already on the job record."""
    try:
      ack = await self.execute(payload)
    except JobError as exc:
      logger.error("Job %s failed: %s", payload.job_id, exc.message)
      return
    except Exception:
      logger.exception("Unexpected error while processing job %s", payload.job_id)
      await self._mark_failed(payload.job_id, "Internal error while processing slides")
      return
    logger.info("Job %s finished with status %s", ack.job_id, ack.status.value)

  async def _read_files(self, payload: DispatchPayload) -> list[InputFile]:
    files: list[InputFile] = []
    for ref in payload.files:
      logger.info("Reading file from local path: %s", ref.local_path)
      try:
        data = await self._stager.read(ref.local_path)
      except StagingError as exc:
        logger.error("Failed to read file %s from %s: %s", ref.filename, ref.local_path, exc)
        await self._mark_failed(payload.job_id, f"Failed to read local file {ref.filename}: {exc}")
        raise FileReadFailed(f"Failed to read local file {ref.filename}: {exc}", job_id=payload.job_id) from exc
      files.append(InputFile(filename=ref.filename, type=ref.type, data=data))
    return files

  async def _render(self, payload: DispatchPayload, files: list[InputFile], reporter: JobProgressReporter) -> RenderedArtifacts:
    try:
      return await self._renderer.render(payload.theme, files, payload.settings, reporter)
    except Exception as exc:
      detail = exc.message if isinstance(exc, JobError) else str(exc)
      logger.error("Failed to generate slides for job %s: %s", payload.job_id, detail)
      await self._mark_failed(payload.job_id, f"Failed to generate slides: {detail}")
      raise RenderFailed(f"Failed to generate slides: {detail}", job_id=payload.job_id) from exc

  async def _cleanup(self, payload: DispatchPayload) -> None:
    for ref in payload.files:
      try:
        await self._stager.delete(ref.local_path)
        logger.info("Deleted local file %s", ref.local_path)
      except StagingError as exc:
        logger.warning("Failed to delete local file %s: %s", ref.local_path, exc)
    try:
      await self._stager.delete_job(payload.job_id)
      logger.info("Deleted staging area for job %s", payload.job_id)
    except StagingError as exc:
      logger.warning("Failed to delete staging area for job %s: %s", payload.job_id, exc)

  async def _discard_result(self, job_id: str) -> None:
    try:
      await self._results.delete_result(job_id)
    except JobError as exc:
      logger.warning("Failed to discard result for job %s: %s", job_id, exc.message)

  async def _mark_failed(self, job_id: str, message: str) -> None:
    try:
      await self._jobs.transition(job_id, JobStatus.FAILED, message, expected={JobStatus.PROCESSING})
    except InvalidTransition as exc:
      logger.warning("Job %s is already %s; not recording: %s", job_id, exc.current.value, message)
    except JobError as exc:
      logger.error("Failed to update job %s to failed: %s", job_id, exc.message)
