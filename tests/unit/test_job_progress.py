from __future__ import annotations

import pytest

from slidejobs.jobs.errors import InvalidTransition
from slidejobs.jobs.models import JobRecord
from slidejobs.jobs.progress import JobProgressReporter
from slidejobs.jobs.state import JobStatus


@pytest.mark.anyio
async def test_progress_reporter_refreshes_message_and_heartbeat(jobs_repo, clock) -> None:
  now = clock()
  await jobs_repo.create_job(JobRecord(id="job-123", status=JobStatus.QUEUED, message="Job added to queue", created_at=now, updated_at=now))
  await jobs_repo.transition("job-123", JobStatus.PROCESSING, "Processing slides")
  reporter = JobProgressReporter(jobs_repo, "job-123")

  clock.advance(10)
  await reporter("Outlining slides")
  clock.advance(10)
  await reporter("Rendering slide 1 of 4")

  record = await jobs_repo.get_job("job-123")
  assert record.status is JobStatus.PROCESSING
  assert record.message == "Rendering slide 1 of 4"
  assert record.updated_at == now + 20
  assert reporter.messages == ["Outlining slides", "Rendering slide 1 of 4"]


@pytest.mark.anyio
async def test_progress_reporter_refuses_jobs_that_are_not_processing(jobs_repo, clock) -> None:
  now = clock()
  await jobs_repo.create_job(JobRecord(id="job-123", status=JobStatus.QUEUED, message="Job added to queue", created_at=now, updated_at=now))
  reporter = JobProgressReporter(jobs_repo, "job-123")

  # Still queued: the worker never claimed it.
  with pytest.raises(InvalidTransition):
    await reporter("Outlining slides")

  await jobs_repo.transition("job-123", JobStatus.FAILED, "Job timed out")
  with pytest.raises(InvalidTransition):
    await reporter("Outlining slides")

  record = await jobs_repo.get_job("job-123")
  assert record.message == "Job timed out"
  assert reporter.messages == []
