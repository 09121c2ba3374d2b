from unittest.mock import AsyncMock

import pytest

from slidejobs.jobs.errors import JobNotFound, ResultExpired, ResultNotFound, StoreReadFailed
from slidejobs.jobs.lookup import JobLookup
from slidejobs.jobs.models import JOBS_COLLECTION, RESULTS_COLLECTION, JobRecord, ResultRecord
from slidejobs.jobs.state import JobStatus


async def _completed_job(jobs_repo, results_repo, clock, *, job_ttl: int = 300, result_ttl: int = 3600) -> None:
  now = clock()
  await jobs_repo.create_job(JobRecord(id="job-1", status=JobStatus.QUEUED, message="Job added to queue", created_at=now, updated_at=now))
  await jobs_repo.transition("job-1", JobStatus.PROCESSING, "Processing slides")
  await results_repo.put_result(ResultRecord(id="job-1", result_url="/results/job-1", pdf_data=b"%PDF", html_data=b"<html/>", created_at=now, expires_at=now + result_ttl))
  await jobs_repo.transition("job-1", JobStatus.COMPLETED, "Slides generated successfully", expires_at=now + job_ttl)


@pytest.mark.anyio
async def test_completed_view_carries_result_url(lookup, jobs_repo, results_repo, clock) -> None:
  await _completed_job(jobs_repo, results_repo, clock)

  update = await lookup.view("job-1")

  assert update.status is JobStatus.COMPLETED
  assert update.result_url == "/results/job-1"
  assert update.to_payload()["resultUrl"] == "/results/job-1"


@pytest.mark.anyio
async def test_expired_job_is_deleted_and_stays_not_found(lookup, jobs_repo, results_repo, store, clock) -> None:
  await _completed_job(jobs_repo, results_repo, clock)
  clock.advance(301)

  with pytest.raises(JobNotFound):
    await lookup.view("job-1")
  assert await store.get(JOBS_COLLECTION, "job-1") is None

  with pytest.raises(JobNotFound):
    await lookup.view("job-1")


@pytest.mark.anyio
async def test_job_is_live_until_strictly_past_expiry(lookup, jobs_repo, results_repo, clock) -> None:
  await _completed_job(jobs_repo, results_repo, clock)
  clock.advance(300)

  assert (await lookup.view("job-1")).status is JobStatus.COMPLETED


@pytest.mark.anyio
async def test_expired_result_reported_once_then_not_found(lookup, jobs_repo, results_repo, store, clock) -> None:
  await _completed_job(jobs_repo, results_repo, clock, job_ttl=7200)
  assert (await lookup.get_result("job-1")).pdf_data == b"%PDF"
  clock.advance(3601)

  with pytest.raises(ResultExpired):
    await lookup.get_result("job-1")
  assert await store.get(RESULTS_COLLECTION, "job-1") is None
  with pytest.raises(ResultNotFound):
    await lookup.get_result("job-1")


@pytest.mark.anyio
async def test_expired_result_leaves_result_url_empty(lookup, jobs_repo, results_repo, clock) -> None:
  await _completed_job(jobs_repo, results_repo, clock, job_ttl=7200)
  clock.advance(3601)

  update = await lookup.view("job-1")

  assert update.status is JobStatus.COMPLETED
  assert update.result_url == ""
  assert "resultUrl" not in update.to_payload()


@pytest.mark.anyio
async def test_result_lookup_failure_does_not_fail_the_read(jobs_repo, results_repo, clock) -> None:
  await _completed_job(jobs_repo, results_repo, clock)
  broken_results = AsyncMock()
  broken_results.get_result.side_effect = StoreReadFailed("unavailable", job_id="job-1")
  lookup = JobLookup(jobs_repo, broken_results, clock=clock)

  update = await lookup.view("job-1")

  assert update.status is JobStatus.COMPLETED
  assert update.result_url == ""


@pytest.mark.anyio
async def test_missing_job_and_result(lookup) -> None:
  with pytest.raises(JobNotFound):
    await lookup.view("nope")
  with pytest.raises(ResultNotFound):
    await lookup.get_result("nope")


@pytest.mark.anyio
async def test_stale_processing_job_is_failed_on_read(lookup, jobs_repo, clock) -> None:
  now = clock()
  await jobs_repo.create_job(JobRecord(id="job-1", status=JobStatus.QUEUED, message="Job added to queue", created_at=now, updated_at=now))
  await jobs_repo.transition("job-1", JobStatus.PROCESSING, "Processing slides")

  clock.advance(1800)
  assert (await lookup.view("job-1")).status is JobStatus.PROCESSING

  clock.advance(1)
  update = await lookup.view("job-1")
  assert update.status is JobStatus.FAILED
  assert "no progress for 1800 seconds" in update.message


@pytest.mark.anyio
async def test_progress_heartbeat_defers_the_deadline(lookup, jobs_repo, clock) -> None:
  now = clock()
  await jobs_repo.create_job(JobRecord(id="job-1", status=JobStatus.QUEUED, message="Job added to queue", created_at=now, updated_at=now))
  await jobs_repo.transition("job-1", JobStatus.PROCESSING, "Processing slides")
  clock.advance(1500)
  await jobs_repo.transition("job-1", JobStatus.PROCESSING, "Rendering slide 3")
  clock.advance(1500)

  assert (await lookup.view("job-1")).message == "Rendering slide 3"


@pytest.mark.anyio
async def test_zero_deadline_disables_stale_check(jobs_repo, results_repo, clock) -> None:
  lookup = JobLookup(jobs_repo, results_repo, processing_deadline_seconds=0, clock=clock)
  now = clock()
  await jobs_repo.create_job(JobRecord(id="job-1", status=JobStatus.QUEUED, message="Job added to queue", created_at=now, updated_at=now))
  await jobs_repo.transition("job-1", JobStatus.PROCESSING, "Processing slides")
  clock.advance(10**6)

  assert (await lookup.view("job-1")).status is JobStatus.PROCESSING


@pytest.mark.anyio
async def test_stale_copy_does_not_fail_a_job_with_a_fresh_stored_heartbeat(lookup, jobs_repo, clock) -> None:
  now = clock()
  await jobs_repo.create_job(JobRecord(id="job-1", status=JobStatus.QUEUED, message="Job added to queue", created_at=now, updated_at=now))
  seen = await jobs_repo.transition("job-1", JobStatus.PROCESSING, "Processing slides")
  clock.advance(1700)
  await jobs_repo.transition("job-1", JobStatus.PROCESSING, "Rendering slide 9")
  clock.advance(150)

  current = await lookup.fail_if_stale(seen)

  assert current.status is JobStatus.PROCESSING
  assert current.message == "Rendering slide 9"
  assert (await jobs_repo.get_job("job-1")).status is JobStatus.PROCESSING
