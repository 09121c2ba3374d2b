"""Storage interfaces for slide jobs and their results."""

from __future__ import annotations

from collections.abc import Collection
from typing import Protocol

from slidejobs.jobs.models import JobRecord, ResultRecord
from slidejobs.jobs.state import JobStatus
from slidejobs.storage.documents import DocumentSubscription


class JobsRepository(Protocol):
  """Repository contract for job records."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier, ignoring expiry."""

  async def transition(
    self,
    job_id: str,
    target: JobStatus,
    message: str,
    *,
    expected: Collection[JobStatus] | None = None,
    expires_at: int | None = None,
    updated_before: int | None = None,
  ) -> JobRecord:
    """Move a job to target, atomically checking the state machine and the expected prior statuses.

    With `updated_before`, the write only applies while the stored `updatedAt` is older than that epoch second.
    """

  async def delete_job(self, job_id: str) -> None:
    """Remove a job record."""

  async def subscribe(self, job_id: str) -> DocumentSubscription:
    """Open a change stream on one job record."""


class ResultsRepository(Protocol):
  """Repository contract for result records."""

  async def put_result(self, record: ResultRecord) -> None:
    """Persist the artifacts of a completed job."""

  async def get_result(self, job_id: str) -> ResultRecord | None:
    """Fetch a result by job identifier, ignoring expiry."""

  async def delete_result(self, job_id: str) -> None:
    """Remove a result record."""
