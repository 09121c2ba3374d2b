"""Job and result repositories over the document store capability."""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from typing import Any

from slidejobs.jobs.errors import InvalidTransition, JobNotFound, StoreReadFailed, StoreWriteFailed
from slidejobs.jobs.models import JOBS_COLLECTION, RESULTS_COLLECTION, JobRecord, ResultRecord, now_epoch
from slidejobs.jobs.state import JobStatus, ensure_transition, parse_status
from slidejobs.storage.documents import DocumentNotFoundError, DocumentStore, DocumentStoreError, DocumentSubscription
from slidejobs.storage.jobs_repo import JobsRepository, ResultsRepository

logger = logging.getLogger(__name__)


class DocumentJobsRepository(JobsRepository):
  """Persist job records in the `jobs` collection."""

  def __init__(self, store: DocumentStore, *, clock: Callable[[], int] = now_epoch) -> None:
    self._store = store
    self._clock = clock

  async def create_job(self, record: JobRecord) -> None:
    try:
      await self._store.set(JOBS_COLLECTION, record.id, record.to_document())
    except DocumentStoreError as exc:
      raise StoreWriteFailed(f"Failed to store job: {exc}", job_id=record.id) from exc
    logger.info("Added job %s to the store", record.id)

  async def get_job(self, job_id: str) -> JobRecord | None:
    try:
      document = await self._store.get(JOBS_COLLECTION, job_id)
    except DocumentStoreError as exc:
      raise StoreReadFailed(f"Failed to read job: {exc}", job_id=job_id) from exc
    if document is None:
      return None
    return JobRecord.from_document(document)

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
    now = self._clock()
    fields: dict[str, Any] = {"status": target.value, "message": message, "updatedAt": now}
    if expires_at is not None:
      fields["expiresAt"] = expires_at

    def _guard(current: dict[str, Any]) -> None:
      status = parse_status(current.get("status"))
      if expected is not None and status not in expected:
        raise InvalidTransition(job_id, status, target)
      ensure_transition(job_id, status, target)
      if updated_before is not None and int(current.get("updatedAt") or 0) >= updated_before:
        logger.info("Job %s saw progress after %s; skipping %s", job_id, updated_before, target.value)
        raise InvalidTransition(job_id, status, target)
      # Applied after the guard returns; updatedAt never moves backwards.
      fields["updatedAt"] = max(now, int(current.get("updatedAt") or 0))

    try:
      document = await self._store.update(JOBS_COLLECTION, job_id, fields, precondition=_guard)
    except DocumentNotFoundError as exc:
      raise JobNotFound(f"Job {job_id} not found", job_id=job_id) from exc
    except DocumentStoreError as exc:
      logger.error("Failed to update job %s in the store: %s", job_id, exc)
      raise StoreWriteFailed(f"Failed to update job status: {exc}", job_id=job_id) from exc

    logger.info("Job %s updated: status=%s, message=%s", job_id, target.value, message)
    return JobRecord.from_document(document)

  async def delete_job(self, job_id: str) -> None:
    try:
      await self._store.delete(JOBS_COLLECTION, job_id)
    except DocumentStoreError as exc:
      raise StoreWriteFailed(f"Failed to delete job: {exc}", job_id=job_id) from exc

  async def subscribe(self, job_id: str) -> DocumentSubscription:
    try:
      return await self._store.subscribe(JOBS_COLLECTION, job_id)
    except DocumentStoreError as exc:
      raise StoreReadFailed(f"Failed to watch job: {exc}", job_id=job_id) from exc


class DocumentResultsRepository(ResultsRepository):
  """Persist rendered artifacts in the `results` collection."""

  def __init__(self, store: DocumentStore) -> None:
    self._store = store

  async def put_result(self, record: ResultRecord) -> None:
    try:
      await self._store.set(RESULTS_COLLECTION, record.id, record.to_document())
    except DocumentStoreError as exc:
      raise StoreWriteFailed(f"Failed to store result: {exc}", job_id=record.id) from exc

  async def get_result(self, job_id: str) -> ResultRecord | None:
    try:
      document = await self._store.get(RESULTS_COLLECTION, job_id)
    except DocumentStoreError as exc:
      raise StoreReadFailed(f"Error retrieving result: {exc}", job_id=job_id) from exc
    if document is None:
      return None
    return ResultRecord.from_document(document)

  async def delete_result(self, job_id: str) -> None:
    try:
      await self._store.delete(RESULTS_COLLECTION, job_id)
    except DocumentStoreError as exc:
      raise StoreWriteFailed(f"Failed to delete result: {exc}", job_id=job_id) from exc
