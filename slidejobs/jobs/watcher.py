"""Bridge job record changes to a live subscriber."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, Protocol, TypeVar

from slidejobs.jobs.errors import JobNotFound, StoreReadFailed, WatchCancelled
from slidejobs.jobs.lookup import JobLookup
from slidejobs.jobs.models import JobRecord, JobUpdate
from slidejobs.storage.documents import DocumentSnapshot, DocumentStoreError, DocumentSubscription
from slidejobs.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()
_IDLE = object()


class UpdateSink(Protocol):
  """Receiver of job updates for one watch."""

  async def send(self, update: JobUpdate) -> None:
    """Deliver one update; may block while the consumer is slow."""

  async def close(self) -> None:
    """Signal that no further updates will be sent."""


class UpdateChannel:
  """Bounded in-process sink that the HTTP layer drains as an async iterator."""

  def __init__(self, maxsize: int = 16) -> None:
    self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
    self._closed = False

  @property
  def closed(self) -> bool:
    return self._closed

  async def send(self, update: JobUpdate) -> None:
    if self._closed:
      raise RuntimeError("Cannot send on a closed channel")
    await self._queue.put(update)

  async def close(self) -> None:
    self.close_nowait()

  def close_nowait(self) -> None:
    if self._closed:
      return
    self._closed = True
    try:
      self._queue.put_nowait(_CLOSED)
    except asyncio.QueueFull:
      # The reader is not blocked; it stops once the queue drains.
      pass

  def __aiter__(self) -> UpdateChannel:
    return self

  async def __anext__(self) -> JobUpdate:
    if self._closed and self._queue.empty():
      raise StopAsyncIteration
    item = await self._queue.get()
    if item is _CLOSED:
      raise StopAsyncIteration
    return item


class JobStatusWatcher:
  """Stream a job's status changes into a sink until the job is terminal.

  The current state is read and delivered before subscribing, so a watcher
  always sees at least one update. Every wait races the cancel event and a
  cancellation wins over a concurrent delivery. While a job is processing, the
  wait for the next change is bounded by the processing deadline so a job whose
  worker disappeared is failed instead of watched forever.
  """

  def __init__(self, jobs: JobsRepository, lookup: JobLookup) -> None:
    self._jobs = jobs
    self._lookup = lookup

  async def watch(self, job_id: str, sink: UpdateSink, cancel: asyncio.Event) -> None:
    record = await self._lookup.load_job(job_id)
    await self._deliver(job_id, sink, await self._lookup.to_update(record), cancel)
    if record.status.is_terminal:
      await sink.close()
      return

    subscription = await self._jobs.subscribe(job_id)
    logger.info("Watching job %s", job_id)
    try:
      while True:
        snapshot = await self._next_change(job_id, subscription, record, cancel)
        if snapshot is _IDLE:
          refreshed = await self._lookup.fail_if_stale(record)
          if refreshed.status == record.status and refreshed.updated_at == record.updated_at:
            continue
          record = refreshed
        else:
          record = self._decode(job_id, snapshot)

        await self._deliver(job_id, sink, await self._lookup.to_update(record), cancel)
        if record.status.is_terminal:
          break
    finally:
      await subscription.close()

    logger.info("Job %s reached %s; closing watch", job_id, record.status.value)
    await sink.close()

  def _decode(self, job_id: str, snapshot: DocumentSnapshot) -> JobRecord:
    if not snapshot.exists or snapshot.data is None:
      logger.info("Job %s no longer exists", job_id)
      raise JobNotFound(f"Job {job_id} no longer exists", job_id=job_id)
    try:
      return JobRecord.from_document(snapshot.data)
    except (KeyError, TypeError, ValueError) as exc:
      raise StoreReadFailed(f"Error parsing job data: {exc}", job_id=job_id) from exc

  async def _next_change(self, job_id: str, subscription: DocumentSubscription, record: JobRecord, cancel: asyncio.Event) -> Any:
    timeout = None
    stale_at = self._lookup.stale_at(record)
    if stale_at is not None:
      remaining = stale_at - self._lookup.now()
      if remaining < 0:
        # Changes that arrived while a delivery was blocked come first.
        pending = subscription.poll()
        return _IDLE if pending is None else pending
      timeout = remaining + 1

    try:
      return await self._race(job_id, subscription.next(), cancel, timeout=timeout)
    except DocumentStoreError as exc:
      logger.error("Error watching job %s: %s", job_id, exc)
      raise StoreReadFailed(f"Error watching job: {exc}", job_id=job_id) from exc

  async def _deliver(self, job_id: str, sink: UpdateSink, update: JobUpdate, cancel: asyncio.Event) -> None:
    await self._race(job_id, sink.send(update), cancel)

  async def _race(self, job_id: str, awaitable: Awaitable[T], cancel: asyncio.Event, *, timeout: float | None = None) -> Any:
    """Await `awaitable` unless cancel fires first; returns _IDLE on timeout."""
    if cancel.is_set():
      if asyncio.iscoroutine(awaitable):
        awaitable.close()
      raise WatchCancelled(f"Watch on job {job_id} cancelled", job_id=job_id)

    work = asyncio.ensure_future(awaitable)
    stop = asyncio.ensure_future(cancel.wait())
    try:
      done, _ = await asyncio.wait({work, stop}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
      stop.cancel()
      if not work.done():
        work.cancel()

    if cancel.is_set():
      if work.done() and not work.cancelled():
        work.exception()
      raise WatchCancelled(f"Watch on job {job_id} cancelled", job_id=job_id)
    if work in done:
      return work.result()
    return _IDLE
