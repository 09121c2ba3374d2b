"""In-process document store used for local development and tests."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from slidejobs.storage.documents import DocumentNotFoundError, DocumentSnapshot, Precondition, SubscriptionClosedError

logger = logging.getLogger(__name__)


class _MemorySubscription:
  """Queue-backed subscription fed by the owning store."""

  def __init__(self, store: InMemoryDocumentStore, collection: str, key: str) -> None:
    self._store = store
    self._collection = collection
    self._key = key
    self._queue: asyncio.Queue[DocumentSnapshot] = asyncio.Queue()
    self._closed = False

  def push(self, snapshot: DocumentSnapshot) -> None:
    if not self._closed:
      self._queue.put_nowait(snapshot)

  async def next(self) -> DocumentSnapshot:
    if self._closed:
      raise SubscriptionClosedError(f"Subscription to {self._collection}/{self._key} is closed")
    return await self._queue.get()

  def poll(self) -> DocumentSnapshot | None:
    if self._closed or self._queue.empty():
      return None
    return self._queue.get_nowait()

  async def close(self) -> None:
    if self._closed:
      return
    self._closed = True
    self._store._detach(self._collection, self._key, self)


class InMemoryDocumentStore:
  """Dictionary-backed DocumentStore with per-document listeners."""

  def __init__(self) -> None:
    self._collections: dict[str, dict[str, dict[str, Any]]] = {}
    self._subscribers: dict[tuple[str, str], list[_MemorySubscription]] = {}
    self._lock = asyncio.Lock()

  def _documents(self, collection: str) -> dict[str, dict[str, Any]]:
    return self._collections.setdefault(collection, {})

  def _notify(self, collection: str, key: str) -> None:
    current = self._documents(collection).get(key)
    snapshot = DocumentSnapshot(key=key, exists=current is not None, data=copy.deepcopy(current))
    for subscription in list(self._subscribers.get((collection, key), [])):
      subscription.push(snapshot)

  def _detach(self, collection: str, key: str, subscription: _MemorySubscription) -> None:
    listeners = self._subscribers.get((collection, key), [])
    if subscription in listeners:
      listeners.remove(subscription)
    if not listeners:
      self._subscribers.pop((collection, key), None)

  def subscriber_count(self, collection: str, key: str) -> int:
    """Return the number of open subscriptions on a document."""
    return len(self._subscribers.get((collection, key), []))

  async def get(self, collection: str, key: str) -> dict[str, Any] | None:
    async with self._lock:
      document = self._documents(collection).get(key)
      return copy.deepcopy(document)

  async def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
    async with self._lock:
      self._documents(collection)[key] = copy.deepcopy(data)
      self._notify(collection, key)

  async def update(self, collection: str, key: str, fields: dict[str, Any], *, precondition: Precondition | None = None) -> dict[str, Any]:
    async with self._lock:
      current = self._documents(collection).get(key)
      if current is None:
        raise DocumentNotFoundError(f"{collection}/{key} does not exist")
      if precondition is not None:
        precondition(copy.deepcopy(current))
      updated = {**current, **copy.deepcopy(fields)}
      self._documents(collection)[key] = updated
      self._notify(collection, key)
      return copy.deepcopy(updated)

  async def delete(self, collection: str, key: str) -> None:
    async with self._lock:
      if self._documents(collection).pop(key, None) is None:
        return
      self._notify(collection, key)

  async def subscribe(self, collection: str, key: str) -> _MemorySubscription:
    async with self._lock:
      subscription = _MemorySubscription(self, collection, key)
      self._subscribers.setdefault((collection, key), []).append(subscription)
      # Listeners start with the current state, like a Firestore snapshot listener.
      current = self._documents(collection).get(key)
      subscription.push(DocumentSnapshot(key=key, exists=current is not None, data=copy.deepcopy(current)))
      logger.debug("Subscribed to %s/%s", collection, key)
      return subscription
