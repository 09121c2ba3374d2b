"""Firestore-backed document store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPIError
from google.cloud.firestore import Client as FirestoreClient
from google.cloud.firestore import DocumentReference
from starlette.concurrency import run_in_threadpool

from slidejobs.storage.documents import DocumentNotFoundError, DocumentSnapshot, DocumentStoreError, Precondition, SubscriptionClosedError

logger = logging.getLogger(__name__)


class _FirestoreSubscription:
  """Bridges a snapshot listener thread into the event loop."""

  def __init__(self, ref: DocumentReference, key: str, loop: asyncio.AbstractEventLoop) -> None:
    self._ref = ref
    self._key = key
    self._loop = loop
    self._queue: asyncio.Queue[DocumentSnapshot] = asyncio.Queue()
    self._watch: Any = None
    self._closed = False

  def _on_snapshot(self, doc_snapshots: list[Any], _changes: list[Any], _read_time: Any) -> None:
    # Runs on the listener thread; a delete arrives as an empty snapshot list.
    if doc_snapshots:
      doc = doc_snapshots[-1]
      snapshot = DocumentSnapshot(key=self._key, exists=bool(doc.exists), data=doc.to_dict() if doc.exists else None)
    else:
      snapshot = DocumentSnapshot(key=self._key, exists=False)
    if self._closed:
      return
    try:
      self._loop.call_soon_threadsafe(self._queue.put_nowait, snapshot)
    except RuntimeError:
      logger.debug("Dropped snapshot for %s; event loop is closed", self._key)

  async def start(self) -> None:
    try:
      self._watch = await run_in_threadpool(self._ref.on_snapshot, self._on_snapshot)
    except GoogleAPIError as exc:
      raise DocumentStoreError(f"Failed to listen to {self._ref.path}: {exc}") from exc

  async def next(self) -> DocumentSnapshot:
    if self._closed:
      raise SubscriptionClosedError(f"Subscription to {self._ref.path} is closed")
    return await self._queue.get()

  def poll(self) -> DocumentSnapshot | None:
    if self._closed or self._queue.empty():
      return None
    return self._queue.get_nowait()

  async def close(self) -> None:
    if self._closed:
      return
    self._closed = True
    if self._watch is not None:
      await run_in_threadpool(self._watch.unsubscribe)


class FirestoreDocumentStore:
  """DocumentStore backed by Cloud Firestore collections."""

  def __init__(self, client: FirestoreClient) -> None:
    self._client = client

  def _ref(self, collection: str, key: str) -> DocumentReference:
    return self._client.collection(collection).document(key)

  async def get(self, collection: str, key: str) -> dict[str, Any] | None:
    try:
      snapshot = await run_in_threadpool(self._ref(collection, key).get)
    except GoogleAPIError as exc:
      raise DocumentStoreError(f"Failed to read {collection}/{key}: {exc}") from exc
    if not snapshot.exists:
      return None
    return snapshot.to_dict() or {}

  async def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
    try:
      await run_in_threadpool(self._ref(collection, key).set, data)
    except GoogleAPIError as exc:
      raise DocumentStoreError(f"Failed to write {collection}/{key}: {exc}") from exc

  async def update(self, collection: str, key: str, fields: dict[str, Any], *, precondition: Precondition | None = None) -> dict[str, Any]:
    doc_ref = self._ref(collection, key)

    @firestore.transactional
    def update_in_transaction(transaction: firestore.Transaction, doc_ref: DocumentReference) -> dict[str, Any]:
      snapshot = doc_ref.get(transaction=transaction)
      if not snapshot.exists:
        raise DocumentNotFoundError(f"{collection}/{key} does not exist")
      current = snapshot.to_dict() or {}
      if precondition is not None:
        precondition(current)
      transaction.update(doc_ref, fields)
      return {**current, **fields}

    try:
      return await run_in_threadpool(update_in_transaction, self._client.transaction(), doc_ref)
    except GoogleAPIError as exc:
      raise DocumentStoreError(f"Failed to update {collection}/{key}: {exc}") from exc

  async def delete(self, collection: str, key: str) -> None:
    try:
      await run_in_threadpool(self._ref(collection, key).delete)
    except GoogleAPIError as exc:
      raise DocumentStoreError(f"Failed to delete {collection}/{key}: {exc}") from exc

  async def subscribe(self, collection: str, key: str) -> _FirestoreSubscription:
    subscription = _FirestoreSubscription(self._ref(collection, key), key, asyncio.get_running_loop())
    await subscription.start()
    return subscription
