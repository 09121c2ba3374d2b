import asyncio

import pytest

from slidejobs.storage.documents import DocumentNotFoundError, SubscriptionClosedError
from slidejobs.storage.memory_documents import InMemoryDocumentStore


@pytest.mark.anyio
async def test_get_returns_copies() -> None:
  store = InMemoryDocumentStore()
  await store.set("jobs", "a", {"status": "queued", "nested": {"n": 1}})

  document = await store.get("jobs", "a")
  document["nested"]["n"] = 2

  assert (await store.get("jobs", "a"))["nested"]["n"] == 1
  assert await store.get("jobs", "missing") is None


@pytest.mark.anyio
async def test_update_merges_and_requires_existing_document() -> None:
  store = InMemoryDocumentStore()
  await store.set("jobs", "a", {"status": "queued", "message": "hi"})

  merged = await store.update("jobs", "a", {"message": "bye"})

  assert merged == {"status": "queued", "message": "bye"}
  with pytest.raises(DocumentNotFoundError):
    await store.update("jobs", "missing", {"message": "bye"})


@pytest.mark.anyio
async def test_precondition_failure_leaves_document_untouched() -> None:
  store = InMemoryDocumentStore()
  await store.set("jobs", "a", {"status": "completed"})

  def _guard(current: dict) -> None:
    if current["status"] == "completed":
      raise RuntimeError("terminal")

  with pytest.raises(RuntimeError):
    await store.update("jobs", "a", {"status": "processing"}, precondition=_guard)

  assert await store.get("jobs", "a") == {"status": "completed"}


@pytest.mark.anyio
async def test_subscription_sees_current_state_then_changes() -> None:
  store = InMemoryDocumentStore()
  await store.set("jobs", "a", {"status": "queued"})

  subscription = await store.subscribe("jobs", "a")
  await store.update("jobs", "a", {"status": "processing"})
  await store.delete("jobs", "a")

  first = await subscription.next()
  second = await subscription.next()
  third = await subscription.next()

  assert first.exists and first.data == {"status": "queued"}
  assert second.data == {"status": "processing"}
  assert not third.exists and third.data is None
  await subscription.close()


@pytest.mark.anyio
async def test_close_detaches_listener() -> None:
  store = InMemoryDocumentStore()
  await store.set("jobs", "a", {"status": "queued"})
  subscription = await store.subscribe("jobs", "a")
  assert store.subscriber_count("jobs", "a") == 1

  await subscription.close()
  await subscription.close()

  assert store.subscriber_count("jobs", "a") == 0
  with pytest.raises(SubscriptionClosedError):
    await subscription.next()


@pytest.mark.anyio
async def test_blocked_next_can_be_cancelled() -> None:
  store = InMemoryDocumentStore()
  await store.set("jobs", "a", {"status": "queued"})
  subscription = await store.subscribe("jobs", "a")
  await subscription.next()

  with pytest.raises(asyncio.TimeoutError):
    await asyncio.wait_for(subscription.next(), timeout=0.05)

  await store.update("jobs", "a", {"status": "processing"})
  snapshot = await subscription.next()
  assert snapshot.data == {"status": "processing"}


@pytest.mark.anyio
async def test_poll_returns_queued_snapshots_without_waiting() -> None:
  store = InMemoryDocumentStore()
  await store.set("jobs", "a", {"status": "queued"})
  subscription = await store.subscribe("jobs", "a")
  await store.update("jobs", "a", {"status": "processing"})

  assert subscription.poll().data == {"status": "queued"}
  assert subscription.poll().data == {"status": "processing"}
  assert subscription.poll() is None

  await subscription.close()
  assert subscription.poll() is None
