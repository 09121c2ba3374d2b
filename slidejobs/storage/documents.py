"""Keyed document storage contract with per-document change notifications."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

Precondition = Callable[[dict[str, Any]], None]


class DocumentStoreError(Exception):
  """The backing store failed to serve a request."""


class DocumentNotFoundError(DocumentStoreError):
  """A partial update targeted a document that does not exist."""


class SubscriptionClosedError(DocumentStoreError):
  """next() was awaited on a subscription that has been closed."""


@dataclass(frozen=True)
class DocumentSnapshot:
  """State of one document as observed by a subscription."""

  key: str
  exists: bool
  data: dict[str, Any] | None = None


class DocumentSubscription(Protocol):
  """Ordered stream of snapshots for a single document."""

  async def next(self) -> DocumentSnapshot:
    """Wait for the next snapshot; raises DocumentStoreError when the stream breaks."""

  def poll(self) -> DocumentSnapshot | None:
    """Return a snapshot that has already arrived, or None without waiting."""

  async def close(self) -> None:
    """Release the underlying listener. Safe to call more than once."""


class DocumentStore(Protocol):
  """Capability used by the job repositories."""

  async def get(self, collection: str, key: str) -> dict[str, Any] | None:
    """Return the document or None when it does not exist."""

  async def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
    """Create or replace a document."""

  async def update(self, collection: str, key: str, fields: dict[str, Any], *, precondition: Precondition | None = None) -> dict[str, Any]:
    """Merge fields into an existing document and return the new state.

    The precondition runs atomically against the current document and aborts
    the write by raising.
    """

  async def delete(self, collection: str, key: str) -> None:
    """Delete a document; deleting a missing document is not an error."""

  async def subscribe(self, collection: str, key: str) -> DocumentSubscription:
    """Open a change-notification stream for one document."""
