from __future__ import annotations

import logging
from functools import lru_cache

from slidejobs.config import Settings
from slidejobs.storage.documents import DocumentStore
from slidejobs.storage.memory_documents import InMemoryDocumentStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def build_document_store(settings: Settings) -> DocumentStore:
  """Factory to get the configured document store, shared per process."""
  if settings.document_store_provider == "firestore":
    from slidejobs.core.firebase import get_firestore_client
    from slidejobs.storage.firestore_documents import FirestoreDocumentStore

    return FirestoreDocumentStore(get_firestore_client(settings))

  logger.info("Using the in-memory document store; job state will not survive a restart")
  return InMemoryDocumentStore()
