"""
Document store backends.

The realtime store owns every note, task and flashcard. The application only
keeps disposable copies delivered through live subscriptions.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Optional

from ..settings import get_settings
from .base import (  # noqa: F401
    SERVER_TIMESTAMP,
    CollectionQuery,
    Document,
    DocumentStore,
    Subscription,
    user_collection,
)
from .memory import InMemoryDocumentStore  # noqa: F401


@lru_cache(maxsize=1)
def _memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_store(loop: Optional[asyncio.AbstractEventLoop] = None) -> DocumentStore:
    """
    Factory returning the configured store based on settings.
    - memory: InMemoryDocumentStore (process-wide singleton)
    - firestore: FirestoreDocumentStore (requires firebase_admin credentials);
      watch callbacks are delivered on `loop` when one is given
    """
    settings = get_settings()
    if settings.store_backend == "firestore":
        from .firestore import FirestoreDocumentStore

        return FirestoreDocumentStore(credentials_path=settings.firebase_credentials, loop=loop)
    return _memory_store()
