from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]
ErrorCallback = Callable[[Exception], None]


class _ServerTimestamp:
    """Sentinel replaced by the store with its own clock at write time."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


# PUBLIC_INTERFACE
def user_collection(uid: str, name: str) -> str:
    """Return the path of a collection scoped under a user: users/{uid}/{name}."""
    return f"users/{uid}/{name}"


@dataclass(frozen=True)
class CollectionQuery:
    """
    A live query over one collection.

    - path: collection path, e.g. 'users/abc/notes'
    - order_by: field the snapshot is ordered by
    - descending: sort direction
    """
    path: str
    order_by: str
    descending: bool = False


# PUBLIC_INTERFACE
class Subscription(ABC):
    """Handle returned by DocumentStore.subscribe; unsubscribe() stops further callbacks."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering snapshots. Calling it twice is a no-op."""


# PUBLIC_INTERFACE
class DocumentStore(ABC):
    """Abstract contract for the realtime document store holding notes, tasks and flashcards."""

    @abstractmethod
    def set(self, path: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        """
        Write a document. With merge=True only the given fields are updated,
        otherwise the document is replaced. SERVER_TIMESTAMP values are resolved
        by the store. Raises StoreWriteError on failure.
        """

    @abstractmethod
    def delete(self, path: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""

    @abstractmethod
    def get(self, path: str, doc_id: str) -> Optional[Document]:
        """Return a document (with its 'id' key) or None if missing."""

    @abstractmethod
    def subscribe(
        self,
        query: CollectionQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Open a live subscription. on_snapshot receives the complete ordered list
        of documents, first right after subscribing and again after every change.
        on_error is called when the stream fails; no snapshots follow an error.
        """

    async def aset(self, path: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        """
        Awaitable set() for code running on the event loop. Backends whose writes
        block on the network override this to run the write off the loop.
        """
        self.set(path, doc_id, data, merge=merge)

    async def adelete(self, path: str, doc_id: str) -> None:
        """Awaitable delete(); see aset()."""
        self.delete(path, doc_id)
