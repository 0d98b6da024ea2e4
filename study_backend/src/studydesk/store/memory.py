from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..errors import StoreWriteError
from .base import (
    SERVER_TIMESTAMP,
    CollectionQuery,
    Document,
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    Subscription,
)


class _MemorySubscription(Subscription):
    def __init__(self, store: "InMemoryDocumentStore", key: int) -> None:
        self._store = store
        self._key = key

    def unsubscribe(self) -> None:
        self._store._drop_listener(self._key)


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe in-memory document store suitable for testing and local runs.

    Snapshots are delivered synchronously from inside set()/delete() once the
    lock has been released, so a listener may write back into the store.

    Test hooks:
    - fail_writes: when True, set()/delete() raise StoreWriteError
    - fail_stream(path, exc): deliver an error to every listener on a path
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._lock = RLock()
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._listeners: Dict[int, Tuple[CollectionQuery, SnapshotCallback, Optional[ErrorCallback]]] = {}
        self._next_key = 1
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_ts: Optional[datetime] = None
        self.fail_writes = False
        self.write_count = 0

    def _now(self) -> datetime:
        # Server timestamps are strictly increasing even on coarse clocks
        now = self._clock()
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    def _resolve(self, data: Mapping[str, Any]) -> Document:
        resolved: Document = {}
        ts: Optional[datetime] = None
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                if ts is None:
                    ts = self._now()
                value = ts
            resolved[key] = value
        return resolved

    def set(self, path: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        if self.fail_writes:
            raise StoreWriteError(f"write to {path}/{doc_id} rejected")
        with self._lock:
            docs = self._collections.setdefault(path, {})
            fields = self._resolve(data)
            fields.pop("id", None)
            if merge and doc_id in docs:
                updated = dict(docs[doc_id])
                updated.update(fields)
                docs[doc_id] = updated
            else:
                docs[doc_id] = fields
            self.write_count += 1
        self._notify(path)

    def delete(self, path: str, doc_id: str) -> None:
        if self.fail_writes:
            raise StoreWriteError(f"delete of {path}/{doc_id} rejected")
        with self._lock:
            removed = self._collections.get(path, {}).pop(doc_id, None)
        if removed is not None:
            self._notify(path)

    def get(self, path: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._collections.get(path, {}).get(doc_id)
            return None if doc is None else {"id": doc_id, **doc}

    def subscribe(
        self,
        query: CollectionQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        with self._lock:
            key = self._next_key
            self._next_key += 1
            self._listeners[key] = (query, on_snapshot, on_error)
            initial = self._snapshot(query)
        on_snapshot(initial)
        return _MemorySubscription(self, key)

    def fail_stream(self, path: str, exc: Exception) -> None:
        """Fail every live subscription on `path`, the way a dropped connection would."""
        with self._lock:
            failed = [(k, entry) for k, entry in self._listeners.items() if entry[0].path == path]
            for k, _ in failed:
                del self._listeners[k]
        for _, (_, _, on_error) in failed:
            if on_error is not None:
                on_error(exc)

    def listener_count(self, path: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for q, _, _ in self._listeners.values() if path is None or q.path == path)

    def _drop_listener(self, key: int) -> None:
        with self._lock:
            self._listeners.pop(key, None)

    def _snapshot(self, query: CollectionQuery) -> List[Document]:
        docs = self._collections.get(query.path, {})
        # Like the hosted store, documents without the order field are left out
        present = [(doc_id, d) for doc_id, d in docs.items() if query.order_by in d]

        def sort_key(item: Tuple[str, Document]) -> Tuple[int, Any]:
            value = item[1][query.order_by]
            return (0, "") if value is None else (1, value)

        ordered = sorted(present, key=sort_key, reverse=query.descending)
        return [{"id": doc_id, **d} for doc_id, d in ordered]

    def _notify(self, path: str) -> None:
        with self._lock:
            pending = [
                (callback, self._snapshot(query))
                for query, callback, _ in self._listeners.values()
                if query.path == path
            ]
        for callback, docs in pending:
            callback(docs)
