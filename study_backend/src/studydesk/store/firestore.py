from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

import firebase_admin
from firebase_admin import credentials, firestore

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

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def init_firebase_app(credentials_path: Optional[str] = None) -> firebase_admin.App:
    """
    Return the default firebase_admin app, initializing it on first use.

    With no credentials path the SDK falls back to Application Default Credentials.
    """
    if firebase_admin._apps:
        return firebase_admin.get_app()
    cred = credentials.Certificate(credentials_path) if credentials_path else None
    return firebase_admin.initialize_app(cred)


class _WatchSubscription(Subscription):
    def __init__(self) -> None:
        self._watch: Any = None
        self._active = True

    def attach(self, watch: Any) -> None:
        self._watch = watch

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._watch is not None:
            self._watch.unsubscribe()


class FirestoreDocumentStore(DocumentStore):
    """
    Cloud Firestore implementation of the DocumentStore contract.

    Watch callbacks arrive on the SDK's background thread. When an event loop is
    given they are handed to it with call_soon_threadsafe so application state is
    only touched from the loop. The SDK's writes block on the network, so aset()
    and adelete() run them in a worker thread.
    """

    def __init__(
        self,
        client: Any = None,
        credentials_path: Optional[str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if client is None:
            init_firebase_app(credentials_path)
            client = firestore.client()
        self._client = client
        self._loop = loop

    @staticmethod
    def _encode(data: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            key: (firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value)
            for key, value in data.items()
            if key != "id"
        }

    def _dispatch(self, fn: Any, *args: Any) -> None:
        if self._loop is None:
            fn(*args)
        else:
            self._loop.call_soon_threadsafe(fn, *args)

    def set(self, path: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        try:
            self._client.collection(path).document(doc_id).set(self._encode(data), merge=merge)
        except Exception as exc:
            raise StoreWriteError(f"write to {path}/{doc_id} failed: {exc}") from exc

    def delete(self, path: str, doc_id: str) -> None:
        try:
            self._client.collection(path).document(doc_id).delete()
        except Exception as exc:
            raise StoreWriteError(f"delete of {path}/{doc_id} failed: {exc}") from exc

    async def aset(self, path: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        await asyncio.to_thread(self.set, path, doc_id, data, merge)

    async def adelete(self, path: str, doc_id: str) -> None:
        await asyncio.to_thread(self.delete, path, doc_id)

    def get(self, path: str, doc_id: str) -> Optional[Document]:
        snap = self._client.collection(path).document(doc_id).get()
        if not snap.exists:
            return None
        return {"id": snap.id, **(snap.to_dict() or {})}

    def subscribe(
        self,
        query: CollectionQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        direction = firestore.Query.DESCENDING if query.descending else firestore.Query.ASCENDING
        fs_query = self._client.collection(query.path).order_by(query.order_by, direction=direction)
        handle = _WatchSubscription()

        def _callback(docs: List[Any], _changes: Any, _read_time: Any) -> None:
            if not handle.active:
                return
            try:
                snapshot = [{"id": d.id, **(d.to_dict() or {})} for d in docs]
            except Exception as exc:
                logger.warning("Dropping watch on %s after a bad snapshot: %s", query.path, exc)
                handle.unsubscribe()
                if on_error is not None:
                    self._dispatch(on_error, exc)
                return
            self._dispatch(on_snapshot, snapshot)

        try:
            handle.attach(fs_query.on_snapshot(_callback))
        except Exception as exc:
            logger.warning("Could not open watch on %s: %s", query.path, exc)
            handle.unsubscribe()
            if on_error is not None:
                self._dispatch(on_error, exc)
        return handle
