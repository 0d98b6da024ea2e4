from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..models import FLASHCARDS, NOTES, TASKS, FlashcardEntity, NoteEntity, TaskEntity
from ..store.base import CollectionQuery, Document, DocumentStore, Subscription, user_collection
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]
SelectListener = Callable[[Optional[str]], None]


@dataclass(frozen=True)
class _Stream:
    name: str
    order_by: str
    descending: bool


STREAMS = (
    _Stream(NOTES, "updatedAt", True),
    _Stream(TASKS, "due", False),
    _Stream(FLASHCARDS, "createdAt", True),
)


def _as_note(doc: Document) -> NoteEntity:
    return {
        "id": doc["id"],
        "title": doc.get("title") or "",
        "className": doc.get("className") or "",
        "body": doc.get("body") or "",
        "pinned": bool(doc.get("pinned", False)),
        "createdAt": doc.get("createdAt"),
        "updatedAt": doc.get("updatedAt"),
    }


def _as_task(doc: Document) -> TaskEntity:
    return {
        "id": doc["id"],
        "title": doc.get("title") or "",
        "className": doc.get("className") or "",
        "due": doc.get("due") or "",
        "done": bool(doc.get("done", False)),
        "createdAt": doc.get("createdAt"),
    }


def _as_card(doc: Document) -> FlashcardEntity:
    return {
        "id": doc["id"],
        "noteId": doc.get("noteId"),
        "noteTitle": doc.get("noteTitle") or "",
        "question": doc.get("question") or "",
        "answer": doc.get("answer") or "",
        "createdAt": doc.get("createdAt"),
    }


_CONVERTERS: Dict[str, Callable[[Document], Any]] = {
    NOTES: _as_note,
    TASKS: _as_task,
    FLASHCARDS: _as_card,
}


# PUBLIC_INTERFACE
class RemoteCollectionMirror:
    """
    Live local copies of the signed-in user's notes, tasks and flashcards.

    Every snapshot replaces the matching list as a whole. The mirror also owns the
    active-note selection: whenever a notes snapshot arrives and nothing is
    selected, the first (most recently updated) note is selected; an existing
    selection is kept even if the note moves in the ordering.

    A failed stream is re-subscribed after an exponential backoff
    (backoff_initial, doubling up to backoff_max). A successful snapshot resets
    the delay. The other streams are not affected.
    """

    def __init__(
        self,
        store: DocumentStore,
        scheduler: Scheduler,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max

        self.notes: List[NoteEntity] = []
        self.tasks: List[TaskEntity] = []
        self.flashcards: List[FlashcardEntity] = []
        self.active_note_id: Optional[str] = None

        self._uid: Optional[str] = None
        self._generation = 0
        self._subscriptions: Dict[str, Subscription] = {}
        self._retries: Dict[str, TimerHandle] = {}
        self._delays: Dict[str, float] = {}
        self._change_listeners: List[ChangeListener] = []
        self._select_listeners: List[SelectListener] = []

    @property
    def uid(self) -> Optional[str]:
        return self._uid

    @property
    def subscribed(self) -> bool:
        return self._uid is not None

    @property
    def active_note(self) -> Optional[NoteEntity]:
        if self.active_note_id is None:
            return None
        return next((n for n in self.notes if n["id"] == self.active_note_id), None)

    def on_change(self, listener: ChangeListener) -> None:
        """Call listener(collection_name) after each list replacement."""
        self._change_listeners.append(listener)

    def on_select(self, listener: SelectListener) -> None:
        """Call listener(note_id) whenever the active note changes."""
        self._select_listeners.append(listener)

    def select(self, note_id: Optional[str]) -> None:
        if note_id == self.active_note_id:
            return
        self.active_note_id = note_id
        for listener in list(self._select_listeners):
            listener(note_id)

    def subscribe(self, uid: str) -> None:
        """Open the three live subscriptions for `uid`, replacing any previous ones."""
        if self._uid is not None:
            self.teardown()
        self._uid = uid
        self._generation += 1
        logger.info("Mirroring collections for user %s", uid)
        for stream in STREAMS:
            self._delays[stream.name] = self._backoff_initial
            self._open(stream, self._generation)

    def teardown(self) -> None:
        """Unsubscribe all streams, cancel pending retries and drop the local copies."""
        for sub in self._subscriptions.values():
            sub.unsubscribe()
        for timer in self._retries.values():
            timer.cancel()
        self._subscriptions = {}
        self._retries = {}
        self._uid = None
        self._generation += 1
        self.notes = []
        self.tasks = []
        self.flashcards = []
        self.select(None)
        for stream in STREAMS:
            self._emit(stream.name)

    def _open(self, stream: _Stream, generation: int) -> None:
        assert self._uid is not None
        query = CollectionQuery(
            path=user_collection(self._uid, stream.name),
            order_by=stream.order_by,
            descending=stream.descending,
        )
        self._subscriptions[stream.name] = self._store.subscribe(
            query,
            lambda docs: self._on_snapshot(stream, generation, docs),
            lambda exc: self._on_error(stream, generation, exc),
        )

    def _on_snapshot(self, stream: _Stream, generation: int, docs: List[Document]) -> None:
        if generation != self._generation:
            return
        convert = _CONVERTERS[stream.name]
        setattr(self, stream.name, [convert(d) for d in docs])
        self._delays[stream.name] = self._backoff_initial
        if stream.name == NOTES and self.active_note_id is None and self.notes:
            self.select(self.notes[0]["id"])
        self._emit(stream.name)

    def _on_error(self, stream: _Stream, generation: int, exc: Exception) -> None:
        if generation != self._generation:
            return
        delay = self._delays.get(stream.name, self._backoff_initial)
        self._delays[stream.name] = min(delay * 2, self._backoff_max)
        self._subscriptions.pop(stream.name, None)
        logger.warning("Subscription to %s failed (%s); retrying in %.1fs", stream.name, exc, delay)
        self._retries[stream.name] = self._scheduler.call_later(
            delay, lambda: self._retry(stream, generation)
        )

    def _retry(self, stream: _Stream, generation: int) -> None:
        self._retries.pop(stream.name, None)
        if generation != self._generation:
            return
        self._open(stream, generation)

    def _emit(self, name: str) -> None:
        for listener in list(self._change_listeners):
            listener(name)
