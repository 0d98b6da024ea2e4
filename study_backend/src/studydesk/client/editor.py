from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..errors import StoreWriteError
from ..models import NoteEntity
from ..store.base import SERVER_TIMESTAMP
from .alerts import Notifier, log_notifier
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"


class SaveStatus(str, Enum):
    IDLE = "idle"
    DIRTY_PENDING = "dirty_pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class Draft:
    """Working copy of one note's editable fields."""
    title: str = ""
    class_name: str = ""
    body: str = ""


@dataclass(frozen=True)
class PendingSave:
    """A save captured when its timer was armed: the target note and the fields to write."""
    note_id: str
    draft: Draft


# PUBLIC_INTERFACE
def draft_payload(draft: Draft) -> Dict[str, Any]:
    """
    Merge-write payload for a draft: trimmed title (DEFAULT_TITLE when empty),
    trimmed folder label, body as typed and a server-side update time.
    """
    return {
        "title": draft.title.strip() or DEFAULT_TITLE,
        "className": draft.class_name.strip(),
        "body": draft.body,
        "updatedAt": SERVER_TIMESTAMP,
    }


# PUBLIC_INTERFACE
class DraftEditor:
    """
    Editable fields of the open note, kept apart from the mirrored note list.

    load() seeds the draft without reporting an edit; every edit() after that is
    reported to the edit listeners. Fields are always replaced as a whole Draft.
    """

    def __init__(self) -> None:
        self.note_id: Optional[str] = None
        self.draft = Draft()
        self._loading = False
        self._edit_listeners: List[Callable[[], None]] = []
        self._before_load: List[Callable[[], None]] = []
        self._after_load: List[Callable[[], None]] = []

    @property
    def loading(self) -> bool:
        return self._loading

    def on_edit(self, listener: Callable[[], None]) -> None:
        self._edit_listeners.append(listener)

    def on_before_load(self, listener: Callable[[], None]) -> None:
        self._before_load.append(listener)

    def on_after_load(self, listener: Callable[[], None]) -> None:
        self._after_load.append(listener)

    def load(self, note: Optional[NoteEntity]) -> None:
        """Replace the draft with `note`'s fields, or clear it when note is None."""
        for listener in list(self._before_load):
            listener()
        self._loading = True
        try:
            if note is None:
                self.note_id = None
                self.draft = Draft()
            else:
                self.note_id = note["id"]
                self.draft = Draft(
                    title=note.get("title") or "",
                    class_name=note.get("className") or "",
                    body=note.get("body") or "",
                )
        finally:
            self._loading = False
        for listener in list(self._after_load):
            listener()

    def edit(
        self,
        title: Optional[str] = None,
        class_name: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        """Set one or more draft fields."""
        changes = {k: v for k, v in (("title", title), ("class_name", class_name), ("body", body)) if v is not None}
        if not changes:
            return
        self.draft = replace(self.draft, **changes)
        self._report_edit()

    def update_body(self, fn: Callable[[str], str]) -> None:
        """Replace the body with fn(current body)."""
        self.draft = replace(self.draft, body=fn(self.draft.body))
        self._report_edit()

    def _report_edit(self) -> None:
        if self._loading:
            return
        for listener in list(self._edit_listeners):
            listener()


Writer = Callable[[str, Draft], Awaitable[None]]


async def _rejected(exc: StoreWriteError) -> None:
    raise exc


# PUBLIC_INTERFACE
class AutosaveCoordinator:
    """
    Debounced persistence of the DraftEditor.

    States: idle -> dirty_pending (edit) -> saving (quiet period elapsed or manual
    save) -> saved -> idle (after saved_display seconds), or saving -> error on a
    failed write. Errors go to the notifier and leave the draft as typed.

    Each armed timer carries a PendingSave with the note id and field values it
    will write. Switching notes while a save is pending starts that save for the
    old note before the new one is loaded. Writes run on the scheduler's loop and
    are never cancelled; when two writes of one note overlap, the later one decides
    the outcome.

    `writer(note_id, draft)` is called when a write starts and returns the
    awaitable doing the work, so the target is fixed even if the session changes
    before the write completes.

    A failed save is held. When its note is loaded again the held fields are put
    back into the draft and the save is armed again.
    """

    def __init__(
        self,
        editor: DraftEditor,
        writer: Writer,
        scheduler: Scheduler,
        notifier: Notifier = log_notifier,
        quiet_period: float = 1.0,
        saved_display: float = 1.2,
    ) -> None:
        self._editor = editor
        self._writer = writer
        self._scheduler = scheduler
        self._notify = notifier
        self.quiet_period = quiet_period
        self.saved_display = saved_display

        self.status = SaveStatus.IDLE
        self._pending: Optional[PendingSave] = None
        self._timer: Optional[TimerHandle] = None
        self._saved_timer: Optional[TimerHandle] = None
        self._status_listeners: List[Callable[[SaveStatus], None]] = []
        self._unsaved: Dict[str, PendingSave] = {}
        self._latest: Dict[str, int] = {}
        self._seq = itertools.count(1)

        editor.on_edit(self._on_edit)
        editor.on_before_load(self.flush)
        editor.on_after_load(self._on_loaded)

    @property
    def pending(self) -> Optional[PendingSave]:
        return self._pending

    def unsaved(self, note_id: str) -> Optional[PendingSave]:
        """The held save of a note whose last write failed, if any."""
        return self._unsaved.get(note_id)

    def on_status(self, listener: Callable[[SaveStatus], None]) -> None:
        self._status_listeners.append(listener)

    async def save_now(self) -> bool:
        """Write the current draft right away, skipping the quiet period. Returns True on success."""
        self._cancel_timer()
        self._pending = None
        if self._editor.note_id is None:
            return False
        pending = PendingSave(self._editor.note_id, self._editor.draft)
        seq, write = self._begin(pending)
        return await self._finish(pending, seq, write)

    def flush(self) -> None:
        """Start writing a pending save immediately, if there is one."""
        pending = self._pending
        self._cancel_timer()
        self._pending = None
        if pending is None:
            return
        logger.debug("Flushing pending save for note %s", pending.note_id)
        self._write_soon(pending)

    def discard(self) -> Optional[PendingSave]:
        """Drop a pending save without writing it (used when its note is being deleted)."""
        pending = self._pending
        self._cancel_timer()
        self._pending = None
        if pending is not None:
            logger.info("Discarded pending save for note %s", pending.note_id)
            self._set_status(SaveStatus.IDLE)
        return pending

    def hold(self, pending: PendingSave) -> None:
        """Keep an unwritten save so it is put back into the draft when its note is loaded."""
        self._unsaved[pending.note_id] = pending

    def forget(self, note_id: str) -> None:
        self._unsaved.pop(note_id, None)

    def drop_unsaved(self) -> List[PendingSave]:
        """Forget every held save and return them."""
        dropped = list(self._unsaved.values())
        self._unsaved = {}
        return dropped

    def _on_edit(self) -> None:
        note_id = self._editor.note_id
        if note_id is None:
            return
        self._cancel_timer()
        self._cancel_saved_timer()
        pending = PendingSave(note_id, self._editor.draft)
        self._pending = pending
        self._set_status(SaveStatus.DIRTY_PENDING)
        self._timer = self._scheduler.call_later(self.quiet_period, lambda: self._fire(pending))

    def _fire(self, pending: PendingSave) -> None:
        if self._pending is not pending:
            return
        self._timer = None
        self._pending = None
        self._write_soon(pending)

    def _write_soon(self, pending: PendingSave) -> None:
        seq, write = self._begin(pending)
        self._scheduler.spawn(self._finish(pending, seq, write))

    def _begin(self, pending: PendingSave) -> Tuple[int, Awaitable[None]]:
        self._cancel_saved_timer()
        self._set_status(SaveStatus.SAVING)
        seq = next(self._seq)
        self._latest[pending.note_id] = seq
        try:
            return seq, self._writer(pending.note_id, pending.draft)
        except StoreWriteError as exc:
            return seq, _rejected(exc)

    async def _finish(self, pending: PendingSave, seq: int, write: Awaitable[None]) -> bool:
        try:
            await write
        except StoreWriteError as exc:
            logger.error("Saving note %s failed: %s", pending.note_id, exc)
            ok = False
        else:
            ok = True
        if self._latest.get(pending.note_id) != seq:
            return ok
        del self._latest[pending.note_id]

        # Status only describes the note that is open, and only until it is edited again
        current = pending.note_id == self._editor.note_id and self.status is SaveStatus.SAVING
        if ok:
            self._unsaved.pop(pending.note_id, None)
            if current:
                self._set_status(SaveStatus.SAVED)
                self._saved_timer = self._scheduler.call_later(self.saved_display, self._saved_elapsed)
            return True

        self._unsaved[pending.note_id] = pending
        if current:
            self._set_status(SaveStatus.ERROR)
        self._notify(
            f"Saving \"{pending.draft.title.strip() or DEFAULT_TITLE}\" failed. "
            "Your changes are kept and will be saved again when you save or reopen the note."
        )
        return False

    def _saved_elapsed(self) -> None:
        self._saved_timer = None
        if self.status is SaveStatus.SAVED:
            self._set_status(SaveStatus.IDLE)

    def _on_loaded(self) -> None:
        self._cancel_saved_timer()
        self._set_status(SaveStatus.IDLE)
        note_id = self._editor.note_id
        held = self._unsaved.pop(note_id, None) if note_id is not None else None
        if held is not None:
            logger.info("Restoring unsaved changes to note %s", note_id)
            self._editor.edit(title=held.draft.title, class_name=held.draft.class_name, body=held.draft.body)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_saved_timer(self) -> None:
        if self._saved_timer is not None:
            self._saved_timer.cancel()
            self._saved_timer = None

    def _set_status(self, status: SaveStatus) -> None:
        if status is self.status:
            return
        self.status = status
        for listener in list(self._status_listeners):
            listener(status)
