from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Awaitable, BinaryIO, Callable, Dict, Iterator, List, Optional, Union

import httpx
from pydantic import ValidationError

from ..errors import StoreWriteError
from ..models import NOTES, TASKS, FlashcardEntity, NoteEntity, TaskEntity, User
from ..schemas import TaskCreate
from ..settings import Settings, get_settings
from ..store import get_store
from ..store.base import SERVER_TIMESTAMP, DocumentStore, user_collection
from ..utils import new_id
from . import views
from .alerts import Notifier, log_notifier
from .delegates import TaskDelegates
from .editor import AutosaveCoordinator, Draft, DraftEditor, draft_payload
from .identity import IdentitySession
from .mirror import RemoteCollectionMirror
from .preferences import Preferences
from .scheduler import AsyncioScheduler, Scheduler
from .study import StudySession
from .transcription import SpeechRecognizer, TranscriptionSession, default_recognizer

logger = logging.getLogger(__name__)

NEW_NOTE_TITLE = "New Note"
DELETE_PROMPT = "Delete this note? This cannot be undone."


@dataclass(frozen=True)
class CalendarCell:
    """One day of the month grid with the tasks due that day."""
    day: date
    in_month: bool
    tasks: List[TaskEntity]
    status: Optional[str]

    @property
    def count(self) -> int:
        return len(self.tasks)


# PUBLIC_INTERFACE
class StudyApp:
    """
    Application state for one signed-in session.

    Owns the theme, the active note (through the mirror), the busy indicator,
    note filters, the calendar month and the study mode, and exposes every user
    action. All failures surface through `notifier`; none of them is fatal.

    Actions that reach the store or the studydesk service are coroutines and
    must be awaited on the loop that drives `scheduler`.
    """

    def __init__(
        self,
        identity: IdentitySession,
        store: DocumentStore,
        scheduler: Scheduler,
        http: httpx.AsyncClient,
        preferences: Preferences,
        recognizer: Optional[SpeechRecognizer] = None,
        notifier: Notifier = log_notifier,
        settings: Optional[Settings] = None,
        today: Optional[date] = None,
    ) -> None:
        settings = settings or get_settings()
        self._identity = identity
        self._store = store
        self._preferences = preferences
        self._notify = notifier

        self.mirror = RemoteCollectionMirror(store, scheduler)
        self.editor = DraftEditor()
        self.autosave = AutosaveCoordinator(
            self.editor,
            self._write_draft,
            scheduler,
            notifier,
            quiet_period=settings.autosave_delay,
            saved_display=settings.saved_display,
        )
        self.transcription = TranscriptionSession(recognizer, notifier)
        self.delegates = TaskDelegates(http, store, notifier)
        self.study = StudySession(self.study_deck, notifier)

        self.theme = preferences.theme
        self.busy = ""
        self.note_search = ""
        self.folder = views.ALL
        self.study_only_this_note = False
        self.calendar_month = (today or date.today()).replace(day=1)
        self.selected_day: Optional[str] = None
        self._created: Dict[str, NoteEntity] = {}

        self.mirror.on_select(self._on_select)
        identity.on_change(self._on_user)
        if identity.current_user is not None:
            self._on_user(identity.current_user)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def user(self) -> Optional[User]:
        return self._identity.current_user

    def sign_in(self) -> Optional[User]:
        return self._identity.sign_in()

    def sign_out(self) -> None:
        self._identity.sign_out()

    def close(self) -> None:
        """Flush a pending save and stop mirroring."""
        self.autosave.flush()
        self._drop_unsaved()
        self.mirror.teardown()

    def _on_user(self, user: Optional[User]) -> None:
        # A pending save still belongs to the previous user's note
        self.autosave.flush()
        self._drop_unsaved()
        if user is None:
            self.mirror.teardown()
        else:
            self.mirror.subscribe(user.uid)

    def _drop_unsaved(self) -> None:
        dropped = self.autosave.drop_unsaved()
        if dropped:
            logger.warning("Dropping unsaved changes to %d note(s)", len(dropped))
            self._notify(f"Unsaved changes to {len(dropped)} note(s) were discarded.")

    def _path(self, collection: str) -> str:
        assert self.mirror.uid is not None
        return user_collection(self.mirror.uid, collection)

    @contextmanager
    def _busy(self, label: str) -> Iterator[None]:
        self.busy = label
        try:
            yield
        finally:
            self.busy = ""

    # ------------------------------------------------------------------
    # Theme
    # ------------------------------------------------------------------

    def toggle_theme(self) -> str:
        self.theme = "light" if self.theme == "dark" else "dark"
        self._preferences.theme = self.theme
        return self.theme

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    @property
    def active_note(self) -> Optional[NoteEntity]:
        return self.mirror.active_note

    def select_note(self, note_id: Optional[str]) -> None:
        """Open a note by id, or close the open note with None. Unknown ids are ignored."""
        if note_id is not None and note_id not in self._created and not any(
            n["id"] == note_id for n in self.mirror.notes
        ):
            logger.warning("Ignoring selection of unknown note %s", note_id)
            return
        self.mirror.select(note_id)

    def _on_select(self, note_id: Optional[str]) -> None:
        note = self.mirror.active_note
        if note is None and note_id is not None:
            # A note created a moment ago may not have reached the mirror yet
            note = self._created.get(note_id)
        self.editor.load(note)

    def _write_draft(self, note_id: str, draft: Draft) -> Awaitable[None]:
        if self.mirror.uid is None:
            raise StoreWriteError("not signed in")
        return self._store.aset(self._path(NOTES), note_id, draft_payload(draft), merge=True)

    async def create_note(self) -> Optional[str]:
        if self.mirror.uid is None:
            return None
        note_id = new_id()
        try:
            await self._store.aset(
                self._path(NOTES),
                note_id,
                {
                    "title": NEW_NOTE_TITLE,
                    "className": "",
                    "body": "",
                    "pinned": False,
                    "createdAt": SERVER_TIMESTAMP,
                    "updatedAt": SERVER_TIMESTAMP,
                },
            )
        except StoreWriteError as exc:
            logger.error("Creating note failed: %s", exc)
            self._notify("Creating the note failed.")
            return None
        self._created = {
            note_id: {
                "id": note_id,
                "title": NEW_NOTE_TITLE,
                "className": "",
                "body": "",
                "pinned": False,
                "createdAt": None,
                "updatedAt": None,
            }
        }
        self.mirror.select(note_id)
        return note_id

    async def save_note(self) -> bool:
        """Manual save of the open note, bypassing the autosave quiet period."""
        if self.editor.note_id is None:
            return False
        with self._busy("Saving..."):
            return await self.autosave.save_now()

    async def delete_note(self, confirm: Callable[[str], bool] = lambda message: True) -> bool:
        """
        Delete the open note after `confirm(DELETE_PROMPT)` agrees. Its pending
        save is held back while the delete runs; if the delete fails the note is
        reopened with the typed changes and their save is armed again.
        """
        note_id = self.mirror.active_note_id
        if self.mirror.uid is None or note_id is None:
            return False
        if not confirm(DELETE_PROMPT):
            return False
        pending = self.autosave.discard()
        self.mirror.select(None)
        try:
            await self._store.adelete(self._path(NOTES), note_id)
        except StoreWriteError as exc:
            logger.error("Deleting note %s failed: %s", note_id, exc)
            self._notify("Deleting the note failed.")
            if pending is not None:
                self.autosave.hold(pending)
            self.mirror.select(note_id)
            return False
        self.autosave.forget(note_id)
        if self.mirror.active_note_id == note_id:
            # Picked again by a snapshot that arrived before the delete landed
            self.mirror.select(next((n["id"] for n in self.mirror.notes if n["id"] != note_id), None))
        return True

    async def toggle_pin(self, note: NoteEntity) -> bool:
        if self.mirror.uid is None:
            return False
        try:
            await self._store.aset(
                self._path(NOTES),
                note["id"],
                {"pinned": not note.get("pinned", False), "updatedAt": SERVER_TIMESTAMP},
                merge=True,
            )
        except StoreWriteError as exc:
            logger.error("Pinning note %s failed: %s", note["id"], exc)
            self._notify("Updating the note failed.")
            return False
        return True

    @property
    def folders(self) -> List[str]:
        return views.folder_list(self.mirror.notes)

    @property
    def visible_notes(self) -> List[NoteEntity]:
        return views.filter_notes(self.mirror.notes, self.folder, self.note_search)

    # ------------------------------------------------------------------
    # Tasks and calendar
    # ------------------------------------------------------------------

    async def add_task(self, title: str, class_name: str = "", due: Union[str, date, None] = None) -> bool:
        if self.mirror.uid is None:
            return False
        try:
            task = TaskCreate(title=title, className=class_name, due=due)
        except ValidationError:
            self._notify("Task title and due date required.")
            return False
        try:
            await self._store.aset(
                self._path(TASKS),
                new_id(),
                {
                    "title": task.title,
                    "className": task.className,
                    "due": task.due,
                    "done": False,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
        except StoreWriteError as exc:
            logger.error("Adding task failed: %s", exc)
            self._notify("Adding the task failed.")
            return False
        return True

    async def toggle_task(self, task: TaskEntity) -> bool:
        if self.mirror.uid is None:
            return False
        try:
            await self._store.aset(self._path(TASKS), task["id"], {"done": not task.get("done", False)}, merge=True)
        except StoreWriteError as exc:
            logger.error("Updating task %s failed: %s", task["id"], exc)
            self._notify("Updating the task failed.")
            return False
        return True

    async def delete_task(self, task: TaskEntity) -> bool:
        if self.mirror.uid is None:
            return False
        try:
            await self._store.adelete(self._path(TASKS), task["id"])
        except StoreWriteError as exc:
            logger.error("Deleting task %s failed: %s", task["id"], exc)
            self._notify("Deleting the task failed.")
            return False
        return True

    @property
    def tasks_by_date(self) -> Dict[str, List[TaskEntity]]:
        return views.tasks_by_date(self.mirror.tasks)

    @property
    def month_label(self) -> str:
        return views.month_label(self.calendar_month)

    def calendar(self) -> List[CalendarCell]:
        grouped = self.tasks_by_date
        cells = []
        for day in views.month_grid(self.calendar_month):
            tasks = grouped.get(views.ymd(day), [])
            cells.append(
                CalendarCell(
                    day=day,
                    in_month=day.month == self.calendar_month.month,
                    tasks=tasks,
                    status=views.day_status(tasks),
                )
            )
        return cells

    def shift_month(self, delta: int) -> date:
        self.calendar_month = views.add_months(self.calendar_month, delta)
        return self.calendar_month

    def select_day(self, day: Optional[date]) -> None:
        self.selected_day = views.ymd(day) if day is not None else None

    @property
    def selected_day_tasks(self) -> List[TaskEntity]:
        if self.selected_day is None:
            return []
        return self.tasks_by_date.get(self.selected_day, [])

    # ------------------------------------------------------------------
    # Flashcards and study mode
    # ------------------------------------------------------------------

    def study_deck(self) -> List[FlashcardEntity]:
        return views.study_deck(self.mirror.flashcards, self.study_only_this_note, self.mirror.active_note_id)

    async def make_flashcards(self) -> int:
        if self.mirror.uid is None or self.editor.note_id is None:
            return 0
        with self._busy("Generating flashcards..."):
            return await self.delegates.generate_flashcards(self.mirror.uid, self.editor)

    # ------------------------------------------------------------------
    # Editor helpers
    # ------------------------------------------------------------------

    async def import_pdf(self, name: str, source: Union[bytes, BinaryIO]) -> bool:
        with self._busy("Extracting PDF text..."):
            return await self.delegates.import_pdf(self.editor, name, source)

    async def summarize(self) -> bool:
        with self._busy("Summarizing..."):
            return await self.delegates.summarize(self.editor)

    def insert_timestamp(self, now: Optional[datetime] = None) -> None:
        stamp = (now or datetime.now()).strftime("%H:%M")
        self.editor.update_body(lambda body: f"{body}\n[{stamp}] ")

    def start_transcription(self) -> bool:
        return self.transcription.start()

    def stop_transcription(self) -> None:
        self.transcription.stop()

    def insert_transcript(self) -> bool:
        return self.transcription.insert_into_note(self.editor)


# PUBLIC_INTERFACE
def build_app(identity: IdentitySession, notifier: Notifier = log_notifier) -> StudyApp:
    """
    Assemble a StudyApp from settings: configured store, asyncio timers, an httpx
    client pointed at API_BASE_URL, the microphone recognizer when available and
    preferences from PREFERENCES_PATH.

    Must be called from the running event loop. Store watch callbacks and
    recognizer results are handed to that loop, so application state is only
    touched from it.
    """
    settings = get_settings()
    loop = asyncio.get_running_loop()
    return StudyApp(
        identity=identity,
        store=get_store(loop),
        scheduler=AsyncioScheduler(loop),
        http=httpx.AsyncClient(base_url=settings.api_base_url, timeout=60.0),
        preferences=Preferences(settings.preferences_path),
        recognizer=default_recognizer(loop=loop),
        notifier=notifier,
        settings=settings,
    )
