import asyncio

from studydesk.client.editor import AutosaveCoordinator, Draft, DraftEditor, SaveStatus, draft_payload
from studydesk.client.scheduler import AsyncioScheduler
from studydesk.errors import StoreWriteError
from studydesk.store import SERVER_TIMESTAMP


def note(note_id, title="Lecture 1", body="", folder=""):
    return {"id": note_id, "title": title, "className": folder, "body": body, "pinned": False,
            "createdAt": None, "updatedAt": None}


class RecordingWriter:
    def __init__(self):
        self.writes = []
        self.fail = False

    async def __call__(self, note_id, draft):
        if self.fail:
            raise StoreWriteError("offline")
        self.writes.append((note_id, draft))


class GatedWriter:
    """Writes that finish only when the test resolves their futures, in any order."""

    def __init__(self):
        self.calls = []

    def __call__(self, note_id, draft):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((note_id, draft, future))
        return future


def make(scheduler, notifier, writer=None):
    editor = DraftEditor()
    writer = writer or RecordingWriter()
    autosave = AutosaveCoordinator(editor, writer, scheduler, notifier, quiet_period=1.0, saved_display=1.2)
    statuses = []
    autosave.on_status(statuses.append)
    return editor, writer, autosave, statuses


class TestDraftPayload:
    def test_blank_title_becomes_untitled(self):
        payload = draft_payload(Draft(title="   ", class_name=" BIO 101 ", body="  keep  "))
        assert payload == {"title": "Untitled", "className": "BIO 101", "body": "  keep  ",
                           "updatedAt": SERVER_TIMESTAMP}


class TestDebounce:
    def test_loading_a_note_never_schedules_a_write(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a", body="loaded"))
        scheduler.advance(10)
        assert writer.writes == []
        assert autosave.status is SaveStatus.IDLE
        assert editor.draft == Draft(title="Lecture 1", body="loaded")

    def test_write_happens_once_after_quiet_period(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a"))
        editor.edit(body="h")
        scheduler.advance(0.6)
        editor.edit(body="he")
        scheduler.advance(0.6)
        # The second edit restarted the timer
        assert writer.writes == []
        assert autosave.status is SaveStatus.DIRTY_PENDING
        scheduler.advance(0.5)
        assert writer.writes == [("a", Draft(title="Lecture 1", body="he"))]

    def test_status_sequence_returns_to_idle(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a"))
        editor.edit(title="Lecture 2")
        scheduler.advance(1.0)
        assert autosave.status is SaveStatus.SAVED
        scheduler.advance(1.1)
        assert autosave.status is SaveStatus.SAVED
        scheduler.advance(0.2)
        assert statuses == [SaveStatus.DIRTY_PENDING, SaveStatus.SAVING, SaveStatus.SAVED, SaveStatus.IDLE]

    def test_edit_without_open_note_is_not_saved(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.edit(body="orphan")
        scheduler.advance(5)
        assert writer.writes == []
        assert scheduler.pending == 0


class TestFailures:
    def test_failed_write_keeps_draft_and_notifies(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a", title="Cells"))
        writer.fail = True
        editor.edit(body="mitochondria")
        scheduler.advance(1.0)
        assert autosave.status is SaveStatus.ERROR
        assert editor.draft.body == "mitochondria"
        assert notifier.last == (
            'Saving "Cells" failed. Your changes are kept and will be saved again when you save or reopen the note.'
        )

        writer.fail = False
        assert asyncio.run(autosave.save_now()) is True
        assert writer.writes == [("a", Draft(title="Cells", body="mitochondria"))]
        assert autosave.status is SaveStatus.SAVED

    def test_failed_flush_is_put_back_when_the_note_is_reloaded(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a", body="old a"))
        editor.edit(body="new a")
        writer.fail = True
        editor.load(note("b", body="b body"))
        assert editor.draft.body == "b body"
        assert autosave.status is SaveStatus.IDLE
        assert autosave.unsaved("a").draft.body == "new a"

        writer.fail = False
        editor.load(note("a", body="old a"))
        assert editor.draft.body == "new a"
        assert autosave.status is SaveStatus.DIRTY_PENDING
        scheduler.advance(1.0)
        assert writer.writes == [("a", Draft(title="Lecture 1", body="new a"))]
        assert autosave.unsaved("a") is None


class TestManualSave:
    def test_save_now_cancels_the_pending_timer(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a"))
        editor.edit(body="typed")
        assert asyncio.run(autosave.save_now()) is True
        scheduler.advance(5)
        assert len(writer.writes) == 1
        assert autosave.pending is None

    def test_save_now_without_note(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        assert asyncio.run(autosave.save_now()) is False


class TestNoteSwitching:
    def test_switching_notes_flushes_to_the_old_note(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a", body="old a"))
        editor.edit(body="new a")
        scheduler.advance(0.5)
        editor.load(note("b", title="Other", body="b body"))
        assert writer.writes == [("a", Draft(title="Lecture 1", body="new a"))]
        assert autosave.status is SaveStatus.IDLE
        scheduler.advance(5)
        # Nothing is written to b, and a is not written twice
        assert len(writer.writes) == 1
        assert editor.note_id == "b"
        assert editor.draft.body == "b body"

    def test_discard_drops_pending_save(self, scheduler, notifier):
        editor, writer, autosave, statuses = make(scheduler, notifier)
        editor.load(note("a"))
        editor.edit(body="gone")
        pending = autosave.discard()
        assert pending.note_id == "a"
        scheduler.advance(5)
        assert writer.writes == []
        assert autosave.status is SaveStatus.IDLE


class TestOnEventLoop:
    def test_older_failure_does_not_override_a_newer_save(self, notifier):
        async def session():
            writer = GatedWriter()
            editor, _, autosave, statuses = make(AsyncioScheduler(), notifier, writer)
            editor.load(note("a"))
            editor.edit(body="first")
            autosave.flush()
            editor.edit(body="second")
            autosave.flush()
            (_, _, first), (_, second_draft, second) = writer.calls
            assert second_draft.body == "second"

            second.set_result(None)
            await asyncio.sleep(0.01)
            assert autosave.status is SaveStatus.SAVED

            first.set_exception(StoreWriteError("offline"))
            await asyncio.sleep(0.01)
            return autosave

        autosave = asyncio.run(session())
        assert autosave.status is SaveStatus.SAVED
        assert autosave.unsaved("a") is None
        assert notifier.messages == []
