from __future__ import annotations

import asyncio
import logging
from typing import Any, BinaryIO, Dict, List, Optional, Union

import httpx

from ..errors import DelegateError, PdfExtractionError, StoreWriteError
from ..models import FLASHCARDS
from ..pdf import extract_pdf_text
from ..schemas import ANSWER_MAX, QUESTION_MAX
from ..store.base import SERVER_TIMESTAMP, DocumentStore, user_collection
from ..utils import append_block, clip, new_id
from .alerts import Notifier, log_notifier
from .editor import DEFAULT_TITLE, DraftEditor

logger = logging.getLogger(__name__)

MAX_CARDS = 25
SUMMARY_OPEN = "=== AI SUMMARY ==="
SUMMARY_CLOSE = "=== /SUMMARY ==="
PDF_CLOSE = "--- /PDF ---"


def _pdf_open(name: str) -> str:
    return f"--- PDF IMPORT: {name} ---"


# PUBLIC_INTERFACE
class TaskDelegates:
    """
    One-shot external tasks started from the editor: PDF import, AI summary and
    flashcard generation. Nothing is retried; failures go to the notifier and
    leave the draft as it was.

    `http` is an httpx.AsyncClient whose base_url points at the studydesk
    service. PDF parsing and store writes run off the event loop.
    """

    def __init__(self, http: httpx.AsyncClient, store: DocumentStore, notifier: Notifier = log_notifier) -> None:
        self._http = http
        self._store = store
        self._notify = notifier

    async def _post_text(self, path: str, text: str) -> Dict[str, Any]:
        try:
            response = await self._http.post(path, json={"text": text})
        except httpx.HTTPError as exc:
            raise DelegateError(f"{path}: {exc}") from exc
        if response.status_code != 200:
            raise DelegateError(f"{path} returned {response.status_code}: {response.text}")
        try:
            data = response.json()
        except ValueError as exc:
            raise DelegateError(f"{path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise DelegateError(f"{path} returned {type(data).__name__}, expected an object")
        return data

    def _still_open(self, editor: DraftEditor, note_id: Optional[str], label: str) -> bool:
        if editor.note_id == note_id:
            return True
        logger.info("%s for note %s finished after it was closed", label, note_id)
        self._notify(f"{label} was not inserted: the note was closed before it finished.")
        return False

    async def import_pdf(self, editor: DraftEditor, name: str, source: Union[bytes, BinaryIO]) -> bool:
        """Extract a PDF's text and append it to the draft body between PDF import markers."""
        note_id = editor.note_id
        try:
            text = await asyncio.to_thread(extract_pdf_text, source)
        except PdfExtractionError:
            self._notify("PDF import failed.")
            return False
        if not self._still_open(editor, note_id, "PDF import"):
            return False
        block = append_block("", _pdf_open(name), text, PDF_CLOSE)
        editor.update_body(lambda body: body + block if body else block.lstrip())
        return True

    async def summarize(self, editor: DraftEditor) -> bool:
        """Post the draft body to /api/summarize and append the summary between summary markers."""
        note_id = editor.note_id
        try:
            data = await self._post_text("/api/summarize", editor.draft.body)
            summary = data.get("summary")
            if not isinstance(summary, str):
                raise DelegateError("response has no summary")
        except DelegateError as exc:
            logger.warning("Summarize failed: %s", exc)
            self._notify("Summarize failed.")
            return False
        if not self._still_open(editor, note_id, "Summary"):
            return False
        editor.update_body(lambda body: append_block(body, SUMMARY_OPEN, summary, SUMMARY_CLOSE))
        return True

    async def generate_flashcards(self, uid: str, editor: DraftEditor) -> int:
        """
        Post the draft body to /api/flashcards and store up to MAX_CARDS cards for
        the open note. Returns the number stored; 0 means nothing was written.
        """
        note_id = editor.note_id
        if note_id is None:
            return 0
        try:
            cards = self._parse_cards(await self._post_text("/api/flashcards", editor.draft.body))
        except DelegateError as exc:
            logger.warning("Flashcard generation failed: %s", exc)
            self._notify("Flashcard generation failed.")
            return 0

        path = user_collection(uid, FLASHCARDS)
        note_title = editor.draft.title or DEFAULT_TITLE
        saved = 0
        try:
            for card in cards:
                await self._store.aset(
                    path,
                    new_id(),
                    {
                        "noteId": note_id,
                        "noteTitle": note_title,
                        "question": clip(card.get("question"), QUESTION_MAX),
                        "answer": clip(card.get("answer"), ANSWER_MAX),
                        "createdAt": SERVER_TIMESTAMP,
                    },
                )
                saved += 1
        except StoreWriteError as exc:
            logger.error("Storing flashcards failed after %d of %d: %s", saved, len(cards), exc)
            self._notify(f"Saving flashcards failed after {saved} of {len(cards)}.")
            return saved
        self._notify(f"Saved {saved} flashcards.")
        return saved

    @staticmethod
    def _parse_cards(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        cards: Optional[Any] = data.get("cards")
        if not isinstance(cards, list) or not cards:
            raise DelegateError("response has no cards")
        if not all(isinstance(c, dict) for c in cards):
            raise DelegateError("response has malformed cards")
        return cards[:MAX_CARDS]
