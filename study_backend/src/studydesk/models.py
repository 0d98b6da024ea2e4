from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TypedDict

NOTES = "notes"
TASKS = "tasks"
FLASHCARDS = "flashcards"


# PUBLIC_INTERFACE
class NoteEntity(TypedDict):
    """
    A note document as delivered by a collection snapshot.

    Fields use the document store's field names:
    - id: Opaque document identifier
    - title: Note title ("New Note" on creation, "Untitled" when saved empty)
    - className: Folder label; empty string means unfiled
    - body: Free text
    - pinned: Pinned notes sort first
    - createdAt / updatedAt: Server-assigned timestamps (None until resolved)
    """

    id: str
    title: str
    className: str
    body: str
    pinned: bool
    createdAt: Optional[datetime]
    updatedAt: Optional[datetime]


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A task document. `due` is a calendar date string (YYYY-MM-DD) with no time part.
    """

    id: str
    title: str
    className: str
    due: str
    done: bool
    createdAt: Optional[datetime]


# PUBLIC_INTERFACE
class FlashcardEntity(TypedDict):
    """
    A flashcard document.

    noteId is a plain back-reference to the note the card was generated from and
    noteTitle is a snapshot of that note's title at generation time. Renaming the
    note later does not update noteTitle.
    """

    id: str
    noteId: Optional[str]
    noteTitle: str
    question: str
    answer: str
    createdAt: Optional[datetime]


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class User:
    """Authenticated identity as reported by the identity provider."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
