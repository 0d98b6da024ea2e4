"""
Derived views over the mirrored lists.

Everything here is a pure function of its arguments: nothing is cached and no
input is modified. Callers recompute whenever a list or a filter changes.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from ..models import FlashcardEntity, NoteEntity, TaskEntity

ALL = "ALL"
GRID_CELLS = 42

DAY_PENDING = "pending"
DAY_DONE = "done"


# PUBLIC_INTERFACE
def folder_list(notes: Iterable[NoteEntity]) -> List[str]:
    """Distinct non-empty trimmed folder labels, alphabetical, after the ALL sentinel."""
    folders = {(n.get("className") or "").strip() for n in notes}
    folders.discard("")
    return [ALL, *sorted(folders, key=lambda s: (s.casefold(), s))]


def _updated_seconds(note: NoteEntity) -> float:
    value = note.get("updatedAt")
    # Notes whose server timestamp has not resolved yet sort as oldest
    return value.timestamp() if isinstance(value, datetime) else 0.0


def _matches(note: NoteEntity, folder: str, needle: str) -> bool:
    if folder != ALL and (note.get("className") or "").strip() != folder:
        return False
    if not needle:
        return True
    haystack = f"{note.get('title') or ''} {note.get('className') or ''} {note.get('body') or ''}".lower()
    return needle in haystack


# PUBLIC_INTERFACE
def filter_notes(notes: Sequence[NoteEntity], folder: str = ALL, search: str = "") -> List[NoteEntity]:
    """
    Notes in `folder` (or all of them for ALL) whose title, folder and body
    contain `search`, case-insensitively. Pinned notes come first, then the
    most recently updated.
    """
    needle = (search or "").lower()
    kept = [n for n in notes if _matches(n, folder, needle)]
    return sorted(kept, key=lambda n: (not n.get("pinned", False), -_updated_seconds(n)))


# PUBLIC_INTERFACE
def tasks_by_date(tasks: Iterable[TaskEntity]) -> Dict[str, List[TaskEntity]]:
    """Group tasks by their due string, keeping list order. Tasks without a due date are skipped."""
    grouped: Dict[str, List[TaskEntity]] = {}
    for task in tasks:
        due = task.get("due")
        if not due:
            continue
        grouped.setdefault(due, []).append(task)
    return grouped


# PUBLIC_INTERFACE
def day_status(tasks: Sequence[TaskEntity]) -> Optional[str]:
    """Calendar dot for one day: DAY_PENDING if any task is undone, DAY_DONE if all are done, None if no tasks."""
    if not tasks:
        return None
    return DAY_DONE if all(t.get("done") for t in tasks) else DAY_PENDING


# PUBLIC_INTERFACE
def study_deck(
    cards: Sequence[FlashcardEntity],
    only_this_note: bool = False,
    active_note_id: Optional[str] = None,
) -> List[FlashcardEntity]:
    """All flashcards, or only those generated from the active note when the toggle is on and a note is active."""
    if only_this_note and active_note_id:
        return [c for c in cards if c.get("noteId") == active_note_id]
    return list(cards)


# PUBLIC_INTERFACE
def month_grid(reference: date) -> List[date]:
    """
    The 42 days shown for `reference`'s month: six full weeks starting on the
    Sunday on or before the first of the month.
    """
    first = reference.replace(day=1)
    # date.weekday() is Monday=0 .. Sunday=6
    start = first - timedelta(days=(first.weekday() + 1) % 7)
    return [start + timedelta(days=i) for i in range(GRID_CELLS)]


# PUBLIC_INTERFACE
def add_months(reference: date, delta: int) -> date:
    """First day of the month `delta` months away from `reference`."""
    index = reference.year * 12 + (reference.month - 1) + delta
    return date(index // 12, index % 12 + 1, 1)


def month_label(reference: date) -> str:
    return reference.strftime("%B %Y")


def ymd(day: date) -> str:
    return day.isoformat()
