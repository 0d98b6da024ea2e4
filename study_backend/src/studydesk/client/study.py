from __future__ import annotations

from typing import Callable, List, Optional

from ..models import FlashcardEntity
from .alerts import Notifier, log_notifier


class StudySession:
    """
    Flashcard study mode over a deck supplied by `deck()` (recomputed on each call,
    so mirror updates show up while studying).
    """

    def __init__(self, deck: Callable[[], List[FlashcardEntity]], notifier: Notifier = log_notifier) -> None:
        self._deck = deck
        self._notify = notifier
        self.active = False
        self.index = 0
        self.flipped = False

    @property
    def card(self) -> Optional[FlashcardEntity]:
        if not self.active:
            return None
        deck = self._deck()
        if not deck:
            return None
        return deck[min(self.index, len(deck) - 1)]

    def start(self) -> bool:
        if not self._deck():
            self._notify("No flashcards to study yet.")
            return False
        self.active = True
        self.index = 0
        self.flipped = False
        return True

    def stop(self) -> None:
        self.active = False
        self.index = 0
        self.flipped = False

    def flip(self) -> None:
        self.flipped = not self.flipped

    def next(self) -> None:
        self.flipped = False
        self.index = min(self.index + 1, max(0, len(self._deck()) - 1))

    def prev(self) -> None:
        self.flipped = False
        self.index = max(self.index - 1, 0)
