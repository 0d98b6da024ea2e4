from __future__ import annotations

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

# A notifier shows a message to the user and returns once it has been acknowledged
Notifier = Callable[[str], None]


def log_notifier(message: str) -> None:
    """Default notifier for headless runs: the message goes to the log."""
    logger.warning("ALERT: %s", message)


class CollectingNotifier:
    """Notifier that keeps every message, for tests and scripted sessions."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)

    @property
    def last(self) -> str:
        return self.messages[-1] if self.messages else ""
