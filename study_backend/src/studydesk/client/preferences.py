from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict

logger = logging.getLogger(__name__)

THEMES = ("light", "dark")
DEFAULT_THEME = "dark"


class Preferences:
    """
    Local preferences persisted to a small JSON file. Only the theme is stored.

    An unreadable or invalid file is treated as empty so startup never fails on it.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._data = self._read()

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self._path):
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences file %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self) -> None:
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)

    @property
    def theme(self) -> str:
        saved = self._data.get("theme")
        return saved if saved in THEMES else DEFAULT_THEME

    @theme.setter
    def theme(self, value: str) -> None:
        if value not in THEMES:
            raise ValueError(f"theme must be one of {THEMES}")
        self._data["theme"] = value
        self._write()
