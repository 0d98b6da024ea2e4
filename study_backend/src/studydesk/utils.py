from __future__ import annotations

import secrets
import time
from typing import Any


# PUBLIC_INTERFACE
def new_id() -> str:
    """
    Generate an opaque document identifier: random hex followed by the current
    time in milliseconds as hex. Unique enough for per-user collections.
    """
    return secrets.token_hex(6) + format(int(time.time() * 1000), "x")


# PUBLIC_INTERFACE
def clip(value: Any, limit: int) -> str:
    """Coerce value to a string (None -> '') and cut it to at most `limit` characters."""
    text = "" if value is None else str(value)
    return text[: max(limit, 0)]


# PUBLIC_INTERFACE
def append_block(body: str, opener: str, content: str, closer: str) -> str:
    """
    Append `content` to `body` between two marker lines, separated from the
    existing text by a blank line.

    Example:
        append_block("notes", "=== AI SUMMARY ===", "- point", "=== /SUMMARY ===")
        -> "notes\\n\\n=== AI SUMMARY ===\\n- point\\n=== /SUMMARY ===\\n"
    """
    return f"{body}\n\n{opener}\n{content}\n{closer}\n"
