from __future__ import annotations

import logging
from typing import Optional

from .settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# PUBLIC_INTERFACE
def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for the service and the client core.

    The level defaults to settings.log_level (LOG_LEVEL env var). Unknown level
    names fall back to INFO. Calling this more than once is harmless since
    basicConfig does nothing when handlers are already installed.
    """
    name = (level or get_settings().log_level).upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
