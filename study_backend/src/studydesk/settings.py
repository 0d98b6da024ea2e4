from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - STORE_BACKEND: 'memory' (default) or 'firestore'
    - FIREBASE_CREDENTIALS: path to a service-account JSON file (firestore backend / token checks)
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - REQUIRE_AUTH: 'true' to require a Firebase ID token on API calls (default: false)
    - OPENAI_API_KEY: API key for the language model
    - OPENAI_MODEL: chat model name. Default 'gpt-4o-mini'
    - FLASHCARD_COUNT: number of flashcards requested per generation call. Default 8
    - AUTOSAVE_DELAY: quiet period in seconds before a draft is saved. Default 1.0
    - SAVED_DISPLAY: seconds the 'saved' status stays visible. Default 1.2
    - API_BASE_URL: base URL the client uses to reach the AI endpoints
    - PREFERENCES_PATH: JSON file holding local preferences. Default './data/preferences.json'
    - LOG_LEVEL: logging level name. Default 'INFO'
    """

    store_backend: str
    firebase_credentials: Optional[str]
    cors_allow_origins: List[str]
    require_auth: bool
    openai_api_key: Optional[str]
    openai_model: str
    flashcard_count: int
    autosave_delay: float
    saved_display: float
    api_base_url: str
    preferences_path: str
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _parse_int(value: str, default: int) -> int:
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


@lru_cache(maxsize=1)
def _load_dotenv_once() -> None:
    # Values already present in the environment win over the .env file
    load_dotenv(override=False)


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables (and a .env file if present)."""
    _load_dotenv_once()

    backend = _get_env("STORE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "firestore"}:
        # Fallback to memory if unsupported
        backend = "memory"

    credentials = os.getenv("FIREBASE_CREDENTIALS") or None

    return Settings(
        store_backend=backend,
        firebase_credentials=credentials.strip() if credentials else None,
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        require_auth=_parse_bool(_get_env("REQUIRE_AUTH", "false"), False),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=_get_env("OPENAI_MODEL", "gpt-4o-mini").strip(),
        flashcard_count=_parse_int(_get_env("FLASHCARD_COUNT", "8"), 8),
        autosave_delay=_parse_float(_get_env("AUTOSAVE_DELAY", "1.0"), 1.0),
        saved_display=_parse_float(_get_env("SAVED_DISPLAY", "1.2"), 1.2),
        api_base_url=_get_env("API_BASE_URL", "http://localhost:8000").rstrip("/"),
        preferences_path=_get_env("PREFERENCES_PATH", "./data/preferences.json").strip(),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )
