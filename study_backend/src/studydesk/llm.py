from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from .errors import LanguageModelError
from .settings import get_settings

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "You are a powerful academic study assistant. "
    "Create a clear bullet summary with key concepts."
)


def _flashcard_prompt(count: int) -> str:
    return (
        'Return ONLY valid JSON in this format: {"cards":[{"question":"","answer":""}]}. '
        f"Make {count} flashcards."
    )


# PUBLIC_INTERFACE
class LanguageModel(ABC):
    """Contract for the external language model behind the AI endpoints."""

    @abstractmethod
    def summarize(self, text: str) -> str:
        """Return a bullet summary of `text`. Raises LanguageModelError."""

    @abstractmethod
    def flashcards(self, text: str) -> List[Dict[str, Any]]:
        """Return question/answer pairs generated from `text`. Raises LanguageModelError."""


class OpenAILanguageModel(LanguageModel):
    """
    LanguageModel backed by the OpenAI chat completions API.

    The client is created on first use so a missing API key only fails the call
    that needs it.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        card_count: int = 8,
        client: Optional[OpenAI] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._card_count = card_count
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            try:
                self._client = OpenAI(api_key=self._api_key)
            except OpenAIError as exc:
                raise LanguageModelError(f"OpenAI client unavailable: {exc}") from exc
        return self._client

    def _complete(self, system: str, text: str, **kwargs: Any) -> str:
        try:
            completion = self._get_client().chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": text},
                ],
                **kwargs,
            )
        except OpenAIError as exc:
            raise LanguageModelError(str(exc)) from exc
        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise LanguageModelError("empty completion")
        return content

    def summarize(self, text: str) -> str:
        return self._complete(SUMMARY_PROMPT, text)

    def flashcards(self, text: str) -> List[Dict[str, Any]]:
        content = self._complete(
            _flashcard_prompt(self._card_count),
            text,
            response_format={"type": "json_object"},
        )
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise LanguageModelError(f"model returned invalid JSON: {exc}") from exc
        cards = parsed.get("cards") if isinstance(parsed, dict) else None
        if not isinstance(cards, list):
            raise LanguageModelError("model response has no 'cards' list")
        return [c for c in cards if isinstance(c, dict)]


# PUBLIC_INTERFACE
def get_language_model() -> LanguageModel:
    """FastAPI dependency returning the configured language model."""
    settings = get_settings()
    return OpenAILanguageModel(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        card_count=settings.flashcard_count,
    )
