import asyncio
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from studydesk.errors import LanguageModelError
from studydesk.llm import SUMMARY_PROMPT, OpenAILanguageModel
from studydesk.settings import get_settings
from studydesk.store import InMemoryDocumentStore, get_store


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def model_with(completions):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAILanguageModel(api_key="sk-test", model="gpt-test", card_count=3, client=client)


class TestOpenAILanguageModel:
    def test_summarize_sends_system_prompt_and_text(self):
        completions = FakeCompletions(content="- point")
        assert model_with(completions).summarize("some notes") == "- point"
        (call,) = completions.calls
        assert call["model"] == "gpt-test"
        assert call["messages"] == [
            {"role": "system", "content": SUMMARY_PROMPT},
            {"role": "user", "content": "some notes"},
        ]

    def test_flashcards_parse_json_object(self):
        completions = FakeCompletions(content='{"cards": [{"question": "Q", "answer": "A"}, "junk"]}')
        assert model_with(completions).flashcards("notes") == [{"question": "Q", "answer": "A"}]
        call = completions.calls[0]
        assert call["response_format"] == {"type": "json_object"}
        assert "Make 3 flashcards." in call["messages"][0]["content"]

    @pytest.mark.parametrize("content", ["not json", '{"items": []}', "", '["cards"]'])
    def test_unusable_flashcard_output(self, content):
        with pytest.raises(LanguageModelError):
            model_with(FakeCompletions(content=content)).flashcards("notes")

    def test_api_errors_become_language_model_errors(self):
        with pytest.raises(LanguageModelError):
            model_with(FakeCompletions(error=OpenAIError("rate limited"))).summarize("notes")


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("AUTOSAVE_DELAY", "SAVED_DISPLAY", "FLASHCARD_COUNT", "REQUIRE_AUTH", "CORS_ALLOW_ORIGINS"):
            monkeypatch.delenv(name, raising=False)
        settings = get_settings()
        assert settings.autosave_delay == 1.0
        assert settings.saved_display == 1.2
        assert settings.flashcard_count == 8
        assert settings.require_auth is False
        assert settings.cors_allow_origins == ["*"]

    def test_invalid_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "postgres")
        monkeypatch.setenv("AUTOSAVE_DELAY", "soon")
        monkeypatch.setenv("FLASHCARD_COUNT", "-2")
        monkeypatch.setenv("REQUIRE_AUTH", "maybe")
        settings = get_settings()
        assert settings.store_backend == "memory"
        assert settings.autosave_delay == 1.0
        assert settings.flashcard_count == 8
        assert settings.require_auth is False

    def test_parsed_values(self, monkeypatch):
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://localhost:3000, https://study.example ,")
        monkeypatch.setenv("AUTOSAVE_DELAY", "2.5")
        monkeypatch.setenv("REQUIRE_AUTH", "yes")
        monkeypatch.setenv("API_BASE_URL", "http://api.local/")
        settings = get_settings()
        assert settings.cors_allow_origins == ["http://localhost:3000", "https://study.example"]
        assert settings.autosave_delay == 2.5
        assert settings.require_auth is True
        assert settings.api_base_url == "http://api.local"

    def test_store_factory_is_a_singleton(self):
        store = get_store()
        assert isinstance(store, InMemoryDocumentStore)
        assert get_store() is store
        loop = asyncio.new_event_loop()
        try:
            # The memory store has no watch thread, so the loop makes no difference
            assert get_store(loop) is store
        finally:
            loop.close()
