import asyncio
import os
from dataclasses import replace
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

# Ensure we default to the memory store for tests to avoid cloud dependencies
os.environ.setdefault("STORE_BACKEND", "memory")

from studydesk.client.alerts import CollectingNotifier  # noqa: E402
from studydesk.client.app import StudyApp  # noqa: E402
from studydesk.client.identity import IdentitySession, StaticIdentityProvider  # noqa: E402
from studydesk.client.preferences import Preferences  # noqa: E402
from studydesk.client.scheduler import ManualScheduler  # noqa: E402
from studydesk.client.transcription import FakeRecognizer  # noqa: E402
from studydesk.errors import LanguageModelError  # noqa: E402
from studydesk.llm import LanguageModel, get_language_model  # noqa: E402
from studydesk.main import app  # noqa: E402
from studydesk.models import User  # noqa: E402
from studydesk.settings import get_settings  # noqa: E402
from studydesk.store.memory import InMemoryDocumentStore  # noqa: E402


class FakeLanguageModel(LanguageModel):
    def __init__(self, summary: str = "- key point", cards: Optional[List[Dict[str, Any]]] = None) -> None:
        self.summary = summary
        self.cards = cards if cards is not None else [{"question": "Q1", "answer": "A1"}]
        self.fail = False
        self.seen: List[str] = []

    def summarize(self, text: str) -> str:
        self.seen.append(text)
        if self.fail:
            raise LanguageModelError("boom")
        return self.summary

    def flashcards(self, text: str) -> List[Dict[str, Any]]:
        self.seen.append(text)
        if self.fail:
            raise LanguageModelError("boom")
        return self.cards


def build_pdf(pages: List[str]) -> bytes:
    """Build a small valid PDF with one line of Helvetica text per page."""
    count = len(pages)
    page_ids = [4 + 2 * i for i in range(count)]
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {count} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for pid, text in zip(page_ids, pages):
        stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode()
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>"
            ).encode()
        )
        objects.append(b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode()
    return bytes(out)


@pytest.fixture
def pdf_bytes():
    return build_pdf


@pytest.fixture
def fake_model():
    model = FakeLanguageModel()
    app.dependency_overrides[get_language_model] = lambda: model
    yield model
    app.dependency_overrides.pop(get_language_model, None)


@pytest.fixture
def api_client(fake_model):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def async_api_client(fake_model):
    """httpx.AsyncClient calling the app in-process, for code that awaits the service."""
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    yield client
    asyncio.run(client.aclose())


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def notifier():
    return CollectingNotifier()


@pytest.fixture
def user():
    return User(uid="student-1", email="student@example.com")


@pytest.fixture
def provider(user):
    return StaticIdentityProvider(user)


@pytest.fixture
def identity(provider):
    return IdentitySession(provider)


@pytest.fixture
def settings():
    return replace(get_settings(), autosave_delay=1.0, saved_display=1.2)


@pytest.fixture
def recognizer():
    return FakeRecognizer()


@pytest.fixture
def study_app(identity, store, scheduler, async_api_client, tmp_path, recognizer, notifier, settings):
    """A signed-in StudyApp on the memory store, talking to the API in-process."""
    application = StudyApp(
        identity=identity,
        store=store,
        scheduler=scheduler,
        http=async_api_client,
        preferences=Preferences(str(tmp_path / "prefs.json")),
        recognizer=recognizer,
        notifier=notifier,
        settings=settings,
        today=date(2025, 3, 14),
    )
    identity.sign_in()
    yield application
    application.close()
