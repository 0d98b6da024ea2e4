import json

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from studydesk import auth as auth_module
from studydesk.generate_openapi import generate_openapi
from studydesk.models import User

LONG_TEXT = "Photosynthesis turns light into chemical energy in chloroplasts."


def assert_error(res, status_code: int, message: str):
    assert res.status_code == status_code
    assert res.json() == {"error": message}


class TestHealth:
    def test_health_check(self, api_client):
        res = api_client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["store"] in ("memory", "firestore")


class TestSummarize:
    def test_summarize_returns_model_summary(self, api_client, fake_model):
        fake_model.summary = "- chloroplasts\n- light reactions"
        res = api_client.post("/api/summarize", json={"text": LONG_TEXT})
        assert res.status_code == 200
        assert res.json() == {"summary": "- chloroplasts\n- light reactions"}
        assert fake_model.seen == [LONG_TEXT]

    def test_summarize_rejects_short_or_missing_text(self, api_client, fake_model):
        assert_error(api_client.post("/api/summarize", json={"text": "too short"}), 400, "Text too short")
        assert_error(api_client.post("/api/summarize", json={}), 400, "Text too short")
        # The model is never called for rejected input
        assert fake_model.seen == []

    def test_summarize_model_failure_is_500(self, api_client, fake_model):
        fake_model.fail = True
        assert_error(api_client.post("/api/summarize", json={"text": LONG_TEXT}), 500, "AI error")


class TestFlashcards:
    def test_flashcards_returns_cards(self, api_client, fake_model):
        fake_model.cards = [{"question": "What is ATP?", "answer": "Energy currency"}]
        res = api_client.post("/api/flashcards", json={"text": LONG_TEXT})
        assert res.status_code == 200
        assert res.json() == {"cards": [{"question": "What is ATP?", "answer": "Energy currency"}]}

    def test_flashcards_clip_and_fill_fields(self, api_client, fake_model):
        fake_model.cards = [{"question": "q" * 800, "answer": "a" * 2000}, {"question": None}]
        res = api_client.post("/api/flashcards", json={"text": LONG_TEXT})
        assert res.status_code == 200
        cards = res.json()["cards"]
        assert len(cards[0]["question"]) == 500
        assert len(cards[0]["answer"]) == 1500
        assert cards[1] == {"question": "", "answer": ""}

    def test_flashcards_errors(self, api_client, fake_model):
        assert_error(api_client.post("/api/flashcards", json={"text": ""}), 400, "Text too short")
        fake_model.fail = True
        assert_error(api_client.post("/api/flashcards", json={"text": LONG_TEXT}), 500, "AI error")


class TestValidationErrors:
    def test_wrong_text_type_uses_error_format(self, api_client):
        res = api_client.post("/api/summarize", json={"text": ["not", "a", "string"]})
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)
        (error,) = body["detail"]
        assert error["loc"] == ["body", "text"]
        assert "ctx" not in error

    def test_pdf_upload_requires_file(self, api_client):
        res = api_client.post("/api/pdf/extract")
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"


class TestPdfExtract:
    def test_extract_marks_each_page(self, api_client, pdf_bytes):
        data = pdf_bytes(["Hello world", "Second page"])
        res = api_client.post("/api/pdf/extract", files={"file": ("lecture.pdf", data, "application/pdf")})
        assert res.status_code == 200
        body = res.json()
        assert body["name"] == "lecture.pdf"
        assert body["pages"] == 2
        assert body["text"] == "[Page 1]\nHello world\n\n[Page 2]\nSecond page"

    def test_extract_rejects_non_pdf(self, api_client):
        res = api_client.post("/api/pdf/extract", files={"file": ("notes.txt", b"plain text", "text/plain")})
        assert_error(res, 400, "PDF extraction failed")


class TestAuthDependency:
    def _app(self):
        protected = FastAPI()

        @protected.get("/whoami")
        def whoami(user=Depends(auth_module.get_auth_dependency())):
            return {"uid": user.uid if user else None}

        return TestClient(protected)

    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("REQUIRE_AUTH", raising=False)
        res = self._app().get("/whoami")
        assert res.status_code == 200
        assert res.json() == {"uid": None}

    def test_enabled_requires_valid_bearer_token(self, monkeypatch):
        monkeypatch.setenv("REQUIRE_AUTH", "true")

        def fake_verify(token):
            if token != "good-token":
                raise ValueError("bad token")
            return User(uid="student-1")

        monkeypatch.setattr(auth_module, "verify_id_token", fake_verify)
        client = self._app()

        missing = client.get("/whoami")
        assert missing.status_code == 401
        assert missing.headers["WWW-Authenticate"] == "Bearer"

        bad = client.get("/whoami", headers={"Authorization": "Bearer nope"})
        assert bad.status_code == 401
        assert bad.json()["detail"] == "Invalid authentication credentials"

        good = client.get("/whoami", headers={"Authorization": "Bearer good-token"})
        assert good.status_code == 200
        assert good.json() == {"uid": "student-1"}


class TestOpenAPI:
    def test_generate_openapi_writes_schema_with_tags(self, tmp_path):
        path = generate_openapi(str(tmp_path / "interfaces" / "openapi.json"))
        with open(path, encoding="utf-8") as f:
            schema = json.load(f)
        assert {"/api/summarize", "/api/flashcards", "/api/pdf/extract"} <= set(schema["paths"])
        assert {"health", "ai", "pdf"} <= {t["name"] for t in schema["tags"]}
