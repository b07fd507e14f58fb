"""
GeoQuest — API Gateway Tests
pytest + FastAPI TestClient, Gemini replaced by a mock oracle

Coverage:
  - /health
  - /api/identify: verdict passthrough, 400 on missing image/location or
    bad base64, 500 {error} on inference failure, rate limit
  - /api/tts and /api/chat: happy path and 500 {error}
  - wrongly typed bodies are 400 {error}, wrongly typed model replies 500
  - Prompt builders used by the oracle
"""

import base64
import json
import os
import sys
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# ── Path setup ────────────────────────────────────────────────────────────────
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from geoquest.api import main
from geoquest.api.gemini import (
    GeminiOracle,
    InferenceError,
    build_chat_prompt,
    build_identify_prompt,
    build_tts_prompt,
)
from geoquest.engine.models import VerificationVerdict

IMAGE_B64 = base64.b64encode(b"\xff\xd8\xff\xe0fake-jpeg").decode()
LOCATION  = {"lat": 42.2773, "lng": 42.7043}

VERDICT = VerificationVerdict(
    location_confirmed = True,
    place_name         = "Bagrati Cathedral",
    story              = "Built by King Bagrat III.",
    points_earned      = 50,
    next_quest_hint    = "Find the White Bridge.",
)


@pytest.fixture
def oracle():
    mock = MagicMock()
    main.app.dependency_overrides[main.get_oracle] = lambda: mock
    main.limiter.reset()
    yield mock
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(oracle):
    return TestClient(main.app)


# ── Health ────────────────────────────────────────────────────────────────────

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "operational"


# ── /api/identify ─────────────────────────────────────────────────────────────

class TestIdentify:

    def test_returns_verdict(self, client, oracle):
        oracle.identify_landmark.return_value = VERDICT
        resp = client.post("/api/identify", json={"image": IMAGE_B64, "userLocation": LOCATION})

        assert resp.status_code == 200
        body = resp.json()
        assert body["location_confirmed"] is True
        assert body["place_name"] == "Bagrati Cathedral"
        assert body["points_earned"] == 50
        oracle.identify_landmark.assert_called_once_with(IMAGE_B64, 42.2773, 42.7043)

    def test_data_url_prefix_stripped(self, client, oracle):
        oracle.identify_landmark.return_value = VERDICT
        client.post(
            "/api/identify",
            json={"image": "data:image/jpeg;base64," + IMAGE_B64, "userLocation": LOCATION},
        )
        assert oracle.identify_landmark.call_args.args[0] == IMAGE_B64

    @pytest.mark.parametrize("body", [
        {"userLocation": LOCATION},
        {"image": "", "userLocation": LOCATION},
        {"image": IMAGE_B64},
        {"image": IMAGE_B64, "userLocation": {"lat": 42.27}},
    ])
    def test_missing_input_is_400(self, client, oracle, body):
        resp = client.post("/api/identify", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing image or location data"}
        oracle.identify_landmark.assert_not_called()

    def test_bad_base64_is_400(self, client, oracle):
        resp = client.post("/api/identify", json={"image": "@@@", "userLocation": LOCATION})
        assert resp.status_code == 400
        assert "error" in resp.json()
        oracle.identify_landmark.assert_not_called()

    def test_inference_failure_is_500(self, client, oracle):
        oracle.identify_landmark.side_effect = InferenceError("model down")
        resp = client.post("/api/identify", json={"image": IMAGE_B64, "userLocation": LOCATION})
        assert resp.status_code == 500
        assert resp.json() == {"error": "AI Processing Failed"}

    @pytest.mark.parametrize("overrides", [
        {"location_confirmed": "yes"},
        {"points_earned": "50"},
    ])
    def test_wrongly_typed_model_reply_is_500(self, client, overrides):
        reply = {
            "location_confirmed": True,
            "place_name":         "Bagrati Cathedral",
            "story":              "Built by King Bagrat III.",
            "points_earned":      50,
            "next_quest_hint":    "Find the White Bridge.",
            **overrides,
        }
        genai_client = MagicMock()
        genai_client.models.generate_content.return_value = MagicMock(text=json.dumps(reply))
        main.app.dependency_overrides[main.get_oracle] = lambda: GeminiOracle(client=genai_client)

        resp = client.post("/api/identify", json={"image": IMAGE_B64, "userLocation": LOCATION})
        assert resp.status_code == 500
        assert resp.json() == {"error": "AI Processing Failed"}

    @pytest.mark.parametrize("body", [
        {"image": 5, "userLocation": LOCATION},
        {"image": IMAGE_B64, "userLocation": {"lat": "north", "lng": 42.7}},
    ])
    def test_wrongly_typed_body_is_400(self, client, oracle, body):
        resp = client.post("/api/identify", json=body)
        assert resp.status_code == 400
        assert "error" in resp.json()
        oracle.identify_landmark.assert_not_called()

    def test_rate_limited(self, client, oracle):
        oracle.identify_landmark.return_value = VERDICT
        limit = int(main.RATE_LIMIT_IDENTIFY.split("/")[0])
        codes = [
            client.post("/api/identify", json={"image": IMAGE_B64, "userLocation": LOCATION}).status_code
            for _ in range(limit + 1)
        ]
        assert codes[:limit] == [200] * limit
        assert codes[-1] == 429


# ── /api/tts ──────────────────────────────────────────────────────────────────

class TestTTS:

    def test_guide(self, client, oracle):
        oracle.synthesize_speech.return_value = "AAAA"
        resp = client.post("/api/tts", json={"text": "Welcome to Bagrati", "type": "guide"})
        assert resp.status_code == 200
        assert resp.json() == {"audio": "AAAA"}
        oracle.synthesize_speech.assert_called_once_with("Welcome to Bagrati", "guide", None)

    def test_phrase(self, client, oracle):
        oracle.synthesize_speech.return_value = "BBBB"
        client.post("/api/tts", json={"text": "Madloba", "type": "phrase", "phrase": "Madloba"})
        oracle.synthesize_speech.assert_called_once_with("Madloba", "phrase", "Madloba")

    def test_failure_is_500(self, client, oracle):
        oracle.synthesize_speech.side_effect = InferenceError("no audio")
        resp = client.post("/api/tts", json={"text": "Hello"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Audio Gen Failed"}

    def test_empty_text_is_400(self, client, oracle):
        resp = client.post("/api/tts", json={"text": ""})
        assert resp.status_code == 400

    def test_unknown_type_is_400(self, client, oracle):
        resp = client.post("/api/tts", json={"text": "Hello", "type": "song"})
        assert resp.status_code == 400
        assert "error" in resp.json()
        oracle.synthesize_speech.assert_not_called()


# ── /api/chat ─────────────────────────────────────────────────────────────────

class TestChat:

    BODY = {
        "legendName": "Queen Tamar",
        "legendBio":  "Ruler of the Georgian golden age.",
        "history":    [{"role": "user", "text": "Hello"}, {"role": "model", "text": "Welcome."}],
        "newMessage": "Tell me about Gelati.",
    }

    def test_reply(self, client, oracle):
        oracle.chat_as_legend.return_value = "Gelati was built by my great-grandfather."
        resp = client.post("/api/chat", json=self.BODY)
        assert resp.status_code == 200
        assert resp.json() == {"reply": "Gelati was built by my great-grandfather."}

        name, bio, history, message = oracle.chat_as_legend.call_args.args
        assert name == "Queen Tamar"
        assert history[0] == {"role": "user", "text": "Hello"}
        assert message == "Tell me about Gelati."

    def test_failure_is_500(self, client, oracle):
        oracle.chat_as_legend.side_effect = InferenceError("quota")
        resp = client.post("/api/chat", json=self.BODY)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Chat Failed"}


# ── Prompt builders ───────────────────────────────────────────────────────────

class TestPrompts:

    def test_identify_prompt_has_gps_and_landmarks(self):
        prompt = build_identify_prompt(42.2773, 42.7043, ["Bagrati Cathedral", "Gelati Monastery"])
        assert "Lat 42.2773, Lng 42.7043" in prompt
        assert "Bagrati Cathedral, Gelati Monastery" in prompt
        assert "JSON only" in prompt

    def test_tts_prompt_by_kind(self):
        assert "native Georgian speaker" in build_tts_prompt("x", "phrase", phrase="Gamarjoba")
        assert '"Gamarjoba"' in build_tts_prompt("x", "phrase", phrase="Gamarjoba")
        assert "tour guide" in build_tts_prompt("Welcome", "guide")

    def test_chat_prompt_history(self):
        prompt = build_chat_prompt(
            "Queen Tamar", "Ruler", [{"role": "user", "text": "Hi"}, {"role": "model", "text": "Hello"}], "Why?"
        )
        assert "Traveler: Hi" in prompt
        assert "Queen Tamar: Hello" in prompt
        assert prompt.endswith("Traveler: Why?\nQueen Tamar:")
