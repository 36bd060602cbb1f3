"""
Companion HTTP API 验证脚本

运行方式：pytest test_companion_api.py

用 FastAPI TestClient + 假 Prompt Client 走一遍鉴权、无状态接口与会话接口。
"""

import os
import sys

# 添加当前目录到系统路径
current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(current_dir)

from fastapi.testclient import TestClient

from apps.app import create_app
from apps.companion.errors import TranscriptionError
from apps.companion.messages import WELCOME_MESSAGE
from apps.companion.schemas import AnalysisResult, ChatbotResponse, ConditionFinding, Modality
from apps.settings import BackendSettings

TOKEN = "test-internal-token"
HEADERS = {"Authorization": f"Bearer {TOKEN}"}
AUDIO_URI = "data:audio/webm;base64,AAAA"


class FakePromptClient:
    def __init__(self):
        self.chat_requests = []

    async def run_analysis(self, modality, payload):
        if modality is Modality.TEXT and "hopeless" in payload:
            return AnalysisResult(
                conditions=[ConditionFinding(name="Depression", confidence=72.3, suggestions=["Rest"])],
                emotion="sad",
            )
        return AnalysisResult()

    async def run_chat_turn(self, request):
        self.chat_requests.append(request)
        return ChatbotResponse(bot_response=f"echo: {request.user_message or request.detected_condition}")

    async def transcribe(self, audio_data_uri):
        if audio_data_uri == "bad":
            raise TranscriptionError("not a base64 data URI")
        return "spoken words"


def _client(token=TOKEN):
    fake = FakePromptClient()
    settings = BackendSettings(internal_token=token, gemini_model_name="gemini-test")
    return TestClient(create_app(settings=settings, prompt_client=fake)), fake


def test_health_is_public():
    client, _ = _client()
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["gemini_model"] == "gemini-test"
    assert body["internal_auth_enabled"] is True


def test_auth_required_when_token_configured():
    client, _ = _client()
    assert client.post("/api/companion/sessions").status_code == 401
    wrong = {"Authorization": "Bearer nope"}
    assert client.post("/api/companion/sessions", headers=wrong).status_code == 401

    open_client, _ = _client(token="")
    assert open_client.post("/api/companion/sessions").status_code == 200


def test_stateless_analyze():
    client, _ = _client()
    resp = client.post("/api/companion/analyze", json={"text_input": "I feel hopeless"}, headers=HEADERS)
    body = resp.json()
    assert body["success"] is True
    assert body["result"]["text_analysis"]["conditions"][0]["name"] == "Depression"
    assert body["result"]["voice_analysis"] is None

    resp = client.post("/api/companion/analyze", json={}, headers=HEADERS)
    body = resp.json()
    assert body["success"] is False
    assert "No valid input provided" in body["error"]


def test_stateless_transcribe():
    client, _ = _client()
    body = client.post(
        "/api/companion/transcribe", json={"audio_input_data_uri": AUDIO_URI}, headers=HEADERS
    ).json()
    assert body == {"success": True, "text": "spoken words", "error": None}

    body = client.post("/api/companion/transcribe", json={"audio_input_data_uri": "bad"}, headers=HEADERS).json()
    assert body["success"] is False
    assert "data URI" in body["error"]


def test_session_flow():
    client, fake = _client()
    created = client.post("/api/companion/sessions", headers=HEADERS).json()
    session_id = created["session"]["session_id"]
    assert created["session"]["chat_history"][0]["text"] == WELCOME_MESSAGE

    body = client.post(
        f"/api/companion/sessions/{session_id}/analyze", json={"text_input": "I feel hopeless"}, headers=HEADERS
    ).json()
    assert body["success"] is True
    assert body["run"]["primary_condition"] == "Depression"
    assert body["session"]["detected_condition"] == "Depression"
    assert body["session"]["chat_history"][-1]["text"] == "echo: Depression"
    assert body["session"]["analysis_history"][0]["diagnosis"] == "Depression (72.3%)"

    body = client.post(
        f"/api/companion/sessions/{session_id}/chat", json={"text": "thanks"}, headers=HEADERS
    ).json()
    assert body["success"] is True
    assert body["reply"]["text"] == "echo: thanks"
    assert fake.chat_requests[-1].detected_condition == "Depression"

    body = client.post(
        f"/api/companion/sessions/{session_id}/chat", json={"audio_input_data_uri": AUDIO_URI}, headers=HEADERS
    ).json()
    assert body["reply"]["text"] == "echo: spoken words"
    assert body["session"]["chat_history"][-2]["text"] == "🎤 Voice Input"

    snapshot = client.get(f"/api/companion/sessions/{session_id}", headers=HEADERS).json()
    assert snapshot["session"]["turn_state"] == "idle"

    assert client.delete(f"/api/companion/sessions/{session_id}", headers=HEADERS).status_code == 200
    assert client.get(f"/api/companion/sessions/{session_id}", headers=HEADERS).status_code == 404


def test_session_rejections():
    client, _ = _client()
    assert client.get("/api/companion/sessions/missing", headers=HEADERS).status_code == 404
    assert client.post("/api/companion/sessions/missing/chat", json={"text": "hi"}, headers=HEADERS).status_code == 404

    session_id = client.post("/api/companion/sessions", headers=HEADERS).json()["session"]["session_id"]
    body = client.post(
        f"/api/companion/sessions/{session_id}/chat",
        json={"text": "hi", "audio_input_data_uri": AUDIO_URI},
        headers=HEADERS,
    ).json()
    assert body["success"] is False
    assert body["error"]

    body = client.post(f"/api/companion/sessions/{session_id}/analyze", json={}, headers=HEADERS).json()
    assert body["success"] is False
    assert body["session"]["notices"][-1]["title"] == "Input Required"
