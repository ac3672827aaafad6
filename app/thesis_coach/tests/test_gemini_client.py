from unittest import mock

import pytest
import requests
from flask import Flask

from app.thesis_coach.services import gemini_client
from app.thesis_coach.services.coaching_responder import (
    GeminiCoachingResponder,
    ResponderConfigError,
    ResponderTransientError,
    build_coaching_prompt,
)
from app.thesis_coach.services.conversation import ChatMessage
from app.thesis_coach.services.gemini_client import GeminiClient


class _Resp:
    def __init__(self, status_code: int, payload: dict):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if 400 <= self.status_code:
            raise requests.exceptions.HTTPError(response=self)

    def json(self):
        return self._payload


def _text_payload(text: str, finish_reason: str = "STOP") -> dict:
    return {"candidates": [{"finishReason": finish_reason, "content": {"parts": [{"text": text}]}}]}


@pytest.fixture(autouse=True)
def app_context(monkeypatch):
    for name in ("GEMINI_API_URL", "GEMINI_MODEL", "GEMINI_CHAT_MAX_RETRIES"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(gemini_client.time, "sleep", lambda *_: None)
    app = Flask(__name__)
    with app.app_context():
        yield


def test_max_tokens_empty_text_falls_back_to_fallback_model(monkeypatch):
    monkeypatch.setenv("GEMINI_MODEL", "gemini-2.5-flash")
    monkeypatch.setenv("GEMINI_FALLBACK_MODEL", "gemini-2.5-pro")
    monkeypatch.setenv("GEMINI_FALLBACK_ON_MAX_TOKENS", "true")
    client = GeminiClient(api_key="test-key")

    first = _Resp(200, _text_payload("", finish_reason="MAX_TOKENS"))
    second = _Resp(200, _text_payload("{\"ok\": true}"))

    calls = []

    def fake_post(url, json=None, timeout=None):  # noqa: A002 - shadowing builtin allowed in tests
        calls.append(url)
        return first if len(calls) == 1 else second

    with mock.patch("app.thesis_coach.services.gemini_client.requests.post", side_effect=fake_post):
        result = client.generate_json("prompt")

    assert result == {"ok": True}
    assert "gemini-2.5-flash:" in calls[0]
    assert "gemini-2.5-pro:" in calls[1]


def test_generate_json_sends_schema_and_mime_type():
    client = GeminiClient(api_key="test-key")
    schema = {"type": "OBJECT", "properties": {"a": {"type": "INTEGER"}}}
    sent = {}

    def fake_post(url, json=None, timeout=None):  # noqa: A002
        sent.update(json)
        return _Resp(200, _text_payload("{\"a\": 1}"))

    with mock.patch("app.thesis_coach.services.gemini_client.requests.post", side_effect=fake_post):
        result = client.generate_json("prompt", system_instruction="be terse", response_schema=schema)

    assert result == {"a": 1}
    assert sent["generationConfig"]["responseMimeType"] == "application/json"
    assert sent["generationConfig"]["responseSchema"] == schema
    assert sent["systemInstruction"] == {"parts": [{"text": "be terse"}]}


def test_robust_json_substring_extraction():
    text = "Some preface. Here is JSON: ```json\n{\n  \"a\": 1\n}\n``` and some trailer."
    parsed = GeminiClient._robust_parse_json(text)
    assert isinstance(parsed, dict)
    assert parsed.get("a") == 1


def test_generate_text_retries_on_429_then_succeeds():
    client = GeminiClient(api_key="test-key")
    responses = [_Resp(429, {}), _Resp(200, _text_payload("  繼續想想看  "))]

    with mock.patch(
        "app.thesis_coach.services.gemini_client.requests.post", side_effect=responses
    ) as post:
        text = client.generate_text("prompt")

    assert text == "繼續想想看"
    assert post.call_count == 2


def test_generate_text_does_not_retry_on_403():
    client = GeminiClient(api_key="test-key")

    with mock.patch(
        "app.thesis_coach.services.gemini_client.requests.post", return_value=_Resp(403, {})
    ) as post:
        with pytest.raises(requests.exceptions.HTTPError):
            client.generate_text("prompt")

    assert post.call_count == 1


def test_generate_text_unconfigured_returns_none(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    client = GeminiClient()

    assert client.is_configured is False
    assert client.generate_text("prompt") is None


def test_coaching_prompt_uses_placeholder_for_empty_draft():
    history = [ChatMessage(role="agent", content="你好"), ChatMessage(role="user", content="怎麼開始？")]
    prompt = build_coaching_prompt("", "我該寫什麼？", history)

    assert "(目前是空白的)" in prompt
    assert "我該寫什麼？" in prompt
    assert "agent: 你好\nuser: 怎麼開始？" in prompt


def test_responder_without_key_raises_config_error(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    responder = GeminiCoachingResponder(client=GeminiClient())

    with pytest.raises(ResponderConfigError):
        responder.respond("draft", "why?", [])


def test_responder_maps_invalid_key_to_config_error():
    responder = GeminiCoachingResponder(client=GeminiClient(api_key="bad-key"))

    with mock.patch("app.thesis_coach.services.gemini_client.requests.post", return_value=_Resp(400, {})):
        with pytest.raises(ResponderConfigError):
            responder.respond("draft", "why?", [])


def test_responder_maps_timeout_to_transient_error():
    responder = GeminiCoachingResponder(client=GeminiClient(api_key="test-key"))

    with mock.patch(
        "app.thesis_coach.services.gemini_client.requests.post",
        side_effect=requests.exceptions.Timeout("read timed out"),
    ) as post:
        with pytest.raises(ResponderTransientError):
            responder.respond("draft", "why?", [])

    assert post.call_count == GeminiCoachingResponder.DEFAULT_MAX_RETRIES


def test_responder_treats_empty_reply_as_transient_error():
    responder = GeminiCoachingResponder(client=GeminiClient(api_key="test-key"))

    with mock.patch(
        "app.thesis_coach.services.gemini_client.requests.post",
        return_value=_Resp(200, {"candidates": []}),
    ):
        with pytest.raises(ResponderTransientError):
            responder.respond("draft", "why?", [])
