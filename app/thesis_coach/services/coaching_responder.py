"""
Scaffolding coach backed by Gemini.
Turns the learner's draft, question and recent turns into a guiding reply.
"""
from __future__ import annotations

import os
from typing import Optional, Sequence

import requests
from flask import current_app

from .gemini_client import GeminiClient, get_gemini_client


SCAFFOLDING_INSTRUCTION = """
你是一個基於「鷹架理論 (Scaffolding Theory)」的寫作與邏輯教練。
你的目標對象是大眾學習者或大學生。

當前任務：撰寫一篇短文討論「AI 是否應該完全取代人類教師？」。

核心原則：
1. **絕對不要直接幫學生寫文章**。
2. 你的角色是引導思考 (Critical Thinking Guide)。
3. 根據學生的文章內容，檢查是否有「主張 (Claim)」、「證據 (Evidence)」與「推論 (Reasoning)」。
4. 鷹架策略：
- 如果內容太簡短，引導他們舉例。
- 如果邏輯不通，用反問句引導他們思考漏洞。
- 如果觀點單一，鼓勵他們思考反面論點 (Counter-argument)。
5. 語氣要鼓勵、客觀、具啟發性。
6. 請用繁體中文回答。
"""

EMPTY_DRAFT_PLACEHOLDER = "(目前是空白的)"

# Status codes that mean the request itself (key, project, payload) is wrong.
CONFIG_STATUS_CODES = {400, 401, 403}


class ResponderError(Exception):
    """Base class for coaching responder failures."""


class ResponderConfigError(ResponderError):
    """The responder cannot work until an administrator fixes its configuration."""


class ResponderTransientError(ResponderError):
    """The call failed for a reason that may go away on retry (network, quota, empty reply)."""


def build_coaching_prompt(draft_text: str, user_message: str, history: Sequence) -> str:
    """Render the per-turn prompt. ``history`` items need ``role`` and ``content`` attributes."""
    history_lines = "\n".join(f"{m.role}: {m.content}" for m in history)
    return f"""
[學生目前的文章草稿]:
{draft_text or EMPTY_DRAFT_PLACEHOLDER}

[學生提出的問題/對話]:
{user_message}

[對話歷史]:
{history_lines}
"""


class GeminiCoachingResponder:
    """Coaching responder that forwards each turn to Gemini as a single prompt."""

    TEMPERATURE = 0.6
    DEFAULT_MAX_RETRIES = 2

    def __init__(self, client: Optional[GeminiClient] = None):
        self._client = client
        try:
            self.max_retries = int(os.getenv("GEMINI_CHAT_MAX_RETRIES", str(self.DEFAULT_MAX_RETRIES)))
        except ValueError:
            self.max_retries = self.DEFAULT_MAX_RETRIES

    @property
    def client(self) -> GeminiClient:
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    def respond(self, draft_text: str, user_message: str, history: Sequence) -> str:
        """Return coaching text or raise a ``ResponderError`` subclass."""
        if not self.client.is_configured:
            raise ResponderConfigError("Gemini API key is not configured")

        prompt = build_coaching_prompt(draft_text, user_message, history)
        try:
            reply = self.client.generate_text(
                prompt,
                temperature=self.TEMPERATURE,
                system_instruction=SCAFFOLDING_INSTRUCTION,
                max_retries=self.max_retries,
            )
        except requests.exceptions.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            if status_code in CONFIG_STATUS_CODES:
                raise ResponderConfigError(f"Gemini rejected the request (HTTP {status_code})") from exc
            raise ResponderTransientError(f"Gemini HTTP error {status_code}") from exc
        except requests.exceptions.RequestException as exc:
            raise ResponderTransientError(f"Gemini request failed: {exc}") from exc

        if not reply:
            current_app.logger.warning("Coaching responder got an empty reply from Gemini")
            raise ResponderTransientError("Gemini returned no coaching text")
        return reply
