"""Client wrapper around the Google Gemini Generative Language API."""
from __future__ import annotations

import json
import os
import time
from typing import Any, Dict, Optional

import requests
from flask import current_app


API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiClient:
    """Lightweight client for text and structured content generation via Gemini."""

    DEFAULT_MODEL = "gemini-2.5-flash"
    DEFAULT_TIMEOUT = 40
    MAX_RETRIES = 5
    RETRY_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}
    BACKOFF_INITIAL_SECONDS = 1.5
    BACKOFF_MAX_SECONDS = 30

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or ""
        self.model = os.getenv("GEMINI_MODEL", self.DEFAULT_MODEL)
        self.api_root = os.getenv("GEMINI_API_URL", f"{API_BASE}/{self.model}:generateContent")
        try:
            self.timeout = int(os.getenv("GEMINI_TIMEOUT_SECONDS", str(self.DEFAULT_TIMEOUT)))
        except ValueError:
            self.timeout = self.DEFAULT_TIMEOUT
        self.fallback_model = os.getenv("GEMINI_FALLBACK_MODEL", "gemini-2.5-pro")
        self.enable_fallback_on_max_tokens = (
            os.getenv("GEMINI_FALLBACK_ON_MAX_TOKENS", "true").strip().lower() in {"1", "true", "yes", "y"}
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _endpoint(self, model: Optional[str]) -> str:
        if not model or model == self.model:
            return self.api_root
        return f"{API_BASE}/{model}:generateContent"

    def _post(self, payload: Dict[str, Any], model: Optional[str], max_attempts: int) -> Dict[str, Any]:
        """POST a payload with exponential backoff. Re-raises the last error once attempts run out."""
        url = self._endpoint(model)
        backoff = self.BACKOFF_INITIAL_SECONDS

        for attempt in range(max_attempts):
            is_last = attempt >= max_attempts - 1
            try:
                response = requests.post(
                    f"{url}?key={self.api_key}",
                    json=payload,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                try:
                    return response.json()
                except ValueError as exc:
                    current_app.logger.error("Failed to parse Gemini response as JSON: %s", exc)
                    return {}

            except requests.exceptions.HTTPError as exc:
                status_code = exc.response.status_code if exc.response is not None else None
                if status_code not in self.RETRY_STATUS_CODES or is_last:
                    current_app.logger.error("Gemini HTTP error: %s - %s", status_code, exc)
                    raise
                reason = f"HTTP {status_code}"

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                if is_last:
                    current_app.logger.error("Gemini request failed after retries (timeout/connection): %s", exc)
                    raise
                reason = f"timeout/connection error ({exc})"

            wait = min(backoff, self.BACKOFF_MAX_SECONDS)
            current_app.logger.warning(
                "Gemini %s for model %s. Retrying in %.1fs (attempt %s/%s).",
                reason,
                model or self.model,
                wait,
                attempt + 1,
                max_attempts,
            )
            time.sleep(wait)
            backoff *= 2

        return {}

    def _generate(
        self,
        payload: Dict[str, Any],
        model_override: Optional[str],
        disable_retries: bool,
        max_retries: Optional[int],
    ) -> str:
        """Run a generation request and return the best text found, falling back once on MAX_TOKENS."""
        if disable_retries:
            attempts = 1
        else:
            attempts = max(1, max_retries if max_retries is not None else self.MAX_RETRIES)

        data = self._post(payload, model_override, attempts)
        text, finish_reason = self._extract_text_and_finish_reason(data)

        primary_model = model_override or self.model
        if (
            not text
            and finish_reason == "MAX_TOKENS"
            and self.enable_fallback_on_max_tokens
            and self.fallback_model
            and self.fallback_model != primary_model
        ):
            current_app.logger.warning(
                "Gemini returned MAX_TOKENS with empty content on model=%s; retrying once with fallback model=%s",
                primary_model,
                self.fallback_model,
            )
            data = self._post(payload, self.fallback_model, attempts)
            text, finish_reason = self._extract_text_and_finish_reason(data)

        if not text:
            current_app.logger.error(
                "Gemini response contained empty text. Finish reason: %s, Response: %s",
                finish_reason,
                str(data)[:500],
            )
        return text

    @staticmethod
    def _build_payload(
        prompt: str,
        temperature: float,
        system_instruction: Optional[str],
        max_output_tokens: Optional[int],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature},
        }
        if max_output_tokens is not None:
            payload["generationConfig"]["maxOutputTokens"] = max_output_tokens
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return payload

    def generate_text(
        self,
        prompt: str,
        temperature: float = 0.6,
        system_instruction: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
        model_override: Optional[str] = None,
        disable_retries: bool = False,
        max_retries: Optional[int] = None,
    ) -> Optional[str]:
        """Send a prompt and return the reply as plain text, or None if nothing usable came back.

        HTTP and network errors that survive the retry loop propagate as
        ``requests`` exceptions so callers can tell them apart.
        """
        if not self.is_configured:
            current_app.logger.error("Gemini API not configured - API key missing")
            return None

        payload = self._build_payload(prompt, temperature, system_instruction, max_output_tokens)
        text = self._generate(payload, model_override, disable_retries, max_retries)
        return text.strip() or None

    def generate_json(
        self,
        prompt: str,
        temperature: float = 0.8,
        system_instruction: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        max_output_tokens: Optional[int] = None,
        model_override: Optional[str] = None,
        disable_retries: bool = False,
    ) -> Optional[Any]:
        """Send a prompt and attempt to parse JSON out of the response.

        Args:
            prompt: The prompt to send to Gemini
            temperature: Temperature for generation (0.0-1.0)
            system_instruction: Optional system instruction
            response_schema: Optional OpenAPI-style schema constraining the output
            max_output_tokens: Optional max output tokens

        Returns:
            Parsed JSON response, or None on failure
        """
        if not self.is_configured:
            current_app.logger.error("Gemini API not configured - API key missing")
            return None

        payload = self._build_payload(prompt, temperature, system_instruction, max_output_tokens)
        payload["generationConfig"]["responseMimeType"] = "application/json"
        if response_schema:
            payload["generationConfig"]["responseSchema"] = response_schema

        text = self._generate(payload, model_override, disable_retries, None)
        if not text:
            return None

        parsed = self._robust_parse_json(text)
        if parsed is None:
            current_app.logger.error(
                "Gemini JSON parsing failed. Text length: %s, First 500 chars: %s",
                len(text),
                text[:500],
            )
        return parsed

    @staticmethod
    def _parse_json_response(text: str) -> Optional[Any]:
        """Attempt to parse JSON payload even if wrapped in fences."""
        if not text:
            return None

        text = text.strip()
        if text.startswith("```"):
            parts = text.split("```")
            text = parts[1] if len(parts) > 1 else text
            if text.startswith("json"):
                text = text[4:]
            text = text.strip()

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            current_app.logger.debug(f"JSON decode error at position {e.pos}: {e.msg}")
            return None

    @staticmethod
    def _robust_parse_json(text: str) -> Optional[Any]:
        """Parse JSON with additional heuristics for stray prose around the payload."""
        parsed = GeminiClient._parse_json_response(text)
        if parsed is not None:
            return parsed

        candidate = GeminiClient._extract_json_substring(text)
        if candidate:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                return None
        return None

    @staticmethod
    def _extract_json_substring(text: str) -> Optional[str]:
        """Extract the first balanced JSON object, or else the widest array, from text."""
        if not text:
            return None

        start_obj = text.find("{")
        if start_obj != -1:
            depth = 0
            for i in range(start_obj, len(text)):
                if text[i] == "{":
                    depth += 1
                elif text[i] == "}":
                    depth -= 1
                    if depth == 0:
                        return text[start_obj : i + 1]

        start_arr = text.find("[")
        end_arr = text.rfind("]")
        if start_arr != -1 and end_arr > start_arr:
            return text[start_arr : end_arr + 1]
        return None

    @staticmethod
    def _extract_text_and_finish_reason(data: Dict[str, Any]) -> tuple[str, Optional[str]]:
        """Return the first non-empty candidate text along with its finish reason."""
        candidates = data.get("candidates") or []
        if not candidates:
            prompt_feedback = data.get("promptFeedback", {})
            block_reason = prompt_feedback.get("blockReason")
            if block_reason:
                current_app.logger.error(
                    "Gemini blocked request. Reason: %s, Safety ratings: %s",
                    block_reason,
                    prompt_feedback.get("safetyRatings", []),
                )
            else:
                current_app.logger.warning("Gemini response missing candidates. Full response: %s", data)
            return "", None

        fallback_finish: Optional[str] = None
        for cand in candidates:
            finish_reason = cand.get("finishReason")
            if not fallback_finish:
                fallback_finish = finish_reason
            parts = (cand.get("content") or {}).get("parts", [])
            collected = [
                part["text"]
                for part in parts
                if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"].strip()
            ]
            if collected:
                return "".join(collected), finish_reason

        return "", fallback_finish


def get_gemini_client() -> GeminiClient:
    """Factory helper to allow lazy imports without circular references."""
    return GeminiClient()
