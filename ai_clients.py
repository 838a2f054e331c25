# Reference: python_gemini_ai_integrations blueprint
from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from config import (
    AI_INTEGRATIONS_GEMINI_API_KEY,
    AI_INTEGRATIONS_GEMINI_BASE_URL,
    GEMINI_TEXT_MODEL,
    GEMINI_VISION_MODEL,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    OPENAI_TEXT_MODEL,
    REQUEST_TIMEOUT,
)
from image_data import ImageRef, image_ref_to_bytes, to_data_uri


logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """An AI call failed with a network error or a non-2xx status"""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(CompletionError):
    """The service answered 429. Handled by its own short wait, not the generic backoff."""

    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message, status=429)


def is_rate_limit_error(exception: BaseException) -> bool:
    """Check if the exception is a rate limit or quota violation error."""
    if isinstance(exception, RateLimitError):
        return True
    error_msg = str(exception)
    return (
        "429" in error_msg
        or "RATELIMIT_EXCEEDED" in error_msg
        or "quota" in error_msg.lower()
        or "rate limit" in error_msg.lower()
        or getattr(exception, 'status', None) == 429
    )


def _strip_code_fences(text: str) -> str:
    s = text.strip()
    if s.startswith("```"):
        first_nl = s.find("\n")
        if first_nl != -1:
            s = s[first_nl + 1:]
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def parse_json_response(text: str) -> Any:
    """
    Parse a model reply as JSON, tolerating markdown code fences.

    Raises:
        ValueError: If the reply is empty or not JSON
    """
    if not text or not text.strip():
        raise ValueError("Empty model response")
    return json.loads(_strip_code_fences(text))


class CompletionClient(Protocol):
    name: str

    def complete_json(self, system_prompt: str, user_prompt: str, image: Optional[ImageRef] = None) -> str: ...


class ChatCompletionClient:
    """OpenAI-compatible chat completions over plain HTTP, JSON output mode."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENAI_BASE_URL,
        model: str = OPENAI_TEXT_MODEL,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = base_url.rstrip('/') + "/chat/completions"
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete_json(self, system_prompt: str, user_prompt: str, image: Optional[ImageRef] = None) -> str:
        if image is not None:
            mime_type, data = image_ref_to_bytes(image)
            user_content = [
                {"type": "text", "text": user_prompt},
                {"type": "image_url", "image_url": {"url": to_data_uri(data, mime_type)}},
            ]
        else:
            user_content = user_prompt

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "temperature": 0.7,
            "max_tokens": 1000,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            response = self.session.post(self.endpoint, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise CompletionError(f"Completion request failed: {e}") from e

        status = response.status_code
        if status == 429:
            raise RateLimitError(f"Completion service rate limited ({status})")
        if 400 <= status < 500:
            raise CompletionError(f"Completion service rejected the request ({status})", status=status)
        if status >= 500:
            raise CompletionError(f"Completion service error ({status})", status=status)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"Malformed completion response: {e}") from e
        if not content:
            raise CompletionError("No response from completion service")
        return content


class GeminiClient:
    """Gemini text and vision calls via google-genai with JSON response MIME type."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = AI_INTEGRATIONS_GEMINI_API_KEY,
        base_url: Optional[str] = AI_INTEGRATIONS_GEMINI_BASE_URL,
        model: str = GEMINI_VISION_MODEL,
    ) -> None:
        if base_url:
            # Using Replit's AI Integrations service for Gemini
            self.client = genai.Client(
                api_key=api_key,
                http_options={
                    'api_version': '',
                    'base_url': base_url
                }
            )
        else:
            self.client = genai.Client(api_key=api_key)
        self.model = model

    def complete_json(self, system_prompt: str, user_prompt: str, image: Optional[ImageRef] = None) -> str:
        contents = [user_prompt]
        if image is not None:
            mime_type, data = image_ref_to_bytes(image)
            contents.append(
                types.Part(
                    inline_data=types.Blob(
                        mime_type=mime_type,
                        data=data
                    )
                )
            )

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    response_mime_type="application/json",
                    temperature=0.4,
                )
            )
        except genai_errors.APIError as e:
            if e.code == 429:
                raise RateLimitError(f"Gemini rate limited: {e}") from e
            if e.code is not None and 400 <= e.code < 500:
                raise CompletionError(f"Gemini rejected the request: {e}", status=e.code) from e
            raise CompletionError(f"Gemini error: {e}", status=e.code) from e
        except Exception as e:
            if is_rate_limit_error(e):
                raise RateLimitError(f"Gemini rate limited: {e}") from e
            raise CompletionError(f"Gemini request failed: {type(e).__name__}: {e}") from e

        text = response.text or ""
        if not text:
            raise CompletionError("No response from Gemini")
        return text


def get_text_client() -> Optional[CompletionClient]:
    """Structuring client from the environment, or None when no key is configured."""
    if OPENAI_API_KEY:
        return ChatCompletionClient(api_key=OPENAI_API_KEY)
    if AI_INTEGRATIONS_GEMINI_API_KEY:
        return GeminiClient(model=GEMINI_TEXT_MODEL)
    logger.warning("No AI API key configured; layouts will come from the built-in generator")
    return None


def get_vision_client() -> Optional[CompletionClient]:
    if AI_INTEGRATIONS_GEMINI_API_KEY:
        return GeminiClient(model=GEMINI_VISION_MODEL)
    return None


def get_prompt_client() -> Optional[CompletionClient]:
    if AI_INTEGRATIONS_GEMINI_API_KEY:
        return GeminiClient(model=GEMINI_TEXT_MODEL)
    return None
