import logging
from typing import Any, Dict, List, Optional

import requests

from config import Config
from services.secret_manager import resolve_secret

logger = logging.getLogger(__name__)


class ChatUpstreamError(Exception):
    """The completion API answered with an error we pass back to the caller."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ChatProxy:
    """
    Forwards dashboard chat transcripts to an OpenAI-compatible
    chat completion endpoint.

    With an API key the primary (fine-tuned) model is tried first and the
    fallback model is used only when the API reports `model_not_found`.
    Without a key requests go to the free Pollinations endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = Config.OPENAI_BASE_URL,
        primary_model: str = Config.AI_PRIMARY_MODEL,
        fallback_model: str = Config.AI_FALLBACK_MODEL,
        pollinations_url: str = Config.POLLINATIONS_URL,
        timeout: float = Config.AI_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.primary_model = primary_model
        self.fallback_model = fallback_model
        self.pollinations_url = pollinations_url
        self.timeout = timeout

    @classmethod
    def from_environment(cls) -> "ChatProxy":
        return cls(api_key=resolve_secret("OPENAI_API_KEY", Config.OPENAI_API_KEY_SECRET))

    def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> requests.Response:
        return requests.post(url, json=payload, headers=headers, timeout=self.timeout)

    def complete(self, messages: List[Dict[str, str]], temperature: float = 0.7, max_tokens: int = 2000) -> Dict[str, Any]:
        if not self.api_key:
            return self._complete_pollinations(messages, temperature, max_tokens)

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.primary_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        response = self._post(url, payload, headers)
        if response.ok:
            return response.json()

        error_data = _error_body(response)
        logger.error(f"Chat completion error ({response.status_code}): {error_data}")

        error = error_data.get("error") or {}
        if isinstance(error, dict) and error.get("code") == "model_not_found":
            logger.warning(
                "Model %s not found, retrying with %s", self.primary_model, self.fallback_model
            )
            fallback = self._post(url, {**payload, "model": self.fallback_model}, headers)
            if fallback.ok:
                return fallback.json()

        message = error.get("message") if isinstance(error, dict) else None
        raise ChatUpstreamError(response.status_code, message or "AI request failed")

    def _complete_pollinations(self, messages, temperature, max_tokens) -> Dict[str, Any]:
        response = self._post(
            self.pollinations_url,
            {
                "model": "openai",
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            {"Content-Type": "application/json"},
        )
        if response.ok:
            return response.json()
        logger.error(f"Pollinations error ({response.status_code}): {response.text[:200]}")
        raise ChatUpstreamError(500, "AI service unavailable")


def _error_body(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
