"""OllamaGenerationClient: GenerationClient backed by an Ollama instance.

Uses blocking HTTP requests against the Ollama chat API via ``requests``.
No streaming.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import requests

from physiofit.protocols import ChatMessage, GenerationUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "qwen2.5:7b"
DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_TIMEOUT = 30.0
FALLBACK_REPLY = "Sorry, I couldn't come up with a reply just now."


class OllamaGenerationClient:
    """Generation client for a local or remote Ollama server.

    Usage::

        client = OllamaGenerationClient(model_id="qwen2.5:7b")
        reply = client.generate([ChatMessage(role="user", content="Hello")])

    Every call is bounded by ``timeout`` seconds; a timeout is reported
    as GenerationUnavailableError like any other transport failure.
    """

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        fallback_reply: str = FALLBACK_REPLY,
        session: Optional[requests.Session] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._model_id = model_id
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._fallback_reply = fallback_reply
        self._session = session or requests.Session()

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def generate(self, conversation: Sequence[ChatMessage]) -> str:
        """Send the conversation and return the reply text.

        A successful response without reply content is normalized to the
        fallback reply.
        """
        payload: dict[str, Any] = {
            "model": self._model_id,
            "messages": [msg.to_dict() for msg in conversation],
            "stream": False,
        }
        data = self._post("/api/chat", payload)
        message = data.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            logger.warning("Ollama returned no reply content (model=%s)", self._model_id)
            return self._fallback_reply
        return content

    def close(self) -> None:
        """Release pooled HTTP connections."""
        self._session.close()

    # ---- Internal helpers ----

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to the Ollama API and return parsed JSON."""
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.post(url, json=payload, timeout=self._timeout)
        except requests.Timeout as exc:
            raise GenerationUnavailableError(
                "timeout", f"Ollama request timed out after {self._timeout}s: {exc}"
            ) from exc
        except requests.ConnectionError as exc:
            raise GenerationUnavailableError(
                "connection", f"Cannot connect to Ollama at {self._base_url}: {exc}"
            ) from exc
        except requests.RequestException as exc:
            raise GenerationUnavailableError("unknown", f"Ollama request failed: {exc}") from exc

        if resp.status_code != 200:
            error_class = self._classify_http_status(resp.status_code)
            raise GenerationUnavailableError(
                error_class, f"Ollama returned HTTP {resp.status_code}: {resp.text}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise GenerationUnavailableError(
                "server", f"Ollama returned invalid JSON: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise GenerationUnavailableError("server", "Ollama returned a non-object response")
        return data

    @staticmethod
    def _classify_http_status(status_code: int) -> str:
        """Map HTTP status codes to error classes."""
        if status_code == 401:
            return "auth"
        if status_code == 429:
            return "rate_limit"
        if status_code >= 500:
            return "server"
        return "unknown"
