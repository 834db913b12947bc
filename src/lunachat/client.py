"""HTTP client for the Ollama /api/chat endpoint."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import requests

from .config import (
    CHAT_ENDPOINT,
    CONNECT_TIMEOUT_S,
    OLLAMA_BASE_URL,
    READ_TIMEOUT_S,
    SYSTEM_MODEL,
)
from .errors import StreamUnavailable, TitleGenerationError, TransportError

logger = logging.getLogger(__name__)


class OllamaClient:
    """Sends a conversation to the model server, streamed or one-shot."""

    def __init__(
        self,
        base_url: str = OLLAMA_BASE_URL,
        model: str = SYSTEM_MODEL,
        connect_timeout: float = CONNECT_TIMEOUT_S,
        read_timeout: float | None = READ_TIMEOUT_S,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = (connect_timeout, read_timeout)
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.base_url}{CHAT_ENDPOINT}"

    def build_payload(self, messages: list[dict[str, str]], stream: bool) -> dict:
        return {"model": self.model, "messages": messages, "stream": stream}

    def stream_chat(self, messages: list[dict[str, str]]) -> Iterator[bytes]:
        """POST a streamed chat request and yield raw body chunks.

        Raises TransportError for network failures and non-2xx responses,
        StreamUnavailable when the body cannot be iterated.
        """
        payload = self.build_payload(messages, stream=True)
        try:
            response = self.session.post(
                self.url, json=payload, stream=True, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise TransportError(f"Could not reach model server: {exc}") from exc

        try:
            if not response.ok:
                raise TransportError(
                    f"HTTP error! Status: {response.status_code}",
                    status_code=response.status_code,
                )
            try:
                chunks = response.iter_content(chunk_size=None)
            except (AttributeError, TypeError) as exc:
                raise StreamUnavailable(f"Failed to get response reader: {exc}") from exc

            try:
                for chunk in chunks:
                    if chunk:
                        yield chunk
            except requests.RequestException as exc:
                raise TransportError(f"Stream interrupted: {exc}") from exc
            except AttributeError as exc:
                raise StreamUnavailable(f"Response body is not readable: {exc}") from exc
        finally:
            response.close()

    def chat(self, messages: list[dict[str, str]]) -> str:
        """Non-streamed request; returns the reply text."""
        payload = self.build_payload(messages, stream=False)
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise TitleGenerationError(f"Chat request failed: {exc}") from exc
