"""Exceptions raised by the chat client."""

from __future__ import annotations


class LunaChatError(Exception):
    """Base class for all luna-chat errors."""


class TransportError(LunaChatError):
    """The chat request failed: network error or non-success HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamUnavailable(TransportError):
    """The response body could not be read as a stream."""


class TitleGenerationError(LunaChatError):
    """The one-shot title request failed."""
