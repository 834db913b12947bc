"""Apply decoded frames to the assistant message they belong to."""

from __future__ import annotations

import logging

from .errors import TransportError
from .models import Frame
from .storage import ConversationStore

logger = logging.getLogger(__name__)

NANOSECONDS = 1e9


class Reconciler:
    """Accumulates streamed tokens into one assistant message in the store."""

    def __init__(self, store: ConversationStore, message_id: str):
        self.store = store
        self.message_id = message_id
        self.finished = False
        self.frames_applied = 0
        self._parts: list[str] = []

    @property
    def content(self) -> str:
        return "".join(self._parts)

    def apply(self, frame: Frame) -> bool:
        """Project one frame onto the store. Returns True once the stream is done.

        Frames with no content and no ``done`` flag change nothing, and
        nothing changes after the done frame has been applied.
        """
        if self.finished:
            logger.debug("Ignoring frame after completion of %s", self.message_id)
            return True
        if frame.error:
            raise TransportError(f"Model server error: {frame.error}")

        text = frame.content
        if not text and not frame.done:
            return False

        patch: dict = {"status": "complete" if frame.done else "pending"}
        if text:
            self._parts.append(text)
            patch["content"] = self.content
        if frame.done:
            if frame.prompt_eval_duration is not None:
                patch["timing_seconds"] = frame.prompt_eval_duration / NANOSECONDS
            self.finished = True

        self.store.update_by_id(self.message_id, **patch)
        self.frames_applied += 1
        return self.finished

    def complete(self):
        """Close the message with what has arrived so far."""
        if not self.finished:
            self.finished = True
            self.store.update_by_id(self.message_id, status="complete")

    def fail(self):
        """Force the message to ``error``; accumulated content stays."""
        msg = self.store.get(self.message_id)
        if msg is not None and msg.status == "pending":
            self.store.update_by_id(self.message_id, status="error")
        self.finished = True
