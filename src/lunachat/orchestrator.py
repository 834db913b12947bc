"""Drive one send: build the request, stream it, reconcile every frame."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from enum import Enum

from .client import OllamaClient
from .config import MESSAGE_ID_PREFIX
from .errors import LunaChatError
from .ids import new_id
from .models import Message
from .reconciler import Reconciler
from .storage import ConversationStore
from .stream import iter_frames

logger = logging.getLogger(__name__)


class SendState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


class ChatSession:
    """Owns the loading flag, and with it the single in-flight request.

    ``send`` returns once the response has been fully streamed or has
    failed; either way the session is back to IDLE afterwards.
    """

    def __init__(self, store: ConversationStore, client: OllamaClient):
        self.store = store
        self.client = client
        self.state = SendState.IDLE
        self.last_outcome: SendState | None = None
        self.loading = False
        self.error: str | None = None
        self.input = ""
        self._listeners: list[Callable[[ChatSession], None]] = []

    def subscribe(self, listener: Callable[[ChatSession], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def send(self, text: str | None = None) -> bool:
        """Send ``text`` (or the input buffer). Returns False if rejected."""
        user_text = (self.input if text is None else text).strip()
        if not user_text or self.loading:
            return False

        self._set(state=SendState.SENDING, loading=True, error=None)

        history = [m.to_payload() for m in self.store.all()]
        history.append({"role": "user", "content": user_text})

        placeholder = Message(
            id=new_id(MESSAGE_ID_PREFIX), role="assistant", content="", status="pending"
        )
        self.store.append(
            Message(id=new_id(MESSAGE_ID_PREFIX), role="user", content=user_text, status="complete")
        )
        self.store.append(placeholder)
        self.input = ""

        reconciler = Reconciler(self.store, placeholder.id)
        outcome = self._stream(history, reconciler)

        self.last_outcome = outcome
        self._set(state=SendState.IDLE, loading=False)
        return True

    def clear(self) -> bool:
        if self.loading:
            return False
        self.store.clear()
        self._set(error=None)
        return True

    def _stream(self, history: list[dict[str, str]], reconciler: Reconciler) -> SendState:
        chunks = None
        try:
            chunks = iter(self.client.stream_chat(history))
            # The request goes out when the first chunk is pulled
            first = next(chunks, None)
            self._set(state=SendState.STREAMING)
            body = chunks if first is None else itertools.chain([first], chunks)
            for frame in iter_frames(body):
                if reconciler.apply(frame):
                    break
            else:
                # Transport finished without a done frame
                reconciler.complete()
        except LunaChatError as exc:
            logger.warning("Failed to send message: %s", exc)
            return self._fail(reconciler, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error while streaming response")
            return self._fail(reconciler, str(exc) or "Failed to fetch response")
        finally:
            close = getattr(chunks, "close", None)
            if close is not None:
                close()

        self._set(state=SendState.DONE, loading=False)
        return SendState.DONE

    def _fail(self, reconciler: Reconciler, message: str) -> SendState:
        reconciler.fail()
        self._set(state=SendState.FAILED, loading=False, error=message)
        return SendState.FAILED

    def _set(self, **changes):
        for name, value in changes.items():
            setattr(self, name, value)
        for listener in list(self._listeners):
            listener(self)
