"""Durable conversation history on top of SQLite key/value slots."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import LOCAL_STORAGE_KEY
from .models import Message

logger = logging.getLogger(__name__)

Listener = Callable[["ConversationStore"], None]


class SlotStore:
    """SQLite-backed key/value slots. Every write commits immediately."""

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS slots (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def get(self, key: str) -> str | None:
        row = self.conn.execute(
            "SELECT value FROM slots WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str):
        self.conn.execute(
            """INSERT INTO slots (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = excluded.updated_at""",
            (key, value, datetime.now(timezone.utc).isoformat()),
        )
        self.conn.commit()

    def delete(self, key: str):
        self.conn.execute("DELETE FROM slots WHERE key = ?", (key,))
        self.conn.commit()

    def close(self):
        self.conn.close()


class ConversationStore:
    """Ordered message list mirrored to one durable slot on every change.

    Mutations are written through synchronously and then announced to
    subscribers, so a view never observes state that is not yet persisted.
    """

    def __init__(self, slots: SlotStore, key: str = LOCAL_STORAGE_KEY):
        self.slots = slots
        self.key = key
        self._messages: list[Message] = []
        self._listeners: list[Listener] = []

    def load(self) -> list[Message]:
        """Restore messages from the slot. Missing or corrupt data yields [].

        A message still pending here was cut off by an earlier session that
        never finished its request; it comes back as ``error``.
        """
        self._messages = _decode_history(self.slots.get(self.key), self.key)
        interrupted = [m.id for m in self._messages if m.status == "pending"]
        if interrupted:
            logger.info("Marking %d interrupted message(s) as error", len(interrupted))
            self._messages = [
                m.apply(status="error") if m.id in interrupted else m
                for m in self._messages
            ]
            self._commit()
        else:
            self._notify()
        return list(self._messages)

    def all(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def get(self, message_id: str) -> Message | None:
        for msg in self._messages:
            if msg.id == message_id:
                return msg
        return None

    def pending(self) -> Message | None:
        if self._messages and self._messages[-1].status == "pending":
            return self._messages[-1]
        return None

    def append(self, message: Message):
        if message.status == "pending" and self.pending() is not None:
            raise ValueError("Only one pending message is allowed at a time")
        self._messages.append(message)
        self._commit()

    def update_by_id(self, message_id: str, **patch: Any):
        """Merge ``patch`` into the message with ``message_id``; no-op if absent."""
        for idx, msg in enumerate(self._messages):
            if msg.id == message_id:
                self._messages[idx] = msg.apply(**patch)
                self._commit()
                return
        logger.debug("update_by_id: no message with id %s", message_id)

    def clear(self):
        self._messages = []
        self.slots.delete(self.key)
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self):
        payload = json.dumps([m.to_record() for m in self._messages])
        self.slots.set(self.key, payload)
        self._notify()

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)

    def __len__(self) -> int:
        return len(self._messages)


def _decode_history(raw: str | None, key: str) -> list[Message]:
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Stored history '%s' is not valid JSON, starting empty", key)
        return []
    if not isinstance(data, list):
        logger.warning("Stored history '%s' is not an array, starting empty", key)
        return []
    try:
        return [Message.model_validate(item) for item in data]
    except ValidationError:
        logger.warning("Stored history '%s' has invalid messages, starting empty", key, exc_info=True)
        return []
