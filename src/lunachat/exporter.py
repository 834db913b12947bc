"""Export the live conversation to flat JSON files and read them back."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .client import OllamaClient
from .config import DEFAULT_TITLE, EXPORT_DIR, TITLE_PROMPT, USERNAME
from .errors import TitleGenerationError
from .ids import new_id
from .models import ExportedConversation, ExportEntry, ExportHeader, Message
from .storage import ConversationStore

logger = logging.getLogger(__name__)

_SPECIAL_CHARS = re.compile(r"[^\w\s-]", re.UNICODE)
_MAX_TITLE_WORDS = 8


def _clean_title(raw: str) -> str:
    """Strip special characters, collapse whitespace, cap at eight words."""
    words = _SPECIAL_CHARS.sub("", raw).split()
    return " ".join(words[:_MAX_TITLE_WORDS])


def generate_title(messages: Iterable[Message], client: OllamaClient) -> str:
    """Ask the model for a short title. Falls back to DEFAULT_TITLE.

    The instruction is sent as a one-off extra user turn; it never touches
    the store.
    """
    request = [m.to_payload() for m in messages]
    request.append({"role": "user", "content": TITLE_PROMPT})
    try:
        title = _clean_title(client.chat(request))
    except TitleGenerationError as exc:
        logger.warning("Error getting title: %s", exc)
        return DEFAULT_TITLE
    return title or DEFAULT_TITLE


def build_record(
    messages: Iterable[Message],
    title: str,
    username: str = USERNAME,
    date_created: str | None = None,
) -> ExportedConversation:
    """Snapshot completed messages as role/content entries between markers."""
    if date_created is None:
        date_created = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return ExportedConversation(
        header=ExportHeader(username=username, title=title, date_created=date_created),
        messages=[
            ExportEntry(role=m.role, content=m.content)
            for m in messages
            if m.status == "complete"
        ],
    )


def export_filename(title: str) -> str:
    return f"{new_id('_'.join(title.split()))}.json"


def export_conversation(
    store: ConversationStore,
    client: OllamaClient | None = None,
    export_dir: Path = EXPORT_DIR,
    username: str = USERNAME,
    now: datetime | None = None,
) -> Path:
    """Write the current conversation to one new file in ``export_dir``.

    Returns the path written. Raises ValueError if there is nothing to export.
    """
    messages = [m for m in store.all() if m.status == "complete"]
    if not messages:
        raise ValueError("Conversation has no completed messages to export")

    title = generate_title(messages, client) if client is not None else DEFAULT_TITLE
    date_created = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    record = build_record(messages, title, username=username, date_created=date_created)

    export_dir.mkdir(parents=True, exist_ok=True)
    path = export_dir / export_filename(title)
    path.write_text(json.dumps(record.to_records(), ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("Exported %d messages to %s", len(record.messages), path)
    return path


def load_conversation(path: Path) -> ExportedConversation:
    """Parse one exported file. Raises ValueError or OSError if unreadable."""
    data = json.loads(path.read_text(encoding="utf-8"))
    return ExportedConversation.from_records(data, path=path)


def _export_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob("*.json") if p.is_file())


def list_conversations(directory: Path = EXPORT_DIR) -> list[ExportedConversation]:
    """Read every exported file in ``directory``, skipping unreadable ones."""
    conversations: list[ExportedConversation] = []

    for path in _export_files(directory):
        try:
            conversations.append(load_conversation(path))
        except (OSError, ValueError, ValidationError):
            logger.warning("Failed to read exported conversation '%s'", path.name, exc_info=True)

    return conversations


def load_files(directory: Path = EXPORT_DIR) -> list[list[dict[str, Any]]]:
    """Raw arrays of every readable JSON file, as served to the catalog page."""
    files: list[list[dict[str, Any]]] = []

    for path in _export_files(directory):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Failed to read '%s'", path.name, exc_info=True)
            continue
        if isinstance(data, list):
            files.append(data)
        else:
            logger.warning("Skipping '%s': not a JSON array", path.name)

    return files
