"""Pytest fixtures for luna-chat tests."""

import json

import pytest

from lunachat.storage import ConversationStore, SlotStore


def ndjson(*frames) -> bytes:
    """Encode frames the way the model server streams them."""
    return b"".join(json.dumps(f, ensure_ascii=False).encode() + b"\n" for f in frames)


class FakeClient:
    """Stands in for OllamaClient: canned chunks, records every request."""

    def __init__(self, chunks=(), error=None, title="Greeting Small Talk"):
        self.chunks = list(chunks)
        self.error = error
        self.title = title
        self.requests = []
        self.title_requests = []

    def stream_chat(self, messages):
        self.requests.append(messages)
        if self.error is not None:
            raise self.error
        return iter(self.chunks)

    def chat(self, messages):
        self.title_requests.append(messages)
        if isinstance(self.title, Exception):
            raise self.title
        return self.title


@pytest.fixture
def slots(tmp_path):
    """SlotStore on a temporary SQLite file."""
    store = SlotStore(tmp_path / "data" / "history.db")
    yield store
    store.close()


@pytest.fixture
def store(slots):
    """Empty, loaded ConversationStore."""
    conv = ConversationStore(slots)
    conv.load()
    return conv


@pytest.fixture
def export_dir(tmp_path):
    return tmp_path / "exports"
