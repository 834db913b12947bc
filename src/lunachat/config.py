"""Central configuration for paths, endpoints and constants."""

import os
from pathlib import Path

# Data directory, override with LUNACHAT_DATA_DIR env var
DATA_DIR = Path(
    os.environ.get("LUNACHAT_DATA_DIR", str(Path.home() / ".lunachat"))
)

# Durable history (key/value slots in SQLite)
SQLITE_PATH = DATA_DIR / "history.db"
LOCAL_STORAGE_KEY = "ollama_chat_history"

# Exported conversations, one JSON file per export
EXPORT_DIR = Path(os.environ.get("LUNACHAT_EXPORT_DIR", str(DATA_DIR / "exports")))

# Inference server
OLLAMA_BASE_URL = os.environ.get("LUNACHAT_OLLAMA_URL", "http://localhost:11434")
CHAT_ENDPOINT = "/api/chat"
SYSTEM_MODEL = os.environ.get("LUNACHAT_MODEL", "bippy/luna1")
CONNECT_TIMEOUT_S = 10.0
READ_TIMEOUT_S = 300.0  # Per-read timeout; long generations keep streaming

# Export metadata
USERNAME = "bippy"
DEFAULT_TITLE = "Untitled"
TITLE_PROMPT = (
    "Respond only with a title summarizing this conversation "
    "in eight words or less and with no special characters."
)

# Identifiers
MESSAGE_ID_PREFIX = "msg"

# Catalog server
CATALOG_HOST = "127.0.0.1"
CATALOG_PORT = 1337
