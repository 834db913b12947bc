"""luna-chat: chat with a local Ollama model from the terminal."""

__version__ = "0.1.0"
