"""Catalog server: exported conversations over HTTP and as MCP tools."""

from __future__ import annotations

import logging
import sys

from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import CATALOG_HOST, CATALOG_PORT, EXPORT_DIR
from .exporter import list_conversations as read_exports
from .exporter import load_conversation, load_files

# stdout carries the MCP stdio transport, so log to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)

mcp = FastMCP(
    "lunachat",
    instructions=(
        "Browse conversations exported from the luna chat client. "
        "Use list_conversations to see exported conversations, optionally filtered by keyword. "
        "Use get_conversation to read one transcript. "
        "Use get_stats for an overview of the catalog."
    ),
    host=CATALOG_HOST,
    port=CATALOG_PORT,
)


@mcp.custom_route("/api/load-files", methods=["GET"])
async def load_files_route(request: Request) -> JSONResponse:
    """Every exported file as a raw JSON array, one inner array per file."""
    return JSONResponse(
        load_files(EXPORT_DIR),
        headers={"Access-Control-Allow-Origin": "*"},
    )


def _no_exports_message() -> str | None:
    if not EXPORT_DIR.exists():
        return (
            "No exported conversations yet. Export one first:\n"
            "  luna export"
        )
    return None


@mcp.tool()
def list_conversations(
    limit: int = 20,
    offset: int = 0,
    keyword: str | None = None,
) -> str:
    """Browse exported conversations, newest file name last.

    Args:
        limit: Maximum results (default 20)
        offset: Skip this many results (for pagination)
        keyword: Optional keyword to filter by (matches titles and message text)
    """
    err = _no_exports_message()
    if err:
        return err

    conversations = read_exports(EXPORT_DIR)
    if keyword:
        needle = keyword.lower()
        conversations = [
            c for c in conversations
            if needle in c.title.lower()
            or any(needle in m.content.lower() for m in c.messages)
        ]

    page = conversations[offset : offset + limit]
    if not page:
        if keyword:
            return f"No conversations found matching '{keyword}'."
        return "No conversations found."

    lines = []
    if keyword:
        lines.append(f"Conversations matching '{keyword}':\n")
    else:
        lines.append(f"Conversations (showing {offset + 1}–{offset + len(page)}):\n")

    for i, c in enumerate(page, offset + 1):
        lines.append(f"{i}. **{c.title}** ({c.header.date_created})")
        lines.append(f"   File: `{c.path.name}` | {len(c.messages)} msgs | User: {c.header.username}")

    if len(conversations) > offset + limit:
        lines.append(f"\nMore available, use offset={offset + limit} to see the next page.")

    return "\n".join(lines)


@mcp.tool()
def get_conversation(file_name: str) -> str:
    """Retrieve a full exported conversation transcript.

    Args:
        file_name: The export file name (from list_conversations)
    """
    err = _no_exports_message()
    if err:
        return err

    path = EXPORT_DIR / file_name
    if path.parent != EXPORT_DIR or not path.is_file():
        return f"Conversation not found: {file_name}"

    try:
        conv = load_conversation(path)
    except (OSError, ValueError) as exc:
        return f"Could not read {file_name}: {exc}"

    lines = [
        f"# {conv.title}",
        f"Date: {conv.header.date_created}",
        f"User: {conv.header.username}",
        f"Messages: {len(conv.messages)}",
        "",
        "---",
        "",
    ]
    for msg in conv.messages:
        lines.append("**User**:" if msg.role == "user" else "**Assistant**:")
        lines.append(msg.content)
        lines.append("")

    return "\n".join(lines)


@mcp.tool()
def get_stats() -> str:
    """Get statistics about the exported conversation catalog."""
    err = _no_exports_message()
    if err:
        return err

    conversations = read_exports(EXPORT_DIR)
    total_messages = sum(len(c.messages) for c in conversations)
    dates = sorted(c.header.date_created for c in conversations)

    lines = [
        "# Conversation Catalog",
        "",
        f"- **Conversations**: {len(conversations):,}",
        f"- **Messages**: {total_messages:,}",
    ]
    if conversations:
        avg = round(total_messages / len(conversations), 1)
        lines.append(f"- **Avg messages/conversation**: {avg}")
        lines.append(f"- **Date range**: {dates[0]} → {dates[-1]}")

    lines.append(f"\n*Exports stored in: {EXPORT_DIR}*")
    return "\n".join(lines)
