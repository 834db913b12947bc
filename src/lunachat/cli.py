"""CLI interface for luna-chat."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

import click

from . import __version__
from .config import DATA_DIR, EXPORT_DIR, OLLAMA_BASE_URL, SQLITE_PATH, SYSTEM_MODEL
from .models import Message
from .storage import ConversationStore, SlotStore


def _open_store() -> ConversationStore:
    store = ConversationStore(SlotStore(SQLITE_PATH))
    store.load()
    return store


def _echo_message(msg: Message):
    if msg.role == "user":
        click.echo(click.style("you> ", fg="white", bold=True) + msg.content)
        return
    click.echo(click.style("luna> ", fg="magenta", bold=True) + msg.content)
    if msg.timing_seconds is not None:
        click.echo(click.style(f"      Processed in {msg.timing_seconds:.2f} seconds.", fg="magenta"))
    if msg.status == "error":
        click.echo(click.style("      FAILED TO GET RESPONSE.", fg="red"))


class StreamPrinter:
    """Store listener that echoes assistant tokens as they arrive."""

    def __init__(self):
        self.message_id: str | None = None
        self.printed = 0

    def __call__(self, store: ConversationStore):
        messages = store.all()
        if not messages or messages[-1].role != "assistant":
            return
        msg = messages[-1]
        if msg.id != self.message_id:
            if msg.status != "pending":
                return
            self.message_id = msg.id
            self.printed = 0
            click.echo(click.style("luna> ", fg="magenta", bold=True), nl=False)

        delta = msg.content[self.printed:]
        if delta:
            click.echo(delta, nl=False)
            self.printed = len(msg.content)

        if msg.status != "pending":
            click.echo()
            if msg.timing_seconds is not None:
                click.echo(click.style(f"      Processed in {msg.timing_seconds:.2f} seconds.", fg="magenta"))
            self.message_id = None


@click.group()
@click.version_option(version=__version__, prog_name="luna")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """luna: chat with a local Ollama model.

    History is kept between runs. Finished conversations can be exported
    to JSON files and browsed through the catalog server.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@cli.command()
@click.option("--model", default=SYSTEM_MODEL, show_default=True, help="Model to chat with")
@click.option("--url", default=OLLAMA_BASE_URL, show_default=True, help="Ollama base URL")
def chat(model: str, url: str):
    """Start an interactive chat session.

    Commands: /clear resets the session, /export saves it, /quit exits.
    """
    from .client import OllamaClient
    from .orchestrator import ChatSession

    store = _open_store()
    client = OllamaClient(base_url=url, model=model)
    session = ChatSession(store, client)

    for msg in store.all():
        _echo_message(msg)

    store.subscribe(StreamPrinter())

    while True:
        try:
            text = click.prompt(
                click.style("you", bold=True), prompt_suffix="> ", default="", show_default=False
            )
        except click.Abort:
            click.echo()
            break

        command = text.strip().lower()
        if command in ("/quit", "/exit"):
            break
        if command == "/clear":
            session.clear()
            click.echo("Session cleared.")
            continue
        if command == "/export":
            try:
                _export(store, client, EXPORT_DIR)
            except click.ClickException as exc:
                exc.show()
            continue

        if session.send(text) and session.error:
            click.echo(click.style(session.error, fg="red"), err=True)


@cli.command()
def history():
    """Print the stored conversation."""
    store = _open_store()
    if not len(store):
        click.echo("No messages yet. Start one with: luna chat")
        return
    for msg in store.all():
        _echo_message(msg)


def _export(store: ConversationStore, client, export_dir: Path):
    from .exporter import export_conversation

    try:
        path = export_conversation(store, client, export_dir=export_dir)
    except ValueError as exc:
        raise click.ClickException(str(exc))
    click.echo(click.style("Exported ", fg="green") + str(path))


@cli.command("export")
@click.option("--no-title", is_flag=True, help="Skip asking the model for a title")
@click.option(
    "--dir", "export_dir", type=click.Path(file_okay=False, path_type=Path),
    default=EXPORT_DIR, show_default=True, help="Directory to write the export to",
)
def export_cmd(no_title: bool, export_dir: Path):
    """Export the current conversation as a JSON file."""
    from .client import OllamaClient

    client = None if no_title else OllamaClient()
    _export(_open_store(), client, export_dir)


@cli.command()
@click.option(
    "--dir", "export_dir", type=click.Path(file_okay=False, path_type=Path),
    default=EXPORT_DIR, show_default=True, help="Directory of exported conversations",
)
def catalog(export_dir: Path):
    """List exported conversations."""
    from .exporter import list_conversations

    conversations = list_conversations(export_dir)
    if not conversations:
        click.echo(f"No exported conversations in {export_dir}")
        return

    click.echo()
    click.echo(click.style("Catalog", bold=True))
    for conv in conversations:
        click.echo(f"  {conv.header.date_created}: {conv.title}")
        click.echo(f"    {len(conv.messages)} msgs | {conv.path.name}")
    click.echo()


@cli.command()
@click.confirmation_option(prompt="This will delete the current conversation. Are you sure?")
def clear():
    """Clear the stored conversation."""
    _open_store().clear()
    click.echo("Conversation cleared.")


@cli.command()
@click.option(
    "--transport", type=click.Choice(["streamable-http", "sse", "stdio"]),
    default="streamable-http", show_default=True,
)
def serve(transport: str):
    """Start the catalog server.

    Over HTTP it also answers GET /api/load-files for the catalog page.
    """
    from .server import mcp

    mcp.run(transport=transport)


@cli.command()
@click.confirmation_option(prompt="This will delete all history and exports. Are you sure?")
def reset():
    """Delete all stored data and start fresh."""
    targets = [DATA_DIR]
    if not EXPORT_DIR.is_relative_to(DATA_DIR):
        targets.append(EXPORT_DIR)

    deleted = False
    for directory in targets:
        if directory.exists():
            shutil.rmtree(directory)
            click.echo(f"Deleted {directory}")
            deleted = True
    if not deleted:
        click.echo("No data to delete.")
