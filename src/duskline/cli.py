"""Command-line interface for duskline.

Usage example:
    dusk --help
    echo '**hi** @bob' | dusk render
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from duskline.config import load_config
from duskline.document import document_from_json
from duskline.markdown import prepare_outgoing, render
from duskline.mentions import Member, PeerListSource, RosterSource, candidates, load_roster

error_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print a consistently styled error message to stderr."""
    error_console.print(f"[bold red]Error:[/bold red] {message}")


app = typer.Typer(
    name="dusk",
    help="Message composition codec and mention tools.",
    add_completion=False,
)


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


def read_input(path: Path | None) -> str:
    """Read from *path*, or stdin when no path is given."""
    if path is None:
        return sys.stdin.read()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        print_error(f"Cannot read {path}: {exc}")
        raise typer.Exit(code=1) from None


def load_roster_or_exit(path: Path) -> list[Member]:
    try:
        return load_roster(path)
    except OSError as exc:
        print_error(f"Cannot read {path}: {exc}")
        raise typer.Exit(code=1) from None
    except ValueError as exc:
        print_error(str(exc))
        raise typer.Exit(code=1) from None


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


@app.command(help="Encode an editor JSON document to wire markdown.")
def encode(
    path: Annotated[Path | None, typer.Argument(help="Editor JSON file (stdin if omitted).")] = None,
) -> None:
    """Print the wire markdown for an editor document."""
    raw = read_input(path)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        print_error(f"Invalid JSON: {exc}")
        raise typer.Exit(code=1) from None

    wire = prepare_outgoing(document_from_json(data))
    if wire is None:
        print_error("Nothing to send.")
        raise typer.Exit(code=1)
    typer.echo(wire)


@app.command("render", help="Render wire markdown to safe display markup.")
def render_cmd(
    text: Annotated[str | None, typer.Argument(help="Wire markdown text.")] = None,
    file: Annotated[Path | None, typer.Option("--file", "-f", help="Read wire markdown from a file.")] = None,
) -> None:
    """Print rendered markup for wire text (argument, --file, or stdin)."""
    if text is None:
        text = read_input(file)
    typer.echo(render(text))


# ---------------------------------------------------------------------------
# Mentions
# ---------------------------------------------------------------------------


@app.command(help="List mention candidates for a query.")
def mentions(
    query: Annotated[str, typer.Argument(help="Text typed after '@' (may be empty).")] = "",
    roster: Annotated[Path, typer.Option("--roster", "-r", help="Roster JSON file.")] = Path("roster.json"),
    dm: Annotated[bool, typer.Option("--dm", help="Direct-message context (no everyone entry).")] = False,
) -> None:
    """Print the candidate table for *query* against a roster file."""
    try:
        cfg = load_config(Path.cwd())
    except ValueError as exc:
        print_error(f"Invalid config: {exc}")
        raise typer.Exit(code=1) from None

    members = load_roster_or_exit(roster)
    if dm:
        source = PeerListSource(peers=members, max_candidates=cfg.mentions.max_candidates)
    else:
        source = RosterSource(
            members=members,
            max_candidates=cfg.mentions.max_candidates,
            everyone_label=cfg.mentions.everyone_label,
        )

    found = candidates(query, source)
    if not found:
        typer.echo("No matching members.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Label")
    table.add_column("ID")
    table.add_column("Presence")
    for i, candidate in enumerate(found):
        presence = candidate.presence.value if candidate.presence else ""
        label = f"@{candidate.label}" if candidate.is_everyone else candidate.label
        table.add_row(str(i), label, candidate.id, presence)
    Console().print(table)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@app.command(help="Open the compose TUI.")
def chat(
    roster: Annotated[Path, typer.Option("--roster", "-r", help="Roster JSON file.")] = Path("roster.json"),
    dm: Annotated[bool, typer.Option("--dm", help="Direct-message context.")] = False,
    name: Annotated[str, typer.Option("--name", help="Your display name.")] = "you",
) -> None:
    """Open the local compose TUI with mention suggestions and typing indicators."""
    from duskline.tui import require_textual

    require_textual()

    try:
        cfg = load_config(Path.cwd())
    except ValueError as exc:
        print_error(f"Invalid config: {exc}")
        raise typer.Exit(code=1) from None
    members = load_roster_or_exit(roster)

    from duskline.tui.app import ComposeApp

    ComposeApp(roster=members, name=name, dm=dm, config=cfg).run()


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

config_app = typer.Typer(name="config", help="View configuration.")
app.add_typer(config_app, name="config")


@config_app.command("show", help="Print the effective configuration.")
def config_show() -> None:
    """Print the merged config (defaults + user overrides) as JSON."""
    try:
        cfg = load_config(Path.cwd())
    except ValueError as exc:
        print_error(f"Invalid config: {exc}")
        raise typer.Exit(code=1) from None

    console = Console()
    console.print_json(json.dumps(dataclasses.asdict(cfg), indent=2))


if __name__ == "__main__":
    app()
