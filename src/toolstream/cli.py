"""Command line interface for toolstream."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from rich.console import Console

from .backend.anthropic import AnthropicStreamTransport
from .config import Settings, get_settings
from .core.events import SSE_DONE, EventSink, OrchestratorEvent
from .core.orchestrator import OrchestrationOutcome, Orchestrator
from .errors import ConfigurationError
from .logging_utils import configure_logging
from .render import EventRenderer
from .session.store import FileSessionStore
from .tools.builtin import register_builtin_tools
from .tools.registry import ToolRegistry
from .validation.triage import validate_triage_result

app = typer.Typer(
    name="toolstream",
    help="Streaming tool-use orchestrator.",
    add_completion=False,
    rich_markup_mode="rich",
)


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    register_builtin_tools(registry)
    return registry


def _write_sse(event: OrchestratorEvent) -> None:
    sys.stdout.write(event.to_sse())
    sys.stdout.flush()


def _exit_with_error(console: Console, message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


async def _run_once(settings: Settings, message: str, session_id: str, sink: EventSink) -> OrchestrationOutcome:
    registry = build_registry()
    store = FileSessionStore(settings.session_root)
    history = store.load(session_id, limit=settings.history_limit)
    orchestrator = Orchestrator.from_settings(
        settings,
        transport=AnthropicStreamTransport.from_settings(settings),
        executor=registry,
        catalog=registry.catalog(),
    )
    outcome = await orchestrator.run(message, history, sink=sink)
    if outcome.ok and outcome.result is not None:
        store.append(session_id, "user", outcome.message)
        store.append(session_id, "assistant", outcome.result.model_dump_json(), {"kind": "result"})
    return outcome


@app.command()
def run(
    message: str = typer.Argument(..., help="User message"),
    session_id: str = typer.Option("default", "--session-id", "-s", help="Session to load and extend"),
    sse: bool = typer.Option(False, "--sse", help="Print raw server-sent event frames"),
    hide_reasoning: bool = typer.Option(False, "--hide-reasoning", help="Do not print reasoning deltas"),
) -> None:
    """Run one message through the orchestrator."""
    console = Console()
    settings = get_settings()
    configure_logging(profile="cli", level=settings.log_level)
    sink: EventSink = _write_sse if sse else EventRenderer(console, show_reasoning=not hide_reasoning)
    try:
        outcome = asyncio.run(_run_once(settings, message, session_id, sink))
    except (ConfigurationError, ValueError) as exc:
        _exit_with_error(console, str(exc))
        return
    if sse:
        sys.stdout.write(SSE_DONE)
    if not outcome.ok:
        raise typer.Exit(1)


@app.command()
def validate(
    path: Path | None = typer.Argument(None, help="File with model output; reads stdin when omitted"),  # noqa: B008
) -> None:
    """Validate model output and print the typed result as JSON."""
    text = path.read_text(encoding="utf-8") if path is not None else sys.stdin.read()
    typer.echo(validate_triage_result(text).model_dump_json(indent=2))


@app.command()
def tools(
    for_model: bool = typer.Option(False, "--for-model", help="Show names as the backend sees them"),
) -> None:
    """List the capability catalog."""
    for row in build_registry().compact_rows(for_model=for_model):
        typer.echo(row)


@app.command()
def history(
    session_id: str = typer.Argument("default", help="Session id"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Only the last N turns"),
) -> None:
    """Print stored turns of a session."""
    store = FileSessionStore(get_settings().session_root)
    turns = store.load(session_id, limit=limit)
    if not turns:
        typer.echo("(no turns)")
        return
    for turn in turns:
        typer.echo(f"{turn.role}: {turn.content}")
