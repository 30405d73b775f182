"""Terminal rendering of orchestration events."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape

from .core.events import (
    Cancelled,
    EarlyExtraction,
    FatalError,
    FinalResult,
    FollowUp,
    OperationRequested,
    OperationResolved,
    OrchestratorEvent,
    ReasoningDelta,
    ReasoningDone,
    RetryScheduled,
    RoundCapReached,
    TextDelta,
)


class EventRenderer:
    """Event sink printing a live view of one run with Rich."""

    def __init__(self, console: Console | None = None, *, show_reasoning: bool = True) -> None:
        self.console = console or Console()
        self.show_reasoning = show_reasoning
        self._inline = False

    def __call__(self, event: OrchestratorEvent) -> None:
        match event:
            case ReasoningDelta() if self.show_reasoning:
                self._write(f"[dim]{escape(event.content)}[/dim]")
            case TextDelta():
                self._write(escape(event.content))
            case ReasoningDone() if self.show_reasoning:
                self._line("[dim]-- reasoning done --[/dim]")
            case OperationRequested():
                args = json.dumps(event.args, ensure_ascii=False)
                self._line(f"[cyan]> {escape(event.name)}[/cyan] [dim]{escape(args)}[/dim]")
            case OperationResolved():
                status = "[green]ok[/green]" if event.ok else f"[red]{escape(str(event.error))}[/red]"
                self._line(f"[cyan]< {escape(event.name)}[/cyan] {status} [dim]{event.duration_ms:.0f}ms[/dim]")
            case EarlyExtraction():
                self._line(f"[bold magenta]{escape(event.key)}:[/bold magenta] {escape(event.value)}")
            case RetryScheduled():
                self._line(f"[yellow]retry {event.attempt} in {event.delay_seconds}s: {escape(event.reason)}[/yellow]")
            case RoundCapReached():
                self._line(f"[yellow]round cap reached after {event.rounds} rounds[/yellow]")
            case FollowUp():
                self._line(f"[bold cyan]Follow-up:[/bold cyan] {escape(event.question)}")
                for option in event.options:
                    self._line(f"  - {escape(option.get('label', ''))}")
            case FinalResult():
                self._line("")
                self.console.print_json(data=event.data)
            case FatalError():
                self._line(f"[bold red]Error:[/bold red] {escape(event.message)}")
            case Cancelled():
                self._line("[yellow]cancelled[/yellow]")

    def _write(self, markup: str) -> None:
        self.console.print(markup, end="")
        self._inline = True

    def _line(self, markup: str) -> None:
        if self._inline:
            self.console.print()
            self._inline = False
        self.console.print(markup)
