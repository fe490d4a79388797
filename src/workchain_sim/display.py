"""Rich-based display for workchain-sim.

This module renders the outcome of a simulation run. It's decoupled from the
simulation logic - it just renders data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

STATE_STYLES = {
    "enqueued": "blue",
    "running": "yellow",
    "succeeded": "green",
    "failed": "red",
    "blocked": "magenta",
    "cancelled": "dim",
}

EVENT_SYMBOLS = {
    "queued": "+",
    "dispatched": ">",
    "started": "▶",
    "completed": "✓",
    "failed": "✗",
    "unblocked": "⟳",
    "cancelled": "-",
    "skipped": "·",
}


@dataclass
class EventRecord:
    """A recorded event for display."""

    timestamp: datetime
    event_type: str
    work_id: str
    task_type: str | None = None
    details: str = ""


@dataclass
class SimulationState:
    """Outcome of a simulation run.

    This is the data contract between the runner and display.
    The runner updates this; the display renders it.
    """

    scenario_name: str = "chain"
    submitted: int = 0
    chains: int = 0

    # Timing
    start_time: float = 0.0
    elapsed: float = 0.0

    # Final store counts, keyed by WorkState value
    counts: dict[str, int] = field(default_factory=dict)

    # Recent events (most recent first)
    events: list[EventRecord] = field(default_factory=list)
    max_events: int = 12

    def count(self, event_type: str) -> int:
        """How many recorded events have this type."""
        return sum(1 for event in self.events if event.event_type == event_type)

    def add_event(self, event_type: str, work_id: str, task_type: str | None = None, details: str = "") -> None:
        """Add an event to the log."""
        self.events.insert(0, EventRecord(
            timestamp=datetime.now(),
            event_type=event_type,
            work_id=work_id,
            task_type=task_type,
            details=details,
        ))

    def recent_events(self) -> list[EventRecord]:
        return self.events[:self.max_events]


def format_event(event: EventRecord) -> str:
    """One-line rendering used by verbose mode."""
    ts = event.timestamp.strftime("%H:%M:%S.%f")[:-3]
    symbol = EVENT_SYMBOLS.get(event.event_type, "·")
    task_str = f"[{event.task_type}]" if event.task_type else ""
    return f"{ts} {symbol} {event.event_type:<12} {task_str:<16} {event.work_id[:12]:<14} {event.details}"


def build_summary(state: SimulationState) -> Panel:
    """Build the final summary panel."""
    counts = Table(title="Store", box=None, expand=True, padding=(0, 2))
    counts.add_column("State")
    counts.add_column("Items", justify="right")
    for name, style in STATE_STYLES.items():
        counts.add_row(f"[{style}]{name}[/{style}]", f"{state.counts.get(name, 0):,}")

    events = Table(title="Recent events", box=None, expand=True, padding=(0, 1))
    events.add_column("Event", width=12)
    events.add_column("Task", width=12)
    events.add_column("Work", width=14)
    events.add_column("Details", ratio=1)
    for event in state.recent_events():
        symbol = EVENT_SYMBOLS.get(event.event_type, "·")
        events.add_row(
            f"{symbol} {event.event_type}",
            event.task_type or "",
            f"[dim]{event.work_id[:12]}[/dim]",
            f"[dim]{event.details[:50]}[/dim]",
        )

    header = (
        f"[dim]Scenario:[/dim] [bold]{state.scenario_name}[/bold]   "
        f"[dim]Chains:[/dim] [bold]{state.chains}[/bold]   "
        f"[dim]Submitted:[/dim] [bold]{state.submitted:,}[/bold]   "
        f"[dim]Elapsed:[/dim] [bold]{state.elapsed:.2f}s[/bold]"
    )
    return Panel(
        Group(header, counts, events),
        title="[bold cyan]workchain-sim[/bold cyan]",
        border_style="cyan",
    )


def print_summary(state: SimulationState, console: Console | None = None) -> None:
    """Render the summary panel to the console."""
    (console or Console()).print(build_summary(state))
