"""Rich live display: a resolution table with one row per entity kind.

The engine never waits on the display. Fan-outs put ResolutionEvents on an
asyncio.Queue; consume() drains it and redraws a table showing, per entity
kind, how many ids were asked for, how many came back with a name, and how
many lookups degraded or failed. A kind resolved by several fan-outs in one
session (incidents, then timelines) accumulates across all of them.

Usage:
    event_queue = asyncio.Queue()
    display = LiveDisplay([EntityKind.PERSON, EntityKind.CHANNEL])

    with display.make_live() as live:
        consumer = asyncio.create_task(display.consume(event_queue, live))
        incidents = await engine.query_incidents(ids, event_queue=event_queue)
        await event_queue.put(None)  # sentinel, tells consume() to stop
        await consumer
"""

import asyncio
from dataclasses import dataclass

from rich.live import Live
from rich.table import Table
from rich.text import Text

from schemas.events import EventType, ResolutionEvent
from schemas.resolved import EntityKind

_STATUS_STYLES = {
    "waiting": ("○", "dim"),
    "running": ("●", "bold yellow"),
    "complete": ("✓", "bold green"),
    "degraded": ("~", "bold magenta"),
    "error": ("✗", "bold red"),
}


@dataclass
class KindTally:
    """Running totals for one entity kind across every lookup seen so far."""

    kind: EntityKind
    lookups: int = 0
    in_flight: int = 0
    requested: int = 0
    resolved: int = 0
    degraded: int = 0
    failed: int = 0
    elapsed_ms: float = 0.0
    last_failure: str = ""

    @property
    def status(self) -> str:
        """Worst outcome so far; a lookup still running shows as running."""
        if self.failed:
            return "error"
        if self.in_flight:
            return "running"
        if self.degraded:
            return "degraded"
        if self.lookups:
            return "complete"
        return "waiting"

    @property
    def unresolved(self) -> int:
        """Ids that were looked up but came back without a record."""
        if self.in_flight:
            return 0
        return self.requested - self.resolved


class LiveDisplay:
    """Keeps a KindTally per entity kind and renders them as one Rich table.

    Events for kinds not given at construction are ignored.
    """

    def __init__(self, kinds: list[EntityKind]) -> None:
        self._tallies = {kind: KindTally(kind=kind) for kind in kinds}

    def make_live(self) -> Live:
        """Return a Rich Live context manager ready to use with `with`."""
        return Live(self._render(), refresh_per_second=12, transient=False)

    async def consume(self, queue: asyncio.Queue, live: Live) -> None:
        """Apply events from queue to the table until the None sentinel."""
        while True:
            event = await queue.get()
            if event is None:
                break
            self.apply(event)
            live.update(self._render())

    def tally(self, kind: EntityKind) -> KindTally:
        return self._tallies[kind]

    def status(self, kind: EntityKind) -> str:
        return self._tallies[kind].status

    def apply(self, event: ResolutionEvent) -> None:
        tally = self._tallies.get(event.kind)
        if tally is None:
            return

        tally.elapsed_ms = event.timestamp_ms

        if event.event_type == EventType.STARTED:
            tally.lookups += 1
            tally.in_flight += 1
            tally.requested += event.requested
            return

        tally.in_flight = max(tally.in_flight - 1, 0)
        if event.event_type == EventType.COMPLETE:
            tally.resolved += event.resolved
        elif event.event_type == EventType.DEGRADED:
            tally.degraded += 1
            tally.last_failure = event.message
        elif event.event_type == EventType.ERROR:
            tally.failed += 1
            tally.last_failure = event.message

    def _render(self) -> Table:
        table = Table(title="Resolution", title_justify="left", expand=False)
        table.add_column("kind", style="bold")
        table.add_column("status")
        table.add_column("resolved", justify="right")
        table.add_column("unresolved", justify="right")
        table.add_column("lookups", justify="right")
        table.add_column("degraded", justify="right")
        table.add_column("elapsed", justify="right", style="dim")
        table.add_column("last failure", style="dim", max_width=48, overflow="ellipsis")

        for tally in self._tallies.values():
            icon, style = _STATUS_STYLES[tally.status]
            table.add_row(
                tally.kind.value,
                Text(f"{icon} {tally.status}", style=style),
                f"{tally.resolved}/{tally.requested}",
                str(tally.unresolved) if tally.unresolved else "-",
                str(tally.lookups),
                Text(str(tally.degraded), style="magenta") if tally.degraded else "-",
                f"{tally.elapsed_ms / 1000:.2f}s",
                tally.last_failure or "-",
            )
        return table
