"""Flashduty enrichment: CLI demo runner.

Queries incidents and their timelines through the enrichment engine and
renders one live panel per entity kind while the lookups run. Prints the
enriched incident and timeline tables when done.

Uses the live Flashduty API when FLASHDUTY_APP_KEY is set, the bundled
fixtures otherwise.

Usage:
    uv run python cli.py                     # fixture incidents
    uv run python cli.py inc-1001 inc-1002   # specific incident ids
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from config import build_client, load_settings
from core.engine import EnrichmentEngine
from display.live import LiveDisplay
from schemas.enriched import EnrichedIncident, IncidentTimeline
from schemas.resolved import EntityKind

console = Console()

DEFAULT_INCIDENT_IDS = ["inc-1001", "inc-1002"]


def _ts(seconds: int) -> str:
    if not seconds:
        return "-"
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _name(name: str, raw_id: int) -> str:
    """Show the resolved name, or the bare id dimmed when unresolved."""
    if name:
        return name
    return f"[dim]#{raw_id}[/dim]" if raw_id else "-"


# ── Results tables ────────────────────────────────────────────────────────────

def _print_incidents(incidents: list[EnrichedIncident]) -> None:
    if not incidents:
        console.print("\n[yellow]No incidents found.[/yellow]")
        return

    table = Table(title="Incidents", show_lines=True, border_style="bright_black")
    table.add_column("ID",         style="dim",  min_width=10)
    table.add_column("Title",      style="bold", min_width=28)
    table.add_column("Severity",   width=10,     justify="center")
    table.add_column("Progress",   width=11,     justify="center")
    table.add_column("Channel",    min_width=12)
    table.add_column("Creator",    min_width=12)
    table.add_column("Responders", min_width=16)
    table.add_column("Alerts",     width=7,      justify="right")

    for incident in incidents:
        sev_color = "red" if incident.severity == "Critical" else "yellow" if incident.severity == "Warning" else "dim"
        responders = ", ".join(_name(r.person_name, r.person_id) for r in incident.responders) or "-"
        table.add_row(
            incident.incident_id,
            Text(incident.title),
            f"[{sev_color}]{incident.severity}[/{sev_color}]",
            incident.progress,
            _name(incident.channel_name, incident.channel_id),
            _name(incident.creator_name, incident.creator_id),
            responders,
            str(incident.alerts_total),
        )

    console.print()
    console.print(table)


def _print_timelines(timelines: list[IncidentTimeline]) -> None:
    for timeline in timelines:
        table = Table(
            title=f"Timeline {timeline.incident_id} ({timeline.total} events)",
            border_style="bright_black",
        )
        table.add_column("Time",     style="dim", width=19)
        table.add_column("Type",     width=10)
        table.add_column("Operator", min_width=12)
        table.add_column("Detail",   min_width=30)

        for event in timeline.timeline:
            table.add_row(
                _ts(event.timestamp),
                event.type,
                _name(event.operator_name, event.operator_id),
                Text(str(event.detail)) if event.detail is not None else "-",
            )

        console.print()
        console.print(table)


# ── Entry point ───────────────────────────────────────────────────────────────

async def _run(incident_ids: list[str]) -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(name)s  %(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    display = LiveDisplay([EntityKind.PERSON, EntityKind.CHANNEL])
    event_queue: asyncio.Queue = asyncio.Queue()

    console.rule("[bold]Flashduty enrichment[/bold]")
    console.print(f"  source     [cyan]{'live API ' + settings.base_url if settings.live else 'fixtures'}[/cyan]")
    console.print(f"  incidents  [cyan]{', '.join(incident_ids)}[/cyan]")
    console.print()

    async with build_client(settings) as client:
        engine = EnrichmentEngine(client)

        with display.make_live() as live:
            consumer = asyncio.create_task(display.consume(event_queue, live))
            try:
                incidents = await engine.query_incidents(incident_ids, event_queue=event_queue)
                timelines = await engine.query_timelines(incident_ids, event_queue=event_queue)
            finally:
                await event_queue.put(None)   # sentinel: tell consumer to stop
                await consumer

    _print_incidents(incidents)
    _print_timelines(timelines)


def main() -> None:
    parser = argparse.ArgumentParser(description="Query and enrich Flashduty incidents.")
    parser.add_argument("incident_ids", nargs="*", default=DEFAULT_INCIDENT_IDS)
    args = parser.parse_args()
    asyncio.run(_run(args.incident_ids))


if __name__ == "__main__":
    main()
