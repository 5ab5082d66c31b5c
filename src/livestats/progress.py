"""Live console display of the accumulated series.

Shows the latest value of every series, the run markers and the headline
figures of the last stats cycle while a pipeline is polling.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from livestats.charts import format_marker_label

if TYPE_CHECKING:
    from livestats.ingest import IngestionPipeline, StatsSummary
    from livestats.store import StoreSnapshot


console = Console()


def _format_value(value: float | None) -> str:
    return "[dim]—[/dim]" if value is None else f"{value:,.2f}"


def create_series_table(snapshot: StoreSnapshot) -> Table:
    """Create a table with the latest sample of every series."""
    table = Table(box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Latest", style="white", justify="right")
    table.add_column("Samples", style="dim", justify="right")

    for key, samples in snapshot.series.items():
        latest = samples[-1].value if samples else None
        table.add_row(key, _format_value(latest), str(len(samples)))

    return table


def create_markers_table(snapshot: StoreSnapshot) -> Table:
    """Create a table listing the run markers."""
    table = Table(box=None)
    table.add_column("Run", style="magenta")
    table.add_column("Started", style="white")

    for index, marker in enumerate(snapshot.markers):
        table.add_row(
            format_marker_label({"dataIndex": index}),
            marker.display_timestamp.astimezone().strftime("%X"),
        )

    return table


def create_summary_table(summary: StatsSummary, state: str) -> Table:
    """Create the headline figures table."""
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="cyan", width=15)
    table.add_column("Value", style="white")

    table.add_row("State", state)
    table.add_row("Users", str(summary.user_count))
    table.add_row("RPS", f"{summary.total_rps:.2f}")
    table.add_row(
        "Failures",
        (
            f"[red]{summary.fail_ratio:.0f}%[/red]"
            if summary.fail_ratio > 5
            else f"{summary.fail_ratio:.0f}%"
        ),
    )
    table.add_row("Workers", str(len(summary.workers)))
    table.add_row("Errors", str(len(summary.errors)))

    return table


def render(pipeline: IngestionPipeline) -> Group:
    """Render the whole live view for a pipeline."""
    snapshot = pipeline.store.snapshot()
    panels = [
        Panel(
            create_summary_table(pipeline.summary, pipeline.run_state.value),
            title="Load Test",
            border_style="blue",
        ),
        Panel(create_series_table(snapshot), title="Live Series", border_style="green"),
    ]
    if snapshot.markers:
        panels.append(
            Panel(create_markers_table(snapshot), title="Runs", border_style="magenta")
        )
    return Group(*panels)


class LiveView:
    """Refresh the live view while a pipeline polls."""

    def __init__(self, pipeline: IngestionPipeline, refresh_interval: float = 0.5) -> None:
        """Initialize the live view.

        Args:
            pipeline: Pipeline whose store and summary are displayed.
            refresh_interval: Seconds between redraws.
        """
        self.pipeline = pipeline
        self.refresh_interval = refresh_interval
        self._stop_event = asyncio.Event()

    async def run(self) -> None:
        """Redraw until stopped."""
        with Live(render(self.pipeline), console=console, refresh_per_second=4) as live:
            while not self._stop_event.is_set():
                live.update(render(self.pipeline))
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.refresh_interval)

    def stop(self) -> None:
        """Stop the live view."""
        self._stop_event.set()
