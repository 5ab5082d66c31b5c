"""Entry point for running livestats from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.logging import RichHandler
from rich.panel import Panel

from livestats import __version__
from livestats.charts import create_options, default_chart_configs
from livestats.config import (
    DEFAULT_STATS_URL,
    DashboardConfig,
    config_warnings,
    create_pipeline,
    from_dict,
    load,
    save,
    to_dict,
)
from livestats.errors import LiveStatsError, show_error, show_validation_warnings
from livestats.progress import LiveView, console
from livestats.store import StoreSnapshot, TimeSeriesStore


def configure_logging(verbose: bool = False) -> None:
    """Send log records through rich, sharing the live display's console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def print_success(message: str) -> None:
    """Print a formatted success message."""
    console.print(f"[bold green]✓[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def _load_config(config_path: str | None, url: str | None, interval: float | None) -> DashboardConfig:
    config = load(config_path) if config_path else DashboardConfig()
    overrides: dict[str, Any] = {}
    if url:
        overrides["stats_url"] = url
    if interval is not None:
        overrides["refetch_interval"] = interval

    # command line overrides are validated like file values
    config = from_dict({**to_dict(config), **overrides})
    show_validation_warnings(config_warnings(config))
    return config


async def watch(
    url: str | None,
    config_path: str | None = None,
    interval: float | None = None,
    duration: float | None = None,
    output: str | None = None,
) -> int:
    """Poll a stats endpoint and show the accumulated series live.

    Args:
        url: Stats endpoint URL, overriding the config file.
        config_path: Optional JSON or YAML config file.
        interval: Optional polling interval override in seconds.
        duration: Stop after this many seconds.
        output: Write the store snapshot as JSON here on exit.

    Returns:
        Exit code.
    """
    try:
        config = _load_config(config_path, url, interval)
    except (LiveStatsError, FileNotFoundError, ImportError, ValueError) as e:
        show_error(e, context="Loading configuration")
        return 1

    print_info(f"Watching {config.stats_url} every {config.refetch_interval:g}s")
    pipeline = create_pipeline(config)
    view = LiveView(pipeline)
    view_task = asyncio.create_task(view.run())

    try:
        await pipeline.run(duration=duration, probe_when_idle=True)
    finally:
        view.stop()
        await view_task
        await pipeline.fetcher.aclose()

        if output:
            with open(Path(output), "w") as f:
                json.dump(pipeline.store.snapshot().to_dict(), f, indent=2)
            print_success(f"Snapshot saved to: {output}")

    return 0


def _describe(value: Any) -> str:
    # option callables are rendered by name
    return getattr(value, "__name__", type(value).__name__)


def chart(snapshot_path: str, panel: int = 0, config_path: str | None = None) -> int:
    """Print the chart options of one dashboard panel for a saved snapshot.

    Args:
        snapshot_path: JSON file written by ``watch --output``.
        panel: Index of the panel in the standard dashboard.
        config_path: Optional config file supplying the charted percentiles.

    Returns:
        Exit code.
    """
    try:
        config = _load_config(config_path, None, None)
        with open(Path(snapshot_path)) as f:
            snapshot = StoreSnapshot.from_dict(json.load(f))
    except (LiveStatsError, OSError, ImportError, ValueError, KeyError, TypeError) as e:
        show_error(e, context=f"Loading {snapshot_path}")
        return 1

    builtin = set(TimeSeriesStore(config.percentiles_to_chart).builtin_keys)
    custom_keys = [key for key in snapshot.series if key not in builtin]
    panels = default_chart_configs(config.percentiles_to_chart, custom_keys)

    if not 0 <= panel < len(panels):
        LiveStatsError(
            f"No panel {panel}",
            "Available panels:\n" + "\n".join(f"  {i}: {p.title}" for i, p in enumerate(panels)),
        ).show()
        return 1

    console.print_json(data=create_options(snapshot, panels[panel]), default=_describe)
    return 0


def init(url: str, output: str) -> int:
    """Write a default configuration file."""
    try:
        save(DashboardConfig(stats_url=url), output)
    except ImportError as e:
        show_error(e)
        return 1

    print_success(f"Configuration written to: {output}")
    return 0


def show_version() -> None:
    """Display version information."""
    console.print(Panel(
        f"[bold]livestats[/bold] version [cyan]{__version__}[/cyan]\n"
        "Live time-series charts for load test dashboards",
        title="📈 livestats",
        border_style="cyan",
    ))


def main(args: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="livestats",
        description="Live time-series charts for load test dashboards",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  livestats watch http://localhost:8089/stats/requests
  livestats watch -c livestats.yaml -o snapshot.json -d 300
  livestats chart snapshot.json --panel 1
  livestats init -o livestats.yaml
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    watch_parser = subparsers.add_parser("watch", help="Poll a stats endpoint and show live series")
    watch_parser.add_argument("url", nargs="?", help="Stats endpoint URL")
    watch_parser.add_argument("-c", "--config", metavar="FILE", help="JSON or YAML config file")
    watch_parser.add_argument(
        "-i", "--interval", type=float, metavar="SECONDS", help="Polling interval"
    )
    watch_parser.add_argument(
        "-d", "--duration", type=float, metavar="SECONDS", help="Stop after this many seconds"
    )
    watch_parser.add_argument(
        "-o", "--output", metavar="PATH", help="Save the snapshot as JSON on exit"
    )

    chart_parser = subparsers.add_parser("chart", help="Print chart options for a saved snapshot")
    chart_parser.add_argument("snapshot", metavar="FILE", help="Snapshot JSON file")
    chart_parser.add_argument("-p", "--panel", type=int, default=0, help="Panel index")
    chart_parser.add_argument("-c", "--config", metavar="FILE", help="JSON or YAML config file")

    init_parser = subparsers.add_parser("init", help="Write a default config file")
    init_parser.add_argument(
        "url", nargs="?", default=DEFAULT_STATS_URL, help="Stats endpoint URL"
    )
    init_parser.add_argument("-o", "--output", default="livestats.json", metavar="PATH")

    subparsers.add_parser("version", help="Show version information")

    parsed = parser.parse_args(args)
    configure_logging(parsed.verbose)

    if parsed.command == "watch":
        try:
            return asyncio.run(
                watch(parsed.url, parsed.config, parsed.interval, parsed.duration, parsed.output)
            )
        except KeyboardInterrupt:
            console.print("\n[yellow]⚠ Stopped by user[/yellow]")
            return 130
    elif parsed.command == "chart":
        return chart(parsed.snapshot, parsed.panel, parsed.config)
    elif parsed.command == "init":
        return init(parsed.url, parsed.output)
    elif parsed.command == "version":
        show_version()
        return 0
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
