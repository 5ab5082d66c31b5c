#!/usr/bin/env python3
"""Quick Start Example for livestats.

Replays a short simulated load test (a run, a stop and a restart) through
the ingestion pipeline and prints the resulting chart options.
Just run: python quickstart.py
"""

import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Any

# Add src to path (not needed if livestats is installed via pip)
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from livestats import IngestionPipeline, RunState, TimeSeriesStore, create_options, default_chart_configs


class SimulatedFetcher:
    """Serve fake stats payloads following a fixed run-state script."""

    def __init__(self, states: list[str]) -> None:
        self.states = states
        self.cycle = 0

    async def fetch(self) -> dict[str, Any]:
        state = self.states[min(self.cycle, len(self.states) - 1)]
        self.cycle += 1
        running = state == "running"
        return {
            "state": state,
            "totalRps": random.uniform(40, 60) if running else 0,
            "totalFailPerSec": random.uniform(0, 2) if running else 0,
            "failRatio": random.uniform(0, 0.05),
            "totalAvgResponseTime": random.uniform(80, 120),
            "userCount": 50 if running else 0,
            "currentResponseTimePercentiles": {
                "responseTimePercentile0.5": random.uniform(70, 100),
                "responseTimePercentile0.95": random.uniform(150, 300),
            },
            "customMetrics": {"queue_depth": random.randint(0, 20), "build": "abc123"},
        }


async def main() -> int:
    """Run the simulated session and print the requests-per-second chart."""
    print("📈 livestats Quick Start")
    print("=" * 50)

    script = ["running"] * 5 + ["stopped"] * 2 + ["running"] * 5
    pipeline = IngestionPipeline(
        TimeSeriesStore(),
        SimulatedFetcher(script),
        refetch_interval=0.1,
        initial_state=RunState.RUNNING,
    )

    await pipeline.run(duration=len(script) * 0.1, probe_when_idle=True)

    snapshot = pipeline.store.snapshot()
    print(f"Series: {', '.join(snapshot.series)}")
    print(f"Runs: {len(snapshot.markers) + 1}")
    print("=" * 50)

    options = create_options(snapshot, default_chart_configs()[0])
    print(json.dumps(options, indent=2, default=lambda value: type(value).__name__))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(130)
