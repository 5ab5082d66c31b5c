"""Polling ingestion of live load test stats.

This module fetches stats snapshots on a fixed interval, detects when a
new test run starts, normalizes the payload and appends one tick per
cycle to a TimeSeriesStore.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

import httpx

from livestats.errors import FetchError
from livestats.normalize import (
    numeric_custom_metrics,
    numeric_or_default,
    round_to_decimal_places,
)
from livestats.store import TimeSeriesStore

logger = logging.getLogger(__name__)

DEFAULT_REFETCH_INTERVAL = 2.0


class RunState(Enum):
    """Lifecycle phase of the load test being watched."""

    READY = "ready"
    SPAWNING = "spawning"
    RUNNING = "running"
    CLEANUP = "cleanup"
    STOPPING = "stopping"
    STOPPED = "stopped"
    MISSING = "missing"

    @classmethod
    def _missing_(cls, value: object) -> RunState:
        return cls.MISSING

    @property
    def is_active(self) -> bool:
        """Whether stats should be polled in this state."""
        return self in (RunState.SPAWNING, RunState.RUNNING)


@dataclass
class StatsSnapshot:
    """One stats payload from the load test web UI.

    Attributes:
        state: Current run state.
        total_rps: Aggregate requests per second.
        total_fail_per_sec: Aggregate failures per second.
        fail_ratio: Share of failed requests, 0 to 1.
        total_avg_response_time: Average response time in milliseconds.
        user_count: Number of simulated users.
        response_time_percentiles: Current response-time percentiles by name.
        custom_metrics: User-defined metrics; only numeric ones are charted.
        workers: Worker rows, passed through untouched.
        errors: Error rows, passed through untouched.
        extended_stats: Extended stat rows, passed through untouched.
        stats: Per-endpoint stat rows, passed through untouched.
    """

    state: RunState = RunState.MISSING
    total_rps: Any = 0
    total_fail_per_sec: Any = 0
    fail_ratio: Any = 0
    total_avg_response_time: Any = 0
    user_count: Any = 0
    response_time_percentiles: dict[str, Any] = field(default_factory=dict)
    custom_metrics: dict[str, Any] = field(default_factory=dict)
    workers: list[Any] = field(default_factory=list)
    errors: list[Any] = field(default_factory=list)
    extended_stats: list[Any] = field(default_factory=list)
    stats: list[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> StatsSnapshot:
        """Parse a camelCase stats payload, defaulting missing fields."""
        percentiles = payload.get("currentResponseTimePercentiles")
        custom_metrics = payload.get("customMetrics")

        return cls(
            state=RunState(payload.get("state")),
            total_rps=payload.get("totalRps", 0),
            total_fail_per_sec=payload.get("totalFailPerSec", 0),
            fail_ratio=payload.get("failRatio", 0),
            total_avg_response_time=payload.get("totalAvgResponseTime", 0),
            user_count=payload.get("userCount", 0),
            response_time_percentiles=dict(percentiles) if isinstance(percentiles, Mapping) else {},
            custom_metrics=dict(custom_metrics) if isinstance(custom_metrics, Mapping) else {},
            workers=payload.get("workers") or [],
            errors=payload.get("errors") or [],
            extended_stats=payload.get("extendedStats") or [],
            stats=payload.get("stats") or [],
        )


@dataclass
class StatsSummary:
    """Headline figures of the latest cycle, shown next to the charts."""

    total_rps: float = 0.0
    fail_ratio: float = 0.0
    user_count: Any = 0
    workers: list[Any] = field(default_factory=list)
    errors: list[Any] = field(default_factory=list)
    extended_stats: list[Any] = field(default_factory=list)
    stats: list[Any] = field(default_factory=list)
    custom_metrics: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot: StatsSnapshot) -> StatsSummary:
        return cls(
            total_rps=round_to_decimal_places(snapshot.total_rps, 2),
            fail_ratio=round_to_decimal_places(numeric_or_default(snapshot.fail_ratio) * 100),
            user_count=snapshot.user_count,
            workers=snapshot.workers,
            errors=snapshot.errors,
            extended_stats=snapshot.extended_stats,
            stats=snapshot.stats,
            custom_metrics=snapshot.custom_metrics,
        )


def build_tick(snapshot: StatsSnapshot) -> dict[str, float]:
    """Normalize a snapshot into the values of one chart tick.

    Percentiles and core rates always produce a value; custom metrics
    that are not numeric are left out of the tick.

    Args:
        snapshot: Parsed stats payload.

    Returns:
        Mapping of metric key to normalized value.
    """
    tick: dict[str, float] = {
        key: numeric_or_default(value)
        for key, value in snapshot.response_time_percentiles.items()
    }
    tick.update(
        {
            "currentRps": round_to_decimal_places(snapshot.total_rps, 2),
            "currentFailPerSec": round_to_decimal_places(snapshot.total_fail_per_sec, 2),
            "totalAvgResponseTime": round_to_decimal_places(snapshot.total_avg_response_time, 2),
            "userCount": numeric_or_default(snapshot.user_count),
        }
    )
    tick.update(numeric_custom_metrics(snapshot.custom_metrics))
    return tick


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StatsFetcher(Protocol):
    """Transport that returns the latest raw stats payload."""

    async def fetch(self) -> Mapping[str, Any]: ...


class HTTPStatsFetcher:
    """Fetch stats snapshots over HTTP with httpx.

    Attributes:
        url: Stats endpoint URL.
        timeout: Request timeout in seconds.
        headers: Extra request headers.

    Example:
        >>> async with HTTPStatsFetcher("http://localhost:8089/stats/requests") as fetcher:
        ...     payload = await fetcher.fetch()
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers)
        return self._client

    async def fetch(self) -> Mapping[str, Any]:
        """Fetch the latest stats payload.

        Raises:
            FetchError: If the request fails or the body is not a JSON object.
        """
        try:
            response = await self._get_client().get(self.url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise FetchError(f"Could not fetch stats from {self.url}: {e}") from e

        if not isinstance(payload, Mapping):
            raise FetchError(f"Stats payload from {self.url} is not a JSON object")
        return payload

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HTTPStatsFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class IngestionPipeline:
    """Polling loop feeding a TimeSeriesStore.

    Each cycle fetches a snapshot (retrying once immediately on failure),
    appends a normalized tick while the test is spawning or running, and
    tracks run-state transitions. A STOPPED -> RUNNING transition inserts
    a gap and a run marker on the next successful stats cycle.

    Attributes:
        store: Store receiving the ticks.
        fetcher: Transport returning raw stats payloads.
        refetch_interval: Seconds between polling cycles.
        previous_run_state: Run state seen on the previous cycle.
        pending_marker: Whether a run start awaits its gap and marker.
        latest: Last successfully fetched snapshot.
        summary: Headline figures from the last stats cycle.

    Example:
        >>> pipeline = IngestionPipeline(TimeSeriesStore(), fetcher)
        >>> pipeline.observe_run_state(RunState.RUNNING)
        >>> await pipeline.run()
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        fetcher: StatsFetcher,
        refetch_interval: float = DEFAULT_REFETCH_INTERVAL,
        clock: Callable[[], datetime] = utc_now,
        initial_state: RunState = RunState.READY,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.refetch_interval = refetch_interval
        self.clock = clock
        self.run_state = initial_state
        self.previous_run_state = initial_state
        self.pending_marker = False
        self.latest: StatsSnapshot | None = None
        self.summary = StatsSummary()
        self._stop_event = asyncio.Event()

    @property
    def should_poll(self) -> bool:
        """Whether the polling interval is currently active."""
        return self.run_state.is_active

    def observe_run_state(self, state: RunState) -> None:
        """Track the run state and flag run starts.

        Can also be called by whatever starts the test, before a fresh
        snapshot reports the new state.
        """
        if state is RunState.RUNNING and self.previous_run_state is RunState.STOPPED:
            self.pending_marker = True

        self.run_state = state
        self.previous_run_state = state

    async def refetch(self) -> StatsSnapshot | None:
        """Fetch a snapshot, retrying once on failure.

        Returns:
            The parsed snapshot, or None if both attempts failed.
        """
        try:
            return StatsSnapshot.from_dict(await self.fetcher.fetch())
        except Exception as e:
            logger.error("Error refetching stats: %s", e)

        try:
            return StatsSnapshot.from_dict(await self.fetcher.fetch())
        except Exception as e:
            logger.error("Forced refetch failed: %s", e)
            return None

    def update_stats(self, snapshot: StatsSnapshot, timestamp: datetime | None = None) -> None:
        """Append one tick for a snapshot.

        A pending run start is flushed first, so the gap and marker share
        the tick's timestamp and precede its values.

        Args:
            snapshot: Parsed stats payload.
            timestamp: Tick time. Defaults to the pipeline clock.
        """
        timestamp = timestamp or self.clock()

        try:
            if self.pending_marker:
                self.pending_marker = False
                marker = self.store.start_new_run(timestamp)
                logger.info("New test run started, adding marker Run #%d", len(self.store.markers))
                logger.debug("Run marker anchored at %s", marker.display_timestamp.isoformat())

            self.summary = StatsSummary.from_snapshot(snapshot)
            self.store.append_tick(build_tick(snapshot), timestamp)
        except Exception:
            logger.exception("Error updating stats")

    async def poll_once(self) -> StatsSnapshot | None:
        """Run one fetch-and-append cycle.

        Returns:
            The fetched snapshot, or None if fetching failed.
        """
        snapshot = await self.refetch()
        if snapshot is None:
            return None

        self.latest = snapshot
        if self.should_poll:
            self.update_stats(snapshot)
        self.observe_run_state(snapshot.state)
        return snapshot

    async def probe(self) -> RunState:
        """Fetch only to learn the current run state, without charting.

        Returns:
            The run state after the probe.
        """
        snapshot = await self.refetch()
        if snapshot is not None:
            self.latest = snapshot
            self.observe_run_state(snapshot.state)
        return self.run_state

    async def run(self, duration: float | None = None, probe_when_idle: bool = False) -> None:
        """Poll until stopped.

        The interval keeps ticking while the test is idle; cycles are
        simply skipped until the run state becomes active again.

        Args:
            duration: Optional limit in seconds.
            probe_when_idle: Keep fetching while idle so a run started
                elsewhere is noticed. Without it, the run state must be
                fed through ``observe_run_state``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration if duration is not None else None

        while not self._stop_event.is_set():
            if deadline is not None and loop.time() >= deadline:
                break
            if self.should_poll:
                await self.poll_once()
            elif probe_when_idle:
                await self.probe()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.refetch_interval)

    def stop(self) -> None:
        """Stop the polling loop after the current cycle.

        A stop requested before ``run`` starts makes it return immediately.
        """
        self._stop_event.set()
