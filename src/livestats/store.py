"""In-memory time-series store for live dashboard charts.

This module provides the TimeSeriesStore class, which accumulates one
append-only series of samples per metric and records run-start markers
between successive load test runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterable, Mapping

CORE_METRIC_KEYS = (
    "currentRps",
    "currentFailPerSec",
    "totalAvgResponseTime",
    "userCount",
)

DEFAULT_PERCENTILES = (0.5, 0.95)


def _isoformat(timestamp: datetime | None) -> str | None:
    return timestamp.isoformat() if timestamp is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def percentile_key(percentile: float) -> str:
    """Build the metric key used for a response-time percentile.

    Example:
        >>> percentile_key(0.95)
        'responseTimePercentile0.95'
    """
    return f"responseTimePercentile{percentile}"


@dataclass(frozen=True)
class Sample:
    """A single timestamped value in a series.

    Attributes:
        timestamp: When the value was observed.
        value: The metric value, or None for a deliberate gap.
    """

    timestamp: datetime | None
    value: float | None

    @property
    def is_gap(self) -> bool:
        """Whether this sample is a break between two runs."""
        return self.value is None


@dataclass(frozen=True)
class Marker:
    """Start of a test run.

    Attributes:
        timestamp: When the new run was first ingested.
        display_timestamp: Where the run start is anchored on the time axis.
            For the first marker of a session this is the earliest time in the
            store; for later markers it equals ``timestamp``.
    """

    timestamp: datetime
    display_timestamp: datetime


@dataclass(frozen=True)
class StoreSnapshot:
    """Read-only view of a TimeSeriesStore.

    Attributes:
        series: Mapping of metric key to its samples.
        times: Tick timestamps in ingestion order, None for gaps.
        markers: Run-start markers in order.
    """

    series: Mapping[str, tuple[Sample, ...]]
    times: tuple[datetime | None, ...]
    markers: tuple[Marker, ...]

    @property
    def earliest_time(self) -> datetime | None:
        """First recorded tick time, if any."""
        for timestamp in self.times:
            if timestamp is not None:
                return timestamp
        return None

    def get(self, key: str) -> tuple[Sample, ...]:
        """Get the samples for a key, empty if the key is unknown."""
        return self.series.get(key, ())

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "series": {
                key: [[_isoformat(s.timestamp), s.value] for s in samples]
                for key, samples in self.series.items()
            },
            "times": [_isoformat(t) for t in self.times],
            "markers": [
                {
                    "timestamp": _isoformat(m.timestamp),
                    "display_timestamp": _isoformat(m.display_timestamp),
                }
                for m in self.markers
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StoreSnapshot:
        """Rebuild a snapshot saved with ``to_dict``."""
        return cls(
            series=MappingProxyType(
                {
                    key: tuple(Sample(_parse(t), value) for t, value in samples)
                    for key, samples in data.get("series", {}).items()
                }
            ),
            times=tuple(_parse(t) for t in data.get("times", [])),
            markers=tuple(
                Marker(_parse(m["timestamp"]), _parse(m["display_timestamp"]))
                for m in data.get("markers", [])
            ),
        )


class TimeSeriesStore:
    """Append-only store of per-metric time series.

    Built-in keys are seeded with empty series at construction. Keys
    that first appear in a tick (custom metrics) are registered on the
    fly and stay known for the lifetime of the store.

    Attributes:
        percentiles: Response-time percentiles charted by this store.

    Example:
        >>> store = TimeSeriesStore()
        >>> store.append_tick({"currentRps": 5.12}, now)
        >>> store.start_new_run(later)
        >>> view = store.snapshot()
    """

    def __init__(self, percentiles: Iterable[float] = DEFAULT_PERCENTILES) -> None:
        """Initialize an empty store.

        Args:
            percentiles: Response-time percentiles to seed series for.
        """
        self.percentiles: tuple[float, ...] = tuple(percentiles)
        self._series: dict[str, list[Sample]] = {
            key: [] for key in self.builtin_keys
        }
        self._times: list[datetime | None] = []
        self._markers: list[Marker] = []

    @property
    def builtin_keys(self) -> tuple[str, ...]:
        """Keys known at construction time."""
        return tuple(percentile_key(p) for p in self.percentiles) + CORE_METRIC_KEYS

    @property
    def keys(self) -> tuple[str, ...]:
        """All known keys, in registration order."""
        return tuple(self._series)

    @property
    def custom_keys(self) -> tuple[str, ...]:
        """Keys discovered from ticks rather than seeded."""
        builtin = set(self.builtin_keys)
        return tuple(key for key in self._series if key not in builtin)

    @property
    def markers(self) -> tuple[Marker, ...]:
        """Run-start markers recorded so far."""
        return tuple(self._markers)

    def __contains__(self, key: object) -> bool:
        return key in self._series

    def __len__(self) -> int:
        return len(self._series)

    def append_tick(
        self,
        tick: Mapping[str, float | None],
        timestamp: datetime | None,
        gap: bool = False,
    ) -> None:
        """Append one value per key present in the tick.

        Keys absent from the tick are left untouched. Unknown keys are
        registered with a new series.

        Args:
            tick: Mapping of metric key to value (None for a gap).
            timestamp: Timestamp shared by every sample of the tick.
            gap: Record an empty placeholder on the time axis instead of
                ``timestamp``.
        """
        for key, value in tick.items():
            self._series.setdefault(key, []).append(Sample(timestamp, value))
        self._times.append(None if gap else timestamp)

    def insert_gap(self, timestamp: datetime) -> None:
        """Break every known series, custom ones included, with a null sample.

        Args:
            timestamp: Timestamp given to the gap samples.
        """
        self.append_tick(dict.fromkeys(self.keys), timestamp, gap=True)

    def _earliest_time(self) -> datetime | None:
        return next((t for t in self._times if t is not None), None)

    def add_marker(self, timestamp: datetime) -> Marker:
        """Record the start of a new run.

        Args:
            timestamp: When the new run was detected.

        Returns:
            The recorded marker.
        """
        if self._markers:
            display_timestamp = timestamp
        else:
            display_timestamp = self._earliest_time() or timestamp

        marker = Marker(timestamp=timestamp, display_timestamp=display_timestamp)
        self._markers.append(marker)
        return marker

    def start_new_run(self, timestamp: datetime) -> Marker:
        """Insert a gap and a marker for a run boundary.

        Args:
            timestamp: When the new run was detected.

        Returns:
            The recorded marker.
        """
        self.insert_gap(timestamp)
        return self.add_marker(timestamp)

    def snapshot(self) -> StoreSnapshot:
        """Get a read-only view of all series and markers."""
        return StoreSnapshot(
            series=MappingProxyType(
                {key: tuple(samples) for key, samples in self._series.items()}
            ),
            times=tuple(self._times),
            markers=tuple(self._markers),
        )
