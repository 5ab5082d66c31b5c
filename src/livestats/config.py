"""Configuration file utilities for livestats.

Generate, load, and save dashboard configuration files, and build the
store and pipeline a configuration describes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

try:
    import yaml

    HAS_YAML = True
except ImportError:
    HAS_YAML = False
    yaml = None

from livestats.errors import ConfigurationError, validate_config
from livestats.ingest import DEFAULT_REFETCH_INTERVAL, HTTPStatsFetcher, IngestionPipeline
from livestats.store import DEFAULT_PERCENTILES, TimeSeriesStore

DEFAULT_STATS_URL = "http://localhost:8089/stats/requests"

# validation issues that are reported but do not reject a config
ADVISORY_ISSUES = ("Very long", "No percentiles")


@dataclass
class DashboardConfig:
    """Settings for a live stats session.

    Attributes:
        stats_url: JSON stats endpoint of the load test web UI.
        refetch_interval: Seconds between polling cycles.
        percentiles_to_chart: Response-time percentiles seeded in the store.
        request_timeout: HTTP timeout for one fetch, in seconds.
        headers: Extra HTTP headers sent with every fetch.
    """

    stats_url: str = DEFAULT_STATS_URL
    refetch_interval: float = DEFAULT_REFETCH_INTERVAL
    percentiles_to_chart: tuple[float, ...] = DEFAULT_PERCENTILES
    request_timeout: float = 10.0
    headers: dict[str, str] = field(default_factory=dict)


def to_dict(config: DashboardConfig) -> dict[str, Any]:
    """Convert a DashboardConfig to a dictionary."""
    return {
        "stats_url": config.stats_url,
        "refetch_interval": config.refetch_interval,
        "percentiles_to_chart": list(config.percentiles_to_chart),
        "request_timeout": config.request_timeout,
        "headers": dict(config.headers),
    }


def from_dict(data: dict[str, Any]) -> DashboardConfig:
    """Create a DashboardConfig from a dictionary.

    Args:
        data: Configuration dictionary. Missing keys take their defaults.

    Returns:
        The configuration.

    Raises:
        ConfigurationError: If the values are unusable.
    """
    defaults = DashboardConfig()
    merged = {**to_dict(defaults), **data}

    try:
        issues = validate_config(merged)
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid configuration value: {e}",
            "Numbers are expected for refetch_interval, request_timeout and percentiles_to_chart.",
        ) from e

    blocking = [issue for issue in issues if not issue.startswith(ADVISORY_ISSUES)]
    if blocking:
        raise ConfigurationError("; ".join(blocking), "Fix the values in your config file.")

    return DashboardConfig(
        stats_url=merged["stats_url"],
        refetch_interval=float(merged["refetch_interval"]),
        percentiles_to_chart=tuple(merged["percentiles_to_chart"]),
        request_timeout=float(merged["request_timeout"]),
        headers=dict(merged["headers"] or {}),
    )


def config_warnings(config: DashboardConfig) -> list[str]:
    """Return the advisory issues of an otherwise valid configuration."""
    return [issue for issue in validate_config(to_dict(config)) if issue.startswith(ADVISORY_ISSUES)]


def save_json(config: DashboardConfig, path: str | Path) -> None:
    """Save configuration to a JSON file."""
    with open(Path(path), "w") as f:
        json.dump(to_dict(config), f, indent=2)


def load_json(path: str | Path) -> DashboardConfig:
    """Load configuration from a JSON file."""
    with open(Path(path)) as f:
        return from_dict(json.load(f))


def save_yaml(config: DashboardConfig, path: str | Path) -> None:
    """Save configuration to a YAML file.

    Example:
        >>> save_yaml(DashboardConfig(), "livestats.yaml")
    """
    if not HAS_YAML:
        raise ImportError("PyYAML is required for YAML support. Install with: pip install pyyaml")

    with open(Path(path), "w") as f:
        yaml.dump(to_dict(config), f, default_flow_style=False, sort_keys=False)


def load_yaml(path: str | Path) -> DashboardConfig:
    """Load configuration from a YAML file."""
    if not HAS_YAML:
        raise ImportError("PyYAML is required for YAML support. Install with: pip install pyyaml")

    with open(Path(path)) as f:
        return from_dict(yaml.safe_load(f) or {})


def save(config: DashboardConfig, path: str | Path) -> None:
    """Save configuration (auto-detects format from extension).

    Args:
        config: Configuration to save
        path: File path (.json or .yaml/.yml)
    """
    path = Path(path)

    if path.suffix in (".yaml", ".yml"):
        save_yaml(config, path)
    else:
        save_json(config, path)


def load(path: str | Path) -> DashboardConfig:
    """Load configuration (auto-detects format from extension).

    Args:
        path: File path (.json or .yaml/.yml)

    Returns:
        The loaded configuration.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    if path.suffix in (".yaml", ".yml"):
        return load_yaml(path)
    else:
        return load_json(path)


def create_store(config: DashboardConfig) -> TimeSeriesStore:
    """Create an empty store seeded with the configured percentiles."""
    return TimeSeriesStore(percentiles=config.percentiles_to_chart)


def create_pipeline(
    config: DashboardConfig,
    store: TimeSeriesStore | None = None,
    client: httpx.AsyncClient | None = None,
) -> IngestionPipeline:
    """Create a pipeline polling the configured stats endpoint over HTTP.

    Args:
        config: Session configuration.
        store: Store to feed. A fresh one is created if omitted.
        client: HTTP client to fetch with. One honoring the configured
            timeout and headers is created if omitted.
    """
    fetcher = HTTPStatsFetcher(
        config.stats_url,
        timeout=config.request_timeout,
        headers=config.headers,
        client=client,
    )
    return IngestionPipeline(
        store if store is not None else create_store(config),
        fetcher,
        refetch_interval=config.refetch_interval,
    )
