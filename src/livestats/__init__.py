"""livestats - live time-series charts for load test dashboards.

Quick Start:
    >>> from livestats import DashboardConfig, create_pipeline
    >>> pipeline = create_pipeline(DashboardConfig())
    >>> await pipeline.run(probe_when_idle=True)

Building chart options:
    >>> from livestats import create_options, default_chart_configs
    >>> rps_panel = default_chart_configs()[0]
    >>> options = create_options(pipeline.store.snapshot(), rps_panel)
"""

from livestats.__version__ import __author__, __email__, __license__, __version__
from livestats.charts import (
    ChartDisplayConfig,
    LineDefinition,
    ZoomState,
    create_options,
    default_chart_configs,
)
from livestats.config import DashboardConfig, create_pipeline, create_store
from livestats.ingest import HTTPStatsFetcher, IngestionPipeline, RunState, StatsSnapshot
from livestats.store import Marker, Sample, StoreSnapshot, TimeSeriesStore

__all__ = [
    "ChartDisplayConfig",
    "DashboardConfig",
    "HTTPStatsFetcher",
    "IngestionPipeline",
    "LineDefinition",
    "Marker",
    "RunState",
    "Sample",
    "StatsSnapshot",
    "StoreSnapshot",
    "TimeSeriesStore",
    "ZoomState",
    "create_options",
    "create_pipeline",
    "create_store",
    "default_chart_configs",
    "__version__",
    "__author__",
    "__email__",
    "__license__",
]
