"""Chart option builder for the live dashboard.

Turns a StoreSnapshot and a ChartDisplayConfig into the declarative option
dict an ECharts-style renderer consumes. Everything here is a pure function
of its inputs; the only state is the zoom slider visibility held by
ZoomState, which the renderer's zoom events update.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence

from livestats.normalize import is_numeric, numeric_or_default
from livestats.store import DEFAULT_PERCENTILES, StoreSnapshot, percentile_key

NO_DATA = "No data"
SCATTER_SYMBOL_SIZE = 4


def _value_axis() -> dict[str, Any]:
    return {"type": "value", "boundaryGap": [0, "5%"]}


@dataclass(frozen=True)
class LineDefinition:
    """One line of a chart panel.

    Attributes:
        key: Metric key in the store.
        name: Legend and tooltip name.
    """

    key: str
    name: str


@dataclass
class ChartDisplayConfig:
    """Display settings for one chart panel.

    Attributes:
        title: Panel title, also used for the exported image name.
        lines: Lines to draw, in legend order.
        colors: Color palette applied to the lines in order.
        value_formatter: Optional tooltip formatter receiving the hovered
            ``[timestamp, value]`` pair.
        split_axis: Draw two value axes instead of one.
        y_axis_labels: One label, or two labels for a split axis.
        scatterplot: Draw points instead of connected lines.
    """

    title: str
    lines: list[LineDefinition]
    colors: list[str] = field(default_factory=list)
    value_formatter: Callable[[Any], Any] | None = None
    split_axis: bool = False
    y_axis_labels: str | Sequence[str] | None = None
    scatterplot: bool = False


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if is_numeric(value):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _isoformat(timestamp: datetime | None) -> str | None:
    return timestamp.isoformat() if timestamp is not None else None


def format_locale_string(value: Any) -> str:
    """Format an axis value as a local date and time.

    Accepts datetimes, ISO strings and epoch milliseconds, as delivered by
    the renderer. Unparseable values are returned as text.
    """
    timestamp = _to_datetime(value)
    if timestamp is None:
        return str(value)
    return timestamp.astimezone().strftime("%x, %X")


def format_time_axis(value: Any) -> str:
    """Format a time-axis tick as a local time of day."""
    timestamp = _to_datetime(value)
    if timestamp is None:
        return str(value)
    return timestamp.astimezone().strftime("%X")


def create_y_axis(
    split_axis: bool = False,
    y_axis_labels: str | Sequence[str] | None = None,
) -> dict[str, Any] | list[dict[str, Any]]:
    """Build the value axis (or axes) of a chart.

    Args:
        split_axis: Whether two axes are requested.
        y_axis_labels: A single label, or two positional labels.

    Returns:
        One axis dict, or a list of two for a split axis.
    """
    labels_are_list = isinstance(y_axis_labels, (list, tuple))

    if split_axis and (not y_axis_labels or (labels_are_list and len(y_axis_labels) == 2)):
        axes = []
        for index in range(2):
            axis = _value_axis()
            if y_axis_labels:
                axis["name"] = y_axis_labels[index]
            axes.append(axis)
        return axes

    axis = _value_axis()
    if y_axis_labels:
        axis["name"] = y_axis_labels[0] if labels_are_list else y_axis_labels
    return axis


def get_series_data(
    snapshot: StoreSnapshot,
    lines: Iterable[LineDefinition],
    scatterplot: bool = False,
) -> list[dict[str, Any]]:
    """Build one renderable series per line definition.

    Samples are passed through as ``[timestamp, value]`` pairs; gaps keep
    their None value so the renderer breaks the line.
    """
    return [
        {
            "symbolSize": SCATTER_SYMBOL_SIZE,
            "type": "scatter" if scatterplot else "line",
            "name": line.name,
            "data": [
                [_isoformat(sample.timestamp), sample.value]
                for sample in snapshot.get(line.key)
            ],
        }
        for line in lines
    ]


def _has_value(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return len(value) > 1 and value[1] is not None
    return value is not None


@dataclass(frozen=True)
class TooltipFormatter:
    """Tooltip formatter for an axis-triggered tooltip.

    Called by the renderer with the hovered series entries, each a mapping
    with ``axisValue``, ``color``, ``seriesName`` and ``value``.
    """

    value_formatter: Callable[[Any], Any] | None = None

    def render_value(self, value: Any) -> Any:
        if self.value_formatter is not None:
            return self.value_formatter(value)
        return value[1] if isinstance(value, (list, tuple)) else value

    def __call__(self, params: Sequence[Mapping[str, Any]] | None) -> str:
        if not params or not any(_has_value(param.get("value")) for param in params):
            return NO_DATA

        parts = [format_locale_string(params[0].get("axisValue"))]
        for param in params:
            parts.append(
                f'<br><span style="color:{param.get("color")};">'
                f'{param.get("seriesName")}:&nbsp;{self.render_value(param.get("value"))}'
                "</span>"
            )
        return "".join(parts)


def format_marker_label(params: Mapping[str, Any]) -> str:
    """Label a run marker by its position."""
    return f"Run #{params['dataIndex'] + 1}"


def create_mark_line(snapshot: StoreSnapshot) -> dict[str, Any]:
    """Build the vertical run-start lines for a chart."""
    return {
        "symbol": "none",
        "label": {
            "formatter": format_marker_label,
            "padding": [0, 0, 8, 0],
        },
        "data": [{"xAxis": _isoformat(marker.timestamp)} for marker in snapshot.markers],
    }


def is_zoomed(start: float, end: float, start_value: float) -> bool:
    """Whether a zoom window shows less than the full time range.

    Example:
        >>> is_zoomed(0, 100, 0)
        False
        >>> is_zoomed(10, 100, 0)
        True
    """
    return (start > 0 and end <= 100) or start_value > 0


def slider_option(show: bool) -> dict[str, Any]:
    """Option update showing or hiding the range slider."""
    return {"dataZoom": [{"type": "slider", "show": show}]}


@dataclass
class ZoomState:
    """Range slider visibility, driven by the latest zoom event.

    Attributes:
        slider_visible: Whether the range slider is shown.
    """

    slider_visible: bool = False

    def apply(self, event: Mapping[str, Any] | None) -> dict[str, Any] | None:
        """Update from a renderer zoom event.

        Only the first batch entry is consulted. Events without a batch, or
        whose first entry is not a mapping, are ignored.

        Returns:
            The option update to send to the renderer, or None if ignored.
        """
        batch = event.get("batch") if isinstance(event, Mapping) else None
        if not batch:
            return None

        first = batch[0]
        if not isinstance(first, Mapping):
            return None

        self.slider_visible = is_zoomed(
            numeric_or_default(first.get("start")),
            numeric_or_default(first.get("end"), 100),
            _zoom_start_value(first.get("startValue")),
        )
        return slider_option(self.slider_visible)


def _zoom_start_value(value: Any) -> float:
    # time axes report startValue as epoch milliseconds
    if is_numeric(value):
        return value
    timestamp = _to_datetime(value)
    return timestamp.timestamp() * 1000 if timestamp is not None else 0


def export_file_name(title: str, now: datetime | None = None) -> str:
    """Name of the image saved from a chart.

    Example:
        >>> export_file_name("Total Requests per Second", now)
        'total_requests_per_second_1760000000'
    """
    now = now or datetime.now(timezone.utc)
    slug = re.sub(r"\s+", "_", title).lower()
    return f"{slug}_{int(now.timestamp())}"


def create_options(
    snapshot: StoreSnapshot,
    config: ChartDisplayConfig,
    zoom: ZoomState | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the full chart option dict for one panel.

    Args:
        snapshot: Read-only view of the store.
        config: Panel display settings.
        zoom: Current zoom state; adds the range slider option when given.
        now: Reference time for an empty store and the export name.

    Returns:
        Option dict for the renderer.
    """
    now = now or datetime.now(timezone.utc)
    start_time = _isoformat(snapshot.earliest_time or now)

    series = get_series_data(snapshot, config.lines, config.scatterplot)
    if series and snapshot.markers:
        series[0]["markLine"] = create_mark_line(snapshot)

    options: dict[str, Any] = {
        "title": {
            "text": config.title,
            "left": "center",
            "top": 0,
            "padding": [10, 0, 10, 0],
        },
        "tooltip": {
            "trigger": "axis",
            "formatter": TooltipFormatter(config.value_formatter),
            "borderWidth": 0,
        },
        "legend": {
            "type": "scroll",
            "orient": "horizontal",
            "top": 25,
        },
        "xAxis": {
            "type": "time",
            "min": start_time,
            "startValue": start_time,
            "axisLabel": {
                "formatter": format_time_axis,
                "hideOverlap": True,
            },
        },
        "grid": {
            "left": "10%",
            "right": "5%",
            "top": 60,
            "bottom": "10%",
            "containLabel": True,
        },
        "yAxis": create_y_axis(config.split_axis, config.y_axis_labels),
        "series": series,
        "color": list(config.colors),
        "toolbox": {
            "right": 10,
            "top": 0,
            "feature": {
                "dataZoom": {
                    "title": {"zoom": "Zoom Select", "back": "Zoom Reset"},
                    "yAxisIndex": False,
                },
                "saveAsImage": {
                    "name": export_file_name(config.title, now),
                    "title": "Download as PNG",
                    "emphasis": {"iconStyle": {"textPosition": "left"}},
                },
            },
        },
    }

    if zoom is not None:
        options.update(slider_option(zoom.slider_visible))

    return options


RESPONSE_TIME_COLORS = ["#ff9f00", "#9966CC", "#8A2BE2", "#8E4585", "#E0B0FF", "#C8A2C8", "#E6E6FA"]


def default_chart_configs(
    percentiles: Iterable[float] = DEFAULT_PERCENTILES,
    custom_keys: Iterable[str] = (),
) -> list[ChartDisplayConfig]:
    """Standard dashboard panels.

    Args:
        percentiles: Charted response-time percentiles.
        custom_keys: Discovered custom metric keys; adds a custom metrics
            panel when not empty.

    Returns:
        Panel configurations in display order.
    """
    configs = [
        ChartDisplayConfig(
            title="Total Requests per Second",
            lines=[
                LineDefinition("currentRps", "RPS"),
                LineDefinition("currentFailPerSec", "Failures/s"),
            ],
            colors=["#00ca5a", "#ff6d6d"],
        ),
        ChartDisplayConfig(
            title="Response Times (ms)",
            lines=[
                LineDefinition(percentile_key(p), f"{p * 100:g}th percentile")
                for p in percentiles
            ]
            + [LineDefinition("totalAvgResponseTime", "Average Response Time")],
            colors=RESPONSE_TIME_COLORS,
        ),
        ChartDisplayConfig(
            title="Number of Users",
            lines=[LineDefinition("userCount", "Number of Users")],
            colors=["#0099ff"],
        ),
    ]

    custom_keys = list(custom_keys)
    if custom_keys:
        configs.append(
            ChartDisplayConfig(
                title="Custom Metrics",
                lines=[LineDefinition(key, key) for key in custom_keys],
            )
        )

    return configs
