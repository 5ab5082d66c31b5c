"""Tests for the chart option builder."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from livestats.charts import (
    NO_DATA,
    ChartDisplayConfig,
    LineDefinition,
    TooltipFormatter,
    ZoomState,
    create_mark_line,
    create_options,
    create_y_axis,
    default_chart_configs,
    export_file_name,
    format_marker_label,
    get_series_data,
    is_zoomed,
)
from livestats.store import TimeSeriesStore

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
NOW = datetime(2024, 5, 1, 13, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> TimeSeriesStore:
    store = TimeSeriesStore()
    store.append_tick({"currentRps": 5.12, "currentFailPerSec": 0.5}, T0)
    store.start_new_run(T0 + timedelta(seconds=10))
    store.append_tick({"currentRps": 7.0, "currentFailPerSec": 0.0}, T0 + timedelta(seconds=12))
    return store


@pytest.fixture
def rps_config() -> ChartDisplayConfig:
    return ChartDisplayConfig(
        title="Total Requests per Second",
        lines=[
            LineDefinition("currentRps", "RPS"),
            LineDefinition("currentFailPerSec", "Failures/s"),
        ],
        colors=["#00ca5a", "#ff6d6d"],
    )


class TestCreateYAxis:
    """Tests for create_y_axis."""

    def test_single_axis(self) -> None:
        """Test the default single axis."""
        assert create_y_axis() == {"type": "value", "boundaryGap": [0, "5%"]}

    def test_single_axis_label(self) -> None:
        """Test a single label names the single axis."""
        assert create_y_axis(y_axis_labels="ms")["name"] == "ms"

    def test_split_axis_without_labels(self) -> None:
        """Test two identical unlabeled axes."""
        axes = create_y_axis(split_axis=True)

        assert axes == [
            {"type": "value", "boundaryGap": [0, "5%"]},
            {"type": "value", "boundaryGap": [0, "5%"]},
        ]

    def test_split_axis_with_labels(self) -> None:
        """Test split axes are labeled positionally."""
        axes = create_y_axis(split_axis=True, y_axis_labels=["Users", "RPS"])

        assert [axis["name"] for axis in axes] == ["Users", "RPS"]

    def test_split_axis_with_single_label(self) -> None:
        """Test a single string label disables the split."""
        axis = create_y_axis(split_axis=True, y_axis_labels="ms")

        assert isinstance(axis, dict)
        assert axis["name"] == "ms"

    def test_axes_do_not_share_state(self) -> None:
        """Test the two axes are independent dicts."""
        axes = create_y_axis(split_axis=True)
        axes[0]["name"] = "changed"

        assert "name" not in axes[1]
        assert "name" not in create_y_axis()


class TestGetSeriesData:
    """Tests for get_series_data."""

    def test_line_series(self, store: TimeSeriesStore) -> None:
        """Test samples are passed through as pairs, gaps included."""
        series = get_series_data(store.snapshot(), [LineDefinition("currentRps", "RPS")])

        assert series == [
            {
                "symbolSize": 4,
                "type": "line",
                "name": "RPS",
                "data": [
                    [T0.isoformat(), 5.12],
                    [(T0 + timedelta(seconds=10)).isoformat(), None],
                    [(T0 + timedelta(seconds=12)).isoformat(), 7.0],
                ],
            }
        ]

    def test_scatter_series(self, store: TimeSeriesStore) -> None:
        """Test scatterplot panels render points."""
        series = get_series_data(
            store.snapshot(), [LineDefinition("currentRps", "RPS")], scatterplot=True
        )
        assert series[0]["type"] == "scatter"

    def test_unknown_key(self, store: TimeSeriesStore) -> None:
        """Test an unknown key yields an empty line instead of failing."""
        series = get_series_data(store.snapshot(), [LineDefinition("nope", "Nope")])
        assert series[0]["data"] == []


class TestTooltipFormatter:
    """Tests for TooltipFormatter."""

    def test_no_params(self) -> None:
        """Test an empty hover shows the no data text."""
        formatter = TooltipFormatter()

        assert formatter(None) == NO_DATA
        assert formatter([]) == NO_DATA

    def test_only_gaps(self) -> None:
        """Test hovering gaps shows the no data text."""
        formatter = TooltipFormatter()
        params = [{"axisValue": T0.isoformat(), "color": "#000", "seriesName": "RPS", "value": [T0.isoformat(), None]}]

        assert formatter(params) == NO_DATA

    def test_lines(self) -> None:
        """Test one colored line per hovered series after the timestamp."""
        formatter = TooltipFormatter()
        params = [
            {"axisValue": T0.isoformat(), "color": "#00ca5a", "seriesName": "RPS", "value": [T0.isoformat(), 5.12]},
            {"axisValue": T0.isoformat(), "color": "#ff6d6d", "seriesName": "Failures/s", "value": [T0.isoformat(), 0.5]},
        ]

        text = formatter(params)

        assert text.count("<br>") == 2
        assert '<span style="color:#00ca5a;">RPS:&nbsp;5.12</span>' in text
        assert '<span style="color:#ff6d6d;">Failures/s:&nbsp;0.5</span>' in text
        assert text.index("RPS") < text.index("Failures/s")
        assert not text.startswith("<br>")

    def test_custom_value_formatter(self) -> None:
        """Test the panel formatter receives the whole pair."""
        formatter = TooltipFormatter(value_formatter=lambda value: f"{value[1]}ms")
        params = [{"axisValue": T0.isoformat(), "color": "#000", "seriesName": "p95", "value": [T0.isoformat(), 250]}]

        assert "p95:&nbsp;250ms" in formatter(params)


class TestMarkLine:
    """Tests for run marker rendering."""

    def test_one_line_per_marker(self, store: TimeSeriesStore) -> None:
        """Test each marker becomes a vertical line."""
        store.start_new_run(T0 + timedelta(seconds=20))

        mark_line = create_mark_line(store.snapshot())

        assert mark_line["symbol"] == "none"
        assert mark_line["data"] == [
            {"xAxis": (T0 + timedelta(seconds=10)).isoformat()},
            {"xAxis": (T0 + timedelta(seconds=20)).isoformat()},
        ]

    def test_positional_labels(self) -> None:
        """Test labels are 1-based positions."""
        assert format_marker_label({"dataIndex": 0}) == "Run #1"
        assert format_marker_label({"dataIndex": 4}) == "Run #5"


class TestZoom:
    """Tests for zoom-driven slider visibility."""

    @pytest.mark.parametrize(
        ("start", "end", "start_value", "expected"),
        [
            (0, 100, 0, False),
            (10, 100, 0, True),
            (0, 100, 5, True),
            (10, 90, 0, True),
            (0, 50, 0, False),
        ],
    )
    def test_is_zoomed(self, start: float, end: float, start_value: float, expected: bool) -> None:
        """Test the zoom predicate."""
        assert is_zoomed(start, end, start_value) is expected

    def test_apply_shows_slider(self) -> None:
        """Test zooming in shows the slider."""
        zoom = ZoomState()

        update = zoom.apply({"batch": [{"start": 20, "end": 80, "startValue": 0}]})

        assert zoom.slider_visible is True
        assert update == {"dataZoom": [{"type": "slider", "show": True}]}

    def test_apply_hides_slider(self) -> None:
        """Test resetting the zoom hides the slider again."""
        zoom = ZoomState(slider_visible=True)

        update = zoom.apply({"batch": [{"start": 0, "end": 100, "startValue": 0}]})

        assert zoom.slider_visible is False
        assert update == {"dataZoom": [{"type": "slider", "show": False}]}

    def test_only_first_batch_entry(self) -> None:
        """Test later batch entries are ignored."""
        zoom = ZoomState()

        zoom.apply(
            {
                "batch": [
                    {"start": 0, "end": 100, "startValue": 0},
                    {"start": 50, "end": 60, "startValue": 10},
                ]
            }
        )

        assert zoom.slider_visible is False

    def test_time_start_value(self) -> None:
        """Test an ISO start value counts as zoomed."""
        zoom = ZoomState()

        zoom.apply({"batch": [{"start": 0, "end": 100, "startValue": T0.isoformat()}]})

        assert zoom.slider_visible is True

    def test_event_without_batch(self) -> None:
        """Test events without a batch leave the state alone."""
        zoom = ZoomState(slider_visible=True)

        assert zoom.apply({}) is None
        assert zoom.apply(None) is None
        assert zoom.slider_visible is True

    def test_malformed_batch_entry(self) -> None:
        """Test a batch whose first entry is not a mapping is ignored."""
        zoom = ZoomState(slider_visible=True)

        assert zoom.apply({"batch": [42]}) is None
        assert zoom.slider_visible is True


class TestExportFileName:
    """Tests for export_file_name."""

    def test_slug_and_timestamp(self) -> None:
        """Test whitespace collapses to underscores and a timestamp is added."""
        name = export_file_name("Response  Times (ms)", NOW)

        assert name == f"response_times_(ms)_{int(NOW.timestamp())}"


class TestCreateOptions:
    """Tests for create_options."""

    def test_structure(self, store: TimeSeriesStore, rps_config: ChartDisplayConfig) -> None:
        """Test the main sections of the option dict."""
        options = create_options(store.snapshot(), rps_config, now=NOW)

        assert options["title"]["text"] == "Total Requests per Second"
        assert options["tooltip"]["trigger"] == "axis"
        assert options["xAxis"]["type"] == "time"
        assert options["xAxis"]["min"] == T0.isoformat()
        assert options["xAxis"]["startValue"] == T0.isoformat()
        assert options["color"] == ["#00ca5a", "#ff6d6d"]
        assert [s["name"] for s in options["series"]] == ["RPS", "Failures/s"]
        assert options["toolbox"]["feature"]["saveAsImage"]["name"] == export_file_name(
            "Total Requests per Second", NOW
        )
        assert "dataZoom" not in options

    def test_markers_on_first_series(self, store: TimeSeriesStore, rps_config: ChartDisplayConfig) -> None:
        """Test run markers are drawn once, on the first series."""
        options = create_options(store.snapshot(), rps_config, now=NOW)

        assert options["series"][0]["markLine"]["data"] == [
            {"xAxis": (T0 + timedelta(seconds=10)).isoformat()}
        ]
        assert "markLine" not in options["series"][1]

    def test_empty_store_starts_now(self, rps_config: ChartDisplayConfig) -> None:
        """Test an empty store falls back to the current time."""
        options = create_options(TimeSeriesStore().snapshot(), rps_config, now=NOW)

        assert options["xAxis"]["min"] == NOW.isoformat()
        assert all(series["data"] == [] for series in options["series"])

    def test_zoom_state(self, store: TimeSeriesStore, rps_config: ChartDisplayConfig) -> None:
        """Test the slider option follows the zoom state."""
        options = create_options(store.snapshot(), rps_config, zoom=ZoomState(True), now=NOW)

        assert options["dataZoom"] == [{"type": "slider", "show": True}]

    def test_idempotent(self, store: TimeSeriesStore, rps_config: ChartDisplayConfig) -> None:
        """Test building twice from the same inputs gives equal options."""
        snapshot = store.snapshot()

        first = create_options(snapshot, rps_config, now=NOW)
        second = create_options(snapshot, rps_config, now=NOW)

        assert first == second
        assert store.snapshot() == snapshot

    def test_split_axis_panel(self, store: TimeSeriesStore) -> None:
        """Test a split-axis panel gets two labeled axes."""
        config = ChartDisplayConfig(
            title="Users and RPS",
            lines=[LineDefinition("userCount", "Users"), LineDefinition("currentRps", "RPS")],
            split_axis=True,
            y_axis_labels=["Users", "RPS"],
        )

        options = create_options(store.snapshot(), config, now=NOW)

        assert len(options["yAxis"]) == 2


class TestDefaultChartConfigs:
    """Tests for default_chart_configs."""

    def test_standard_panels(self) -> None:
        """Test the three standard panels."""
        configs = default_chart_configs()

        assert [c.title for c in configs] == [
            "Total Requests per Second",
            "Response Times (ms)",
            "Number of Users",
        ]
        assert [line.key for line in configs[1].lines] == [
            "responseTimePercentile0.5",
            "responseTimePercentile0.95",
            "totalAvgResponseTime",
        ]
        assert configs[1].lines[1].name == "95th percentile"

    def test_custom_metrics_panel(self) -> None:
        """Test discovered custom metrics get their own panel."""
        configs = default_chart_configs(custom_keys=["queue"])

        assert configs[-1].title == "Custom Metrics"
        assert configs[-1].lines == [LineDefinition("queue", "queue")]
