"""
Tests for utils/charts.py: Plotly figure builders and themes.
"""
import pytest

from utils.charts import (
    AVERAGE_LINE_COLOR,
    THEMES,
    TREND_LINE_COLOR,
    bar_chart,
    box_chart,
    combination_chart,
    figure_to_dict,
    get_theme,
    grouped_bar_chart,
    heatmap_chart,
    line_chart,
    multi_line_chart,
    stacked_bar_chart,
    theme_layout,
)

YEARLY = [
    {"fiscal_year": 2021, "permit_count": 1100},
    {"fiscal_year": 2022, "permit_count": 1050},
    {"fiscal_year": 2023, "permit_count": 1200},
]


def _names(fig):
    return [t.name for t in fig.data]


class TestThemes:
    def test_known_themes(self):
        assert set(THEMES) == {"light", "dark"}

    def test_unknown_theme_raises(self):
        with pytest.raises(ValueError, match="Unknown theme"):
            get_theme("sepia")

    def test_layout_uses_theme_font(self):
        assert theme_layout("dark")["font"]["color"] == THEMES["dark"]["font"]
        assert theme_layout("light")["paper_bgcolor"] == "rgba(0,0,0,0)"


class TestBarChart:
    def test_single_trace(self):
        fig = bar_chart(YEARLY, "fiscal_year", "permit_count", title="Annual", y_title="Total Permits")
        assert len(fig.data) == 1
        assert list(fig.data[0].y) == [1100, 1050, 1200]
        assert fig.layout.title.text == "Annual"

    def test_trend_and_average_overlays(self):
        fig = bar_chart(YEARLY, "fiscal_year", "permit_count", title="Annual",
                        show_trend_line=True, show_average_line=True)
        assert len(fig.data) == 3
        trend, avg = fig.data[1], fig.data[2]
        assert trend.line.color == TREND_LINE_COLOR
        assert list(trend.x) == [2021, 2023]
        assert avg.line.color == AVERAGE_LINE_COLOR
        assert list(avg.y) == pytest.approx([1116.67, 1116.67], abs=0.01)

    def test_trend_needs_two_points(self):
        fig = bar_chart(YEARLY[:1], "fiscal_year", "permit_count", title="One",
                        show_trend_line=True)
        assert len(fig.data) == 1

    def test_horizontal(self):
        rows = [{"category": "10K-100K", "value": 420}, {"category": "0-10K", "value": 320}]
        fig = bar_chart(rows, "category", "value", title="Distribution",
                        x_title="Number of Permits", orientation="h", show_trend_line=True)
        assert len(fig.data) == 1
        assert fig.data[0].orientation == "h"
        assert list(fig.data[0].x) == [420, 320]
        assert list(fig.data[0].y) == ["10K-100K", "0-10K"]
        assert fig.layout.yaxis.autorange == "reversed"

    def test_empty_rows(self):
        fig = bar_chart([], "fiscal_year", "permit_count", title="Empty",
                        show_trend_line=True, show_average_line=True)
        assert len(fig.data) == 1
        assert list(fig.data[0].x) == []


class TestLineChart:
    def test_category_axis_trend(self):
        rows = [{"period": "2023-Q1", "n": 10}, {"period": "2023-Q2", "n": 20},
                {"period": "2023-Q3", "n": 30}]
        fig = line_chart(rows, "period", "n", title="Quarterly", show_trend_line=True)
        assert fig.layout.xaxis.type == "category"
        trend = fig.data[1]
        assert list(trend.x) == ["2023-Q1", "2023-Q3"]
        assert list(trend.y) == pytest.approx([10, 30])


class TestGroupedCharts:
    ROWS = [
        {"year": 2022, "month": "Jan", "n": 80},
        {"year": 2023, "month": "Jan", "n": 95},
        {"year": 2023, "month": "Feb", "n": 85},
    ]

    def test_grouped_bar_one_trace_per_group(self):
        fig = grouped_bar_chart(self.ROWS, "year", "month", "n", title="Monthly",
                                categories=["Jan", "Feb", "Mar"])
        assert _names(fig) == ["2022", "2023"]
        assert list(fig.data[0].y) == [80, 0, 0]
        assert list(fig.data[1].y) == [95, 85, 0]
        assert fig.layout.barmode == "group"

    def test_multi_line_fills_gaps(self):
        fig = multi_line_chart(self.ROWS, "year", "month", "n", title="Trend",
                               colors=["red", "blue"])
        assert _names(fig) == ["2022", "2023"]
        assert fig.data[0].line.color == "red"
        assert list(fig.data[0].x) == ["Feb", "Jan"]
        assert list(fig.data[0].y) == [0, 80]

    def test_stacked_bar(self):
        rows = [{"year": "2023", "<$100K": 740, "$1M-$10M": 60}]
        fig = stacked_bar_chart(rows, "year", ["<$100K", "$100K-$1M", "$1M-$10M"],
                                title="Ranges")
        assert fig.layout.barmode == "stack"
        assert [list(t.y) for t in fig.data] == [[740], [0], [60]]


class TestOtherCharts:
    def test_combination_chart_secondary_axis(self):
        rows = [{"year": "2023", "count": 1200, "val": 468762}]
        fig = combination_chart(rows, "year", "count", "val", title="Volume",
                                bar_name="Permits", line_name="Average Valuation ($)",
                                line_prefix="$")
        assert fig.data[0].type == "bar"
        assert fig.data[1].yaxis == "y2"
        assert fig.layout.yaxis2.tickprefix == "$"

    def test_heatmap_orders_axes(self):
        cells = [
            {"department": "PSC", "period": "Tuesday", "value": 21},
            {"department": "LU", "period": "Monday", "value": 20},
        ]
        fig = heatmap_chart(cells, title="Workload", x_order=["Monday", "Tuesday"])
        hm = fig.data[0]
        assert list(hm.y) == ["LU", "PSC"]
        assert [list(r) for r in hm.z] == [[20, None], [None, 21]]

    def test_box_chart(self):
        series = [{"name": "LU", "values": [1, 2, 3], "color": "red"}]
        fig = box_chart(series, title="Distribution")
        assert fig.data[0].type == "box"
        assert fig.layout.showlegend is False


def test_figure_to_dict_is_json_safe():
    d = figure_to_dict(bar_chart(YEARLY, "fiscal_year", "permit_count", title="Annual"))
    assert set(d) >= {"data", "layout"}
    assert d["data"][0]["type"] == "bar"
    assert d["layout"]["title"]["text"] == "Annual"
