"""
Chart endpoints: Plotly figure JSON for the dashboard and report pages.

GET /api/v1/charts          list available charts
GET /api/v1/charts/{name}   figure ``{"data": [...], "layout": {...}}``

Figures are rendered in the browser with ``Plotly.newPlot``. Query
parameters: ``theme`` (light|dark), ``trend_line``, ``average_line`` and the
usual ``year`` / ``year_from`` / ``year_to`` / ``department`` filters.
"""

import sqlite3
from dataclasses import dataclass
from typing import Any, Callable

import plotly.graph_objects as go
from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import ChartOut
from api.params import DepartmentFilters
from utils import charts, reports
from utils.calculations import VALUATION_MIDPOINTS, VALUATION_RANGE_ORDER, WEEKDAYS
from utils.query import MONTHS

router = APIRouter(prefix="/charts", tags=["charts"])


@dataclass
class ChartRequest:
    theme: str
    trend_line: bool
    average_line: bool
    filters: DepartmentFilters

    def years_kwargs(self) -> dict[str, Any]:
        return {
            "years": self.filters.years,
            "year_from": self.filters.year_from,
            "year_to": self.filters.year_to,
        }


ChartBuilder = Callable[[sqlite3.Connection, ChartRequest], go.Figure]


@dataclass(frozen=True)
class ChartEntry:
    name: str
    title: str
    description: str
    build: ChartBuilder


CHARTS: dict[str, ChartEntry] = {}


def _register(name: str, title: str, description: str = ""):
    def decorator(fn: ChartBuilder) -> ChartBuilder:
        CHARTS[name] = ChartEntry(name, title, description, fn)
        return fn
    return decorator


def annual_chart_title(selected: int) -> str:
    """Title for the annual chart given how many years the user selected."""
    if selected == 0:
        return "Annual Permit Volume for All Years"
    if selected == 1:
        return "Annual Permit Volume for Selected Year"
    return f"Annual Permit Volume for {selected} Selected Years"


def monthly_chart_title(years: list[int]) -> str:
    """``Monthly Permit Volume`` qualified by the fiscal years on the chart."""
    title = "Monthly Permit Volume"
    unique = sorted(set(years))
    if len(unique) == 1:
        title += f" for FY {unique[0]}"
    elif 1 < len(unique) <= 3:
        title += " for FY " + ", ".join(str(y) for y in unique)
    elif len(unique) > 3:
        title += " for Selected Years"
    return title


# ── Permit charts ────────────────────────────────────────────────────────────

@_register("annual-permits", "Annual Permit Volume", "Unique permits per fiscal year")
def _annual_permits(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.yearly_permits(conn, ascending=True, **req.years_kwargs())
    selected = len(set(req.filters.years)) if req.filters.years else 0
    return charts.bar_chart(
        rows, "fiscal_year", "permit_count",
        title=annual_chart_title(selected),
        x_title="Fiscal Year", y_title="Total Permits", theme=req.theme,
        show_trend_line=req.trend_line, show_average_line=req.average_line,
    )


@_register("monthly-permits", "Monthly Permit Volume", "Monthly permits grouped by fiscal year")
def _monthly_permits(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.monthly_permits(conn, ascending=True, **req.years_kwargs())
    return charts.grouped_bar_chart(
        rows, "fiscal_year", "month", "permit_count",
        title=monthly_chart_title([r["fiscal_year"] for r in rows]),
        x_title="Fiscal Month", y_title="Permit Volume", theme=req.theme,
        categories=MONTHS,
    )


@_register("monthly-trend", "Monthly Trend (Last 3 Years)",
           "Month-by-month permit volume over the three most recent years")
def _monthly_trend(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.monthly_permits(conn, ascending=True, **req.years_kwargs())
    recent = sorted({r["fiscal_year"] for r in rows})[-3:]
    points = [
        {"period": f"{r['month']} {r['fiscal_year']}", "permit_count": r["permit_count"]}
        for r in rows if r["fiscal_year"] in recent
    ]
    return charts.line_chart(
        points, "period", "permit_count",
        title="Permit Volume by Unique Permit Numbers: Monthly Trend (Last 3 Years)",
        x_title="Month", y_title="Permit Volume", theme=req.theme,
        show_trend_line=req.trend_line, show_average_line=req.average_line,
    )


@_register("quarterly-permits", "Quarterly Trend of Unique Permits", "Unique permits per fiscal quarter")
def _quarterly_permits(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.quarterly_permits(conn, ascending=True, **req.years_kwargs())
    points = [
        {"period": f"{r['fiscal_year']}-Q{r['quarter']}", "permit_count": r["permit_count"]}
        for r in rows
    ]
    return charts.line_chart(
        points, "period", "permit_count",
        title="Quarterly Trend of Unique Permits",
        y_title="Unique Permits", theme=req.theme,
        show_trend_line=req.trend_line, show_average_line=req.average_line,
    )


@_register("valuation-bins", "Permit Volume by Valuation Threshold",
           "Unique permits per valuation range, one series per year")
def _valuation_bins(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.yearly_bins(conn, ascending=True, **req.years_kwargs())
    present = {r["bin_range"] for r in rows}
    categories = [b for b in VALUATION_MIDPOINTS if b in present]
    categories += sorted(present - set(categories))
    return charts.grouped_bar_chart(
        rows, "year", "bin_range", "permit_count",
        title="Permit Volume by Unique Permit Numbers: Binned by Valuation Thresholds",
        x_title="Valuation Range", y_title="Permit Volume", theme=req.theme,
        categories=categories,
    )


@_register("permit-volume", "Permit Volume and Average Valuation",
           "Permits per year with the average valuation on a second axis")
def _permit_volume(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.permit_volume(conn, 5, **req.years_kwargs())
    return charts.combination_chart(
        rows, "year", "permit_count", "avg_valuation",
        title="Permit Volume and Average Valuation",
        bar_name="Number of Permits", line_name="Average Valuation ($)",
        x_title="Year", theme=req.theme, line_prefix="$",
    )


@_register("valuation-ranges", "Permits by Valuation Range",
           "Stacked permit counts per valuation bucket for recent years")
def _valuation_ranges(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.valuation_ranges(conn, 5, **req.years_kwargs())
    return charts.stacked_bar_chart(
        rows, "year", VALUATION_RANGE_ORDER,
        title="Permits by Valuation Range", x_title="Year", y_title="Permits",
        theme=req.theme,
    )


@_register("permit-distribution", "Permit Distribution by Category",
           "Latest-year permits per valuation range as horizontal bars")
def _permit_distribution(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.permit_distribution(conn)
    return charts.bar_chart(
        rows, "category", "value",
        title="Permit Distribution by Category",
        x_title="Number of Permits", y_title="Category", theme=req.theme,
        color="#3B82F6", orientation="h",
    )


# ── Department charts ────────────────────────────────────────────────────────

@_register("department-activity", "Department Activity by Year", "Annual activity per department")
def _department_activity(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = reports.department_activity(conn, **req.filters.kwargs())
    title = "Department Activity by Year"
    if req.filters.departments and len(req.filters.departments) == 1:
        title = f"{req.filters.departments[0]} Activity by Year"
    return charts.grouped_bar_chart(
        rows, "department", "year", "activity_count",
        title=title, x_title="Fiscal Year", y_title="Activity Count",
        theme=req.theme, categories=sorted({r["year"] for r in rows}),
    )


@_register("department-trends", "Department Activity Trends", "Activity trend lines per department")
def _department_trends(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    rows = sorted(reports.department_activity(conn, **req.filters.kwargs()),
                  key=lambda r: (r["department"], r["year"]))
    return charts.multi_line_chart(
        rows, "department", "year", "activity_count",
        title="Department Activity Trends", x_title="Fiscal Year",
        y_title="Activity Count", theme=req.theme, colors=reports.DEPARTMENT_COLORS,
    )


@_register("department-workload", "Department Workload by Weekday",
           "Share of each department's activity per weekday in the latest selected year")
def _department_workload(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    cells = reports.department_workload(conn, **req.filters.kwargs())
    title = "Department Workload by Weekday"
    if cells:
        latest = max(c["year"] for c in cells)
        cells = [c for c in cells if c["year"] == latest]
        title += f" (FY {latest})"
    return charts.heatmap_chart(
        cells, title=title, x_order=[d.capitalize() for d in WEEKDAYS], theme=req.theme,
    )


@_register("department-distribution", "Department Workload Distribution",
           "Spread of annual activity counts per department")
def _department_distribution(conn: sqlite3.Connection, req: ChartRequest) -> go.Figure:
    series = reports.department_distribution(conn, **req.filters.kwargs())
    return charts.box_chart(
        series, title="Department Workload Distribution",
        y_title="Activity Count", theme=req.theme,
    )


def build_chart(conn: sqlite3.Connection, name: str, req: ChartRequest) -> dict[str, Any]:
    """Build chart *name* and return its JSON-safe figure dict.

    Raises KeyError for unknown chart names.
    """
    fig = CHARTS[name].build(conn, req)
    return charts.figure_to_dict(fig)


# ── Routes ───────────────────────────────────────────────────────────────────

@router.get("", response_model=list[ChartOut], summary="List available charts")
def list_charts() -> list[dict]:
    return [
        {"name": c.name, "title": c.title, "description": c.description or None}
        for c in CHARTS.values()
    ]


@router.get("/{name}", summary="Plotly figure for one chart")
def get_chart(
    name: str,
    theme: str = Query("light", pattern="^(light|dark)$", description="Colour theme"),
    trend_line: bool = Query(False, description="Overlay the least-squares trend line"),
    average_line: bool = Query(False, description="Overlay the mean value"),
    filters: DepartmentFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    if name not in CHARTS:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown chart '{name}'. Available: {', '.join(CHARTS)}",
        )
    req = ChartRequest(theme, trend_line, average_line, filters)
    return build_chart(conn, name, req)
