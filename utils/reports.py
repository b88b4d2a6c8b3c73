"""SQL report queries shared by the JSON routes, the chart builders and the pages.

Each function takes an open connection plus optional year filters and returns
plain lists of dicts. Filters are validated by ``utils.query.build_where_clause``
(an inverted year range raises ValueError, which the app maps to HTTP 400).
"""

import sqlite3
from typing import Any

from utils.calculations import (
    format_trend,
    growth_percentage,
    pivot_valuation_ranges,
    trend_direction,
    valuation_by_year,
    weekday_heatmap,
)
from utils.database import query_one, query_to_dicts
from utils.query import MONTH_ORDER_SQL, MONTHS, build_where_clause

# Box plot colours, cycled per department.
DEPARTMENT_COLORS = (
    "rgb(54, 162, 235)",
    "rgb(255, 99, 132)",
    "rgb(75, 192, 192)",
    "rgb(255, 159, 64)",
    "rgb(153, 102, 255)",
    "rgb(255, 205, 86)",
)


# ── Permits ──────────────────────────────────────────────────────────────────

def yearly_permits(conn: sqlite3.Connection, years: list[int] | None = None,
                   year_from: int | None = None, year_to: int | None = None,
                   ascending: bool = False) -> list[dict[str, Any]]:
    """Unique permits per fiscal year, newest first unless *ascending*."""
    where, params = build_where_clause("fiscal_year", years, year_from, year_to)
    direction = "ASC" if ascending else "DESC"
    return query_to_dicts(
        conn,
        f"SELECT fiscal_year, permit_count FROM unique_permits_yearly {where} "
        f"ORDER BY fiscal_year {direction}",
        params,
    )


def monthly_permits(conn: sqlite3.Connection, years: list[int] | None = None,
                    year_from: int | None = None, year_to: int | None = None,
                    ascending: bool = False) -> list[dict[str, Any]]:
    """Unique permits per month; years newest first, months in calendar order."""
    where, params = build_where_clause("year", years, year_from, year_to)
    direction = "ASC" if ascending else "DESC"
    return query_to_dicts(
        conn,
        f"SELECT year AS fiscal_year, month, permit_count FROM unique_permits_monthly "
        f"{where} ORDER BY year {direction}, {MONTH_ORDER_SQL}",
        params,
    )


def quarterly_permits(conn: sqlite3.Connection, years: list[int] | None = None,
                      year_from: int | None = None, year_to: int | None = None,
                      ascending: bool = False) -> list[dict[str, Any]]:
    where, params = build_where_clause("year", years, year_from, year_to)
    direction = "ASC" if ascending else "DESC"
    return query_to_dicts(
        conn,
        f"SELECT year AS fiscal_year, quarter, permit_count FROM unique_permits_quarterly "
        f"{where} ORDER BY year {direction}, quarter",
        params,
    )


def yearly_bins(conn: sqlite3.Connection, years: list[int] | None = None,
                year_from: int | None = None, year_to: int | None = None,
                ascending: bool = False) -> list[dict[str, Any]]:
    where, params = build_where_clause("year", years, year_from, year_to)
    direction = "ASC" if ascending else "DESC"
    return query_to_dicts(
        conn,
        f"SELECT year, bin_range, permit_count FROM unique_permits_yearly_bins "
        f"{where} ORDER BY year {direction}, bin_range",
        params,
    )


def permit_volume(conn: sqlite3.Connection, last_n: int = 5,
                  years: list[int] | None = None, year_from: int | None = None,
                  year_to: int | None = None) -> list[dict[str, Any]]:
    """Permit count and average valuation for the last *last_n* fiscal years.

    Years are returned oldest first with ``year`` as text so charts treat
    the axis as categories.
    """
    recent = yearly_permits(conn, years, year_from, year_to, ascending=True)[-last_n:]
    valuations = valuation_by_year(yearly_bins(conn))
    return [
        {
            "year": str(r["fiscal_year"]),
            "permit_count": r["permit_count"],
            "avg_valuation": valuations.get(r["fiscal_year"], 0),
        }
        for r in recent
    ]


def valuation_ranges(conn: sqlite3.Connection, last_n: int = 5,
                     years: list[int] | None = None, year_from: int | None = None,
                     year_to: int | None = None) -> list[dict[str, Any]]:
    """Permits per display valuation bucket for the last *last_n* bin years."""
    bins = yearly_bins(conn, years, year_from, year_to, ascending=True)
    bin_years = sorted({b["year"] for b in bins})[-last_n:]
    return pivot_valuation_ranges(bins, bin_years)


def permit_distribution(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Permits per valuation range in the latest bin year, largest first."""
    return query_to_dicts(
        conn,
        "SELECT bin_range AS category, SUM(permit_count) AS value "
        "FROM unique_permits_yearly_bins "
        "WHERE year = (SELECT MAX(year) FROM unique_permits_yearly_bins) "
        "GROUP BY bin_range ORDER BY value DESC, bin_range",
    )


# ── Departments ──────────────────────────────────────────────────────────────

def department_activity(conn: sqlite3.Connection, years: list[int] | None = None,
                        year_from: int | None = None, year_to: int | None = None,
                        departments: list[str] | None = None) -> list[dict[str, Any]]:
    """Annual activity rows, newest year first then by department."""
    where, params = build_where_clause(
        "year", years, year_from, year_to, departments, department_column="department",
    )
    return query_to_dicts(
        conn,
        f"SELECT year, activity_count, department FROM department_activity {where} "
        "ORDER BY year DESC, department",
        params,
    )


def department_weekday(conn: sqlite3.Connection, years: list[int] | None = None,
                       year_from: int | None = None, year_to: int | None = None,
                       departments: list[str] | None = None) -> list[dict[str, Any]]:
    where, params = build_where_clause(
        "year", years, year_from, year_to, departments, department_column="department",
    )
    return query_to_dicts(
        conn,
        "SELECT year, monday, tuesday, wednesday, thursday, friday, department "
        f"FROM department_activity_weekday {where} ORDER BY year DESC, department",
        params,
    )


def department_exists(conn: sqlite3.Connection, department: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM department_activity WHERE department = ? "
        "UNION SELECT 1 FROM department_activity_weekday WHERE department = ? LIMIT 1",
        (department, department),
    ).fetchone()
    return row is not None


def list_departments(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Every department with its total activity and first/last year."""
    return query_to_dicts(
        conn,
        "SELECT department, SUM(activity_count) AS total_activity, "
        "MIN(year) AS first_year, MAX(year) AS last_year "
        "FROM department_activity GROUP BY department ORDER BY department",
    )


def department_workload(conn: sqlite3.Connection, years: list[int] | None = None,
                        year_from: int | None = None, year_to: int | None = None,
                        departments: list[str] | None = None) -> list[dict[str, Any]]:
    """Weekday share rows flattened into heatmap cells."""
    return weekday_heatmap(department_weekday(conn, years, year_from, year_to, departments))


def department_distribution(conn: sqlite3.Connection, years: list[int] | None = None,
                            year_from: int | None = None, year_to: int | None = None,
                            departments: list[str] | None = None) -> list[dict[str, Any]]:
    """Per-department activity series for box plots, oldest year first."""
    where, params = build_where_clause(
        "year", years, year_from, year_to, departments, department_column="department",
    )
    rows = query_to_dicts(
        conn,
        f"SELECT department, activity_count FROM department_activity {where} "
        "ORDER BY department, year",
        params,
    )
    series: dict[str, list[int]] = {}
    for r in rows:
        series.setdefault(r["department"], []).append(r["activity_count"])
    return [
        {"name": name, "values": values, "color": DEPARTMENT_COLORS[i % len(DEPARTMENT_COLORS)]}
        for i, (name, values) in enumerate(series.items())
    ]


# ── Dashboard ────────────────────────────────────────────────────────────────

def dashboard_summary(conn: sqlite3.Connection) -> dict[str, Any]:
    total = conn.execute(
        "SELECT COALESCE(SUM(permit_count), 0) FROM unique_permits_yearly"
    ).fetchone()[0]
    latest = query_one(
        conn,
        "SELECT fiscal_year, permit_count FROM unique_permits_yearly "
        "ORDER BY fiscal_year DESC LIMIT 1",
    )
    totals = query_to_dicts(
        conn,
        "SELECT department, SUM(activity_count) AS total_activity "
        "FROM department_activity GROUP BY department ORDER BY department",
    )
    return {"total_permits": total, "latest_year": latest, "department_totals": totals}


_YOY_SQL = """
WITH yoy AS (
    SELECT fiscal_year,
           permit_count,
           LAG(permit_count) OVER (ORDER BY fiscal_year) AS prev_year_count
    FROM unique_permits_yearly
)
SELECT fiscal_year,
       permit_count,
       prev_year_count,
       CASE WHEN prev_year_count = 0 THEN NULL
            ELSE ROUND(((permit_count - prev_year_count) * 1.0 / prev_year_count) * 100, 2)
       END AS growth_percentage
FROM yoy
WHERE prev_year_count IS NOT NULL
ORDER BY fiscal_year DESC
LIMIT 1
"""


def dashboard_kpis(conn: sqlite3.Connection) -> dict[str, Any]:
    """Year-over-year growth, average monthly permits and the busiest department."""
    yoy = query_one(conn, _YOY_SQL)
    avg_monthly = conn.execute(
        "SELECT ROUND(AVG(permit_count), 2) FROM unique_permits_monthly "
        "WHERE year = (SELECT MAX(year) FROM unique_permits_monthly)"
    ).fetchone()[0]
    most_active = query_one(
        conn,
        "SELECT department, SUM(activity_count) AS total_activity "
        "FROM department_activity GROUP BY department "
        "ORDER BY total_activity DESC, department LIMIT 1",
    )
    return {
        "year_over_year_growth": yoy,
        "avg_monthly_permits": avg_monthly,
        "most_active_department": most_active,
    }


def dashboard_trends(conn: sqlite3.Connection, years: int = 5) -> dict[str, Any]:
    """Latest *years* yearly rows plus department rows within the same window."""
    yearly = query_to_dicts(
        conn,
        "SELECT fiscal_year, permit_count FROM unique_permits_yearly "
        "ORDER BY fiscal_year DESC LIMIT ?",
        (years,),
    )
    departments = query_to_dicts(
        conn,
        "SELECT year, activity_count, department FROM department_activity "
        "WHERE year >= (SELECT MAX(year) FROM department_activity) - ? "
        "ORDER BY year DESC, department",
        (years - 1,),
    )
    return {"yearly_trend": yearly, "department_trends": departments}


def _card(value: Any, pct: float | None, sparkline: list) -> dict[str, Any]:
    return {
        "value": value,
        "trend": trend_direction(pct),
        "trend_value": format_trend(pct),
        "sparkline": sparkline,
    }


def dashboard_overview(conn: sqlite3.Connection, last_n: int = 5) -> dict[str, Any] | None:
    """KPI cards for the dashboard landing page.

    Returns None when fewer than two fiscal years are loaded, since every
    card compares the latest year with the one before it.
    """
    recent = yearly_permits(conn, ascending=True)[-last_n:]
    if len(recent) < 2:
        return None
    current, previous = recent[-1], recent[-2]
    permits_pct = growth_percentage(current["permit_count"], previous["permit_count"], 1) or 0.0

    valuations = valuation_by_year(yearly_bins(conn))
    val_current = valuations.get(current["fiscal_year"], 0)
    val_previous = valuations.get(previous["fiscal_year"], 0)
    valuation_pct = growth_percentage(val_current, val_previous, 1) or 0.0

    activity = query_to_dicts(
        conn,
        "SELECT year, SUM(activity_count) AS total FROM department_activity "
        "GROUP BY year ORDER BY year",
    )
    by_year = {r["year"]: r["total"] for r in activity}
    latest_activity_year = activity[-1]["year"] if activity else None
    act_current = by_year.get(latest_activity_year, 0)
    act_previous = by_year.get(latest_activity_year - 1, 0) if activity else 0
    activity_pct = growth_percentage(act_current, act_previous, 1) or 0.0

    months = {
        r["month"]: r["permit_count"]
        for r in monthly_permits(conn, years=[current["fiscal_year"]])
    }
    month_spark = [months[m] for m in MONTHS if m in months][-6:]

    return {
        "latest_year": current["fiscal_year"],
        "total_permits": _card(
            current["permit_count"], permits_pct, [r["permit_count"] for r in recent],
        ),
        "avg_valuation": _card(
            val_current, valuation_pct, [valuations.get(r["fiscal_year"], 0) for r in recent],
        ),
        "dept_activity": _card(
            act_current, activity_pct, [r["total"] for r in activity[-last_n:]],
        ),
        "monthly_trend": _card(
            "Increasing" if permits_pct >= 0 else "Decreasing", permits_pct, month_spark,
        ),
    }
