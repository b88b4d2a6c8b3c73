"""Dashboard endpoints for the overview page."""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db, get_db_path
from api.models import DashboardKpis, DashboardOverview, DashboardSummary, DashboardTrends
from utils import reports
from utils.cache import TTLCache, make_key
from utils.config import AppConfig

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

_summary_cache: TTLCache = TTLCache(maxsize=32, ttl_seconds=AppConfig.from_env().cache_ttl)


def _cached(prefix: str, factory, **params):
    # The database path is part of every key so apps pointed at different
    # files never share entries.
    key = make_key(prefix, db=str(get_db_path()), **params)
    return _summary_cache.get_or_set(key, factory)


@router.get("/summary", response_model=DashboardSummary, summary="Dashboard summary statistics")
def dashboard_summary(conn: sqlite3.Connection = Depends(get_db)) -> dict:
    """Total permits across all years, the latest fiscal year and per-department totals."""
    return _cached("summary", lambda: reports.dashboard_summary(conn))


@router.get("/kpis", response_model=DashboardKpis, summary="Key performance indicators")
def dashboard_kpis(conn: sqlite3.Connection = Depends(get_db)) -> dict:
    """Return the headline KPIs.

    - ``year_over_year_growth``: latest fiscal year against the one before it;
      ``growth_percentage`` is null when the prior year had zero permits and
      the whole object is null with fewer than two years loaded
    - ``avg_monthly_permits``: mean monthly count in the latest monthly year
    - ``most_active_department``: highest total activity, ties broken by name
    """
    return _cached("kpis", lambda: reports.dashboard_kpis(conn))


@router.get("/trends", response_model=DashboardTrends, summary="Recent permit and department trends")
def dashboard_trends(
    years: int = Query(5, ge=1, le=50, description="Number of most recent years"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    return _cached("trends", lambda: reports.dashboard_trends(conn, years), years=years)


@router.get("/overview", response_model=DashboardOverview, summary="KPI cards with sparklines")
def dashboard_overview(conn: sqlite3.Connection = Depends(get_db)) -> dict:
    """KPI cards comparing the latest fiscal year with the previous one.

    Returns 404 until at least two fiscal years have been imported.
    """
    overview = _cached("overview", lambda: reports.dashboard_overview(conn))
    if overview is None:
        raise HTTPException(
            status_code=404,
            detail="At least two fiscal years of permit data are required for the overview",
        )
    return overview
