"""
Permit endpoints: yearly, monthly, quarterly and valuation-bin counts.

GET /api/v1/permits/yearly            fiscal_year DESC
GET /api/v1/permits/monthly           year DESC, months in calendar order
GET /api/v1/permits/quarterly         year DESC, quarter
GET /api/v1/permits/yearly-bins       year DESC, bin_range
GET /api/v1/permits/volume            last N years with average valuation
GET /api/v1/permits/valuation-ranges  last N bin years pivoted into display buckets
GET /api/v1/permits/distribution      latest bin year, largest range first

Every endpoint accepts ``year`` (repeatable), ``year_from`` and ``year_to``.
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import (
    MonthlyPermitOut,
    PermitDistributionOut,
    PermitVolumeOut,
    QuarterlyPermitOut,
    YearlyBinOut,
    YearlyPermitOut,
)
from api.params import YearFilters
from utils import reports

router = APIRouter(prefix="/permits", tags=["permits"])


@router.get("/yearly", response_model=list[YearlyPermitOut], summary="Unique permits per fiscal year")
def get_yearly_permits(
    filters: YearFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    return reports.yearly_permits(conn, **filters.kwargs())


@router.get("/monthly", response_model=list[MonthlyPermitOut], summary="Unique permits per month")
def get_monthly_permits(
    filters: YearFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    """Monthly counts, newest year first; months within a year run Jan to Dec."""
    return reports.monthly_permits(conn, **filters.kwargs())


@router.get("/quarterly", response_model=list[QuarterlyPermitOut], summary="Unique permits per quarter")
def get_quarterly_permits(
    filters: YearFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    return reports.quarterly_permits(conn, **filters.kwargs())


@router.get("/yearly-bins", response_model=list[YearlyBinOut], summary="Unique permits per valuation range")
def get_yearly_bins(
    filters: YearFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    return reports.yearly_bins(conn, **filters.kwargs())


@router.get("/volume", response_model=list[PermitVolumeOut], summary="Permit volume with average valuation")
def get_permit_volume(
    years: int = Query(5, ge=1, le=50, description="Number of most recent fiscal years"),
    filters: YearFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    """Permit counts for the last *years* fiscal years, oldest first.

    ``avg_valuation`` is the count-weighted mean of each valuation bin's
    midpoint (0 when a year has no bin data).
    """
    return reports.permit_volume(conn, years, **filters.kwargs())


@router.get("/valuation-ranges", summary="Permits per valuation bucket per year")
def get_valuation_ranges(
    years: int = Query(5, ge=1, le=50, description="Number of most recent bin years"),
    filters: YearFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    """One object per year, e.g. ``{"year": "2023", "<$100K": 640, "$100K-$1M": 210}``.

    The two smallest bins are combined into ``<$100K``.
    """
    return reports.valuation_ranges(conn, years, **filters.kwargs())


@router.get("/distribution", response_model=list[PermitDistributionOut],
            summary="Latest-year permits per valuation range")
def get_permit_distribution(conn: sqlite3.Connection = Depends(get_db)) -> list[dict]:
    return reports.permit_distribution(conn)
