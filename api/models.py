"""
Pydantic response models for the API.

Optional fields default to None so that partial responses stay valid when
a table is empty or a database column is NULL. Field() descriptions and
examples feed the OpenAPI docs.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# ── Permit models ─────────────────────────────────────────────────────────────

class YearlyPermitOut(BaseModel):
    """Unique permits issued in one fiscal year."""
    fiscal_year: int = Field(..., description="Fiscal year", examples=[2023])
    permit_count: int = Field(..., description="Unique permits in the fiscal year", examples=[1250])


class MonthlyPermitOut(BaseModel):
    """Unique permits issued in one month."""
    fiscal_year: int = Field(..., description="Fiscal year the month belongs to", examples=[2023])
    month: str = Field(..., description="Three-letter month label", examples=["Jan"])
    permit_count: int = Field(..., description="Unique permits in the month", examples=[104])


class QuarterlyPermitOut(BaseModel):
    """Unique permits issued in one fiscal quarter."""
    fiscal_year: int = Field(..., description="Fiscal year", examples=[2023])
    quarter: str = Field(..., description="Fiscal quarter number as text", examples=["1"])
    permit_count: int = Field(..., description="Unique permits in the quarter", examples=[312])


class YearlyBinOut(BaseModel):
    """Unique permits in one valuation range for one year."""
    year: int = Field(..., description="Fiscal year", examples=[2023])
    bin_range: str = Field(..., description="Valuation range label", examples=["100K-1M"])
    permit_count: int = Field(..., description="Unique permits in the range", examples=[87])


class PermitVolumeOut(BaseModel):
    """Permit volume and average valuation for one year (combination chart)."""
    year: str = Field(..., description="Fiscal year as text (category axis)", examples=["2023"])
    permit_count: int = Field(..., description="Unique permits in the year", examples=[1250])
    avg_valuation: int = Field(..., description="Count-weighted mean of bin midpoints in dollars", examples=[425000])


class PermitDistributionOut(BaseModel):
    """Permits per valuation range for the latest year."""
    category: str = Field(..., description="Valuation range label", examples=["10K-100K"])
    value: int = Field(..., description="Unique permits in the range", examples=[512])


# ── Department models ─────────────────────────────────────────────────────────

class DepartmentActivityOut(BaseModel):
    """Annual activity count of one department."""
    year: int = Field(..., description="Fiscal year", examples=[2023])
    activity_count: int = Field(..., description="Activities recorded", examples=[845])
    department: str = Field(..., description="Department code", examples=["PSC"])


class DepartmentWeekdayOut(BaseModel):
    """Share of a department's annual activity falling on each weekday (0..1)."""
    year: int = Field(..., examples=[2023])
    monday: float | None = Field(None, examples=[0.22])
    tuesday: float | None = Field(None, examples=[0.21])
    wednesday: float | None = Field(None, examples=[0.2])
    thursday: float | None = Field(None, examples=[0.19])
    friday: float | None = Field(None, examples=[0.18])
    department: str = Field(..., examples=["PSC"])


class DepartmentOut(BaseModel):
    """A department with its total activity across all years."""
    department: str = Field(..., examples=["PSC"])
    total_activity: int = Field(..., description="Sum of activity_count", examples=[4210])
    first_year: int | None = Field(None, examples=[2019])
    last_year: int | None = Field(None, examples=[2023])


class WorkloadCellOut(BaseModel):
    """One heatmap cell: a department's weekday share as a percentage."""
    department: str = Field(..., examples=["PSC"])
    period: str = Field(..., description="Capitalised weekday", examples=["Monday"])
    year: int = Field(..., examples=[2023])
    value: int = Field(..., description="Share of activity, 0-100", examples=[22])


class DepartmentSeriesOut(BaseModel):
    """Activity counts of one department across years (box plot series)."""
    name: str = Field(..., examples=["PSC"])
    values: list[int] = Field(..., examples=[[780, 812, 845]])
    color: str = Field(..., examples=["rgb(54, 162, 235)"])


# ── Dashboard models ──────────────────────────────────────────────────────────

class DepartmentTotalOut(BaseModel):
    department: str = Field(..., examples=["PSC"])
    total_activity: int = Field(..., examples=[4210])


class DashboardSummary(BaseModel):
    """Response body for GET /api/v1/dashboard/summary."""
    total_permits: int = Field(..., description="Sum of permit_count over all fiscal years", examples=[6120])
    latest_year: YearlyPermitOut | None = Field(None, description="Most recent fiscal year row")
    department_totals: list[DepartmentTotalOut] = Field(..., description="Total activity per department")


class YearOverYearGrowth(BaseModel):
    fiscal_year: int = Field(..., examples=[2023])
    permit_count: int = Field(..., examples=[1250])
    prev_year_count: int = Field(..., examples=[1152])
    growth_percentage: float | None = Field(
        None, description="Percent change from the prior year, 2 decimals; null when the prior count is 0",
        examples=[8.51],
    )


class DashboardKpis(BaseModel):
    """Response body for GET /api/v1/dashboard/kpis."""
    year_over_year_growth: YearOverYearGrowth | None = None
    avg_monthly_permits: float | None = Field(
        None, description="Average monthly permits in the latest year with monthly data", examples=[104.17],
    )
    most_active_department: DepartmentTotalOut | None = None


class DashboardTrends(BaseModel):
    """Response body for GET /api/v1/dashboard/trends."""
    yearly_trend: list[YearlyPermitOut]
    department_trends: list[DepartmentActivityOut]


class KpiCard(BaseModel):
    """One dashboard KPI card."""
    value: int | float | str = Field(..., examples=[1250])
    trend: str = Field(..., description="'up' or 'down'", examples=["up"])
    trend_value: str = Field(..., description="Signed percent change", examples=["+8.5%"])
    sparkline: list[int | float] = Field(..., examples=[[980, 1050, 1100, 1150, 1250]])


class DashboardOverview(BaseModel):
    """Response body for GET /api/v1/dashboard/overview."""
    latest_year: int = Field(..., examples=[2023])
    total_permits: KpiCard
    avg_valuation: KpiCard
    dept_activity: KpiCard
    monthly_trend: KpiCard


# ── Dataset / chart catalog models ────────────────────────────────────────────

class ColumnOut(BaseModel):
    key: str = Field(..., examples=["fiscal_year"])
    label: str = Field(..., examples=["Fiscal Year"])
    sortable: bool = True


class DatasetOut(BaseModel):
    """A tabular dataset available to the table views and downloads."""
    name: str = Field(..., examples=["annual-permits"])
    label: str = Field(..., examples=["Annual Unique Permits"])
    description: str | None = None
    columns: list[ColumnOut]
    default_sort: str = Field(..., examples=["fiscal_year"])


class DatasetPage(BaseModel):
    """One sorted, filtered page of a dataset."""
    dataset: str = Field(..., examples=["annual-permits"])
    total: int = Field(..., description="Matching rows before pagination", examples=[5])
    limit: int = Field(..., examples=[25])
    offset: int = Field(..., examples=[0])
    sort_by: str = Field(..., examples=["fiscal_year"])
    sort_dir: str = Field(..., examples=["desc"])
    columns: list[str]
    items: list[dict[str, Any]]


class ChartOut(BaseModel):
    name: str = Field(..., examples=["annual-permits"])
    title: str = Field(..., examples=["Annual Permit Volume"])
    description: str | None = None


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Short error category", examples=["Bad request"])
    detail: str | None = Field(None, description="Extended error detail")
    status_code: int = Field(..., ge=400, le=599, description="HTTP status code", examples=[400])
