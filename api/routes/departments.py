"""
Department endpoints.

GET /api/v1/departments                        every department with totals
GET /api/v1/departments/activity               annual activity rows
GET /api/v1/departments/activity/weekday       weekday share rows
GET /api/v1/departments/activity/{department}  activity rows for one department
GET /api/v1/departments/workload               weekday shares as heatmap cells
GET /api/v1/departments/distribution           activity series per department
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException

from api.database import get_db
from api.models import (
    DepartmentActivityOut,
    DepartmentOut,
    DepartmentSeriesOut,
    DepartmentWeekdayOut,
    WorkloadCellOut,
)
from api.params import DepartmentFilters, YearFilters
from utils import reports

router = APIRouter(prefix="/departments", tags=["departments"])


@router.get("", response_model=list[DepartmentOut], summary="List departments")
def list_departments(conn: sqlite3.Connection = Depends(get_db)) -> list[dict]:
    return reports.list_departments(conn)


@router.get("/activity", response_model=list[DepartmentActivityOut],
            summary="Annual activity per department")
def get_department_activity(
    filters: DepartmentFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    return reports.department_activity(conn, **filters.kwargs())


@router.get("/activity/weekday", response_model=list[DepartmentWeekdayOut],
            summary="Weekday distribution of department activity")
def get_department_weekday(
    filters: DepartmentFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    """Weekday shares (0..1) per department and year. Missing shares are null."""
    return reports.department_weekday(conn, **filters.kwargs())


@router.get("/activity/{department}", response_model=list[DepartmentActivityOut],
            summary="Activity for one department")
def get_single_department(
    department: str,
    filters: YearFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    """Annual activity rows for *department*, newest year first.

    Raises 404 when the department appears in neither activity table.
    """
    if not reports.department_exists(conn, department):
        raise HTTPException(status_code=404, detail=f"Department '{department}' not found")
    return reports.department_activity(conn, departments=[department], **filters.kwargs())


@router.get("/workload", response_model=list[WorkloadCellOut],
            summary="Department workload heatmap cells")
def get_department_workload(
    filters: DepartmentFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    return reports.department_workload(conn, **filters.kwargs())


@router.get("/distribution", response_model=list[DepartmentSeriesOut],
            summary="Activity distribution per department")
def get_department_distribution(
    filters: DepartmentFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    return reports.department_distribution(conn, **filters.kwargs())
