"""
Dataset endpoints backing the sortable, paginated report tables.

GET /api/v1/datasets          catalog of tabular datasets
GET /api/v1/datasets/{name}   one sorted, filtered page of a dataset
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import DatasetOut, DatasetPage
from api.params import DepartmentFilters
from utils.datasets import TABLE_DATASETS, Dataset, TableQuery, fetch_page, get_dataset

router = APIRouter(prefix="/datasets", tags=["datasets"])


def resolve_dataset(name: str) -> Dataset:
    try:
        return get_dataset(name)
    except KeyError:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown dataset '{name}'. Available: {', '.join(TABLE_DATASETS)}",
        ) from None


def build_table_query(
    dataset: Dataset,
    sort_by: str | None,
    sort_dir: str | None,
    filters: DepartmentFilters,
    columns: list[str] | None = None,
) -> TableQuery:
    """Build a TableQuery, turning invalid sort/column choices into HTTP 400."""
    try:
        return TableQuery(
            dataset,
            sort_by=sort_by,
            sort_dir=sort_dir,
            departments=filters.departments if dataset.department_column else None,
            columns=columns,
            **{k: v for k, v in filters.kwargs().items() if k != "departments"},
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None


@router.get("", response_model=list[DatasetOut], summary="List tabular datasets")
def list_datasets() -> list[dict]:
    return [d.to_dict() for d in TABLE_DATASETS.values()]


@router.get("/{name}", response_model=DatasetPage, summary="Page through a dataset")
def get_dataset_page(
    name: str,
    sort_by: str | None = Query(None, description="Column to sort by (must be sortable)"),
    sort_dir: str | None = Query(None, pattern="^(asc|desc)$", description="Sort direction"),
    limit: int = Query(25, ge=1, le=500, description="Rows per page"),
    offset: int = Query(0, ge=0, description="Rows to skip"),
    filters: DepartmentFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Return ``{dataset, total, limit, offset, sort_by, sort_dir, columns, items}``.

    ``department`` filters are ignored for datasets without a department column.
    """
    dataset = resolve_dataset(name)
    query = build_table_query(dataset, sort_by, sort_dir, filters)
    return fetch_page(conn, query, limit=limit, offset=offset)
