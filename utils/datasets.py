"""Registry of the tabular datasets behind the report tables and downloads.

A dataset names a table, the columns shown for it, which of them can be
sorted, and how year/department filters map onto its columns. The table
views (``/api/v1/datasets``), the report pages and the download route all
page through data with :func:`fetch_page` / :func:`iter_rows`.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Iterator

from utils.database import query_to_dicts
from utils.query import MONTH_ORDER_SQL, build_order_clause, build_where_clause


@dataclass(frozen=True)
class Column:
    key: str
    label: str
    expr: str = ""             # SELECT expression; defaults to key
    sortable: bool = True
    sort_expr: str = ""        # ORDER BY expression; defaults to key

    @property
    def select_sql(self) -> str:
        return f"{self.expr} AS {self.key}" if self.expr else self.key

    @property
    def order_sql(self) -> str:
        return self.sort_expr or self.key


@dataclass(frozen=True)
class Dataset:
    name: str
    label: str
    table: str
    columns: tuple[Column, ...]
    default_sort: str
    default_dir: str = "desc"
    year_column: str = "year"
    department_column: str | None = None
    tiebreak: str = ""
    description: str = ""
    file_stem: str = ""

    @property
    def column_keys(self) -> list[str]:
        return [c.key for c in self.columns]

    @property
    def sortable(self) -> dict[str, str]:
        return {c.key: c.order_sql for c in self.columns if c.sortable}

    def column(self, key: str) -> Column:
        for c in self.columns:
            if c.key == key:
                return c
        raise KeyError(key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description or None,
            "columns": [
                {"key": c.key, "label": c.label, "sortable": c.sortable}
                for c in self.columns
            ],
            "default_sort": self.default_sort,
        }


_WEEKDAY_COLUMNS = tuple(
    Column(day, day.capitalize()) for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
)

TABLE_DATASETS: dict[str, Dataset] = {
    d.name: d for d in (
        Dataset(
            name="annual-permits",
            label="Annual Unique Permits",
            table="unique_permits_yearly",
            columns=(
                Column("fiscal_year", "Fiscal Year"),
                Column("permit_count", "Total Permits"),
                Column("avg_per_month", "Avg Permits / Month",
                       expr="ROUND(permit_count / 12.0, 2)", sort_expr="permit_count"),
            ),
            default_sort="fiscal_year",
            year_column="fiscal_year",
            description="Unique permits issued per fiscal year",
            file_stem="AnnualPermitReport",
        ),
        Dataset(
            name="monthly-permits",
            label="Monthly Unique Permits",
            table="unique_permits_monthly",
            columns=(
                Column("fiscal_year", "Fiscal Year", expr="year", sort_expr="year"),
                Column("month", "Month", sort_expr=MONTH_ORDER_SQL),
                Column("permit_count", "Total Permits"),
            ),
            default_sort="fiscal_year",
            tiebreak=MONTH_ORDER_SQL,
            description="Unique permits issued per month",
            file_stem="MonthlyPermitReport",
        ),
        Dataset(
            name="quarterly-permits",
            label="Quarterly Unique Permits",
            table="unique_permits_quarterly",
            columns=(
                Column("fiscal_year", "Fiscal Year", expr="year", sort_expr="year"),
                Column("quarter", "Quarter"),
                Column("permit_count", "Total Permits"),
            ),
            default_sort="fiscal_year",
            tiebreak="quarter",
            description="Unique permits issued per fiscal quarter",
            file_stem="QuarterlyPermitReport",
        ),
        Dataset(
            name="valuation-bins",
            label="Permits by Valuation Range",
            table="unique_permits_yearly_bins",
            columns=(
                Column("year", "Fiscal Year"),
                Column("bin_range", "Valuation Range"),
                Column("permit_count", "Permit Volume"),
            ),
            default_sort="year",
            tiebreak="bin_range",
            description="Unique permits per valuation range per year",
            file_stem="ValuationThresholdReport",
        ),
        Dataset(
            name="department-activity",
            label="Department Activity",
            table="department_activity",
            columns=(
                Column("year", "Year"),
                Column("department", "Department"),
                Column("activity_count", "Activity Count"),
            ),
            default_sort="year",
            department_column="department",
            tiebreak="department",
            description="Annual activity count per department",
            file_stem="DepartmentActivityReport",
        ),
        Dataset(
            name="department-weekday",
            label="Department Activity by Weekday",
            table="department_activity_weekday",
            columns=(Column("year", "Year"), Column("department", "Department")) + _WEEKDAY_COLUMNS,
            default_sort="year",
            department_column="department",
            tiebreak="department",
            description="Share of each department's activity per weekday",
            file_stem="DepartmentWeekdayReport",
        ),
    )
}


def get_dataset(name: str) -> Dataset:
    """Return the registered dataset, raising KeyError for unknown names."""
    return TABLE_DATASETS[name]


@dataclass
class TableQuery:
    """Sort, filter and column selection for one dataset query."""

    dataset: Dataset
    sort_by: str | None = None
    sort_dir: str | None = None
    years: list[int] | None = None
    year_from: int | None = None
    year_to: int | None = None
    departments: list[str] | None = None
    columns: list[str] | None = field(default=None)

    def __post_init__(self) -> None:
        ds = self.dataset
        self.sort_by = self.sort_by or ds.default_sort
        self.sort_dir = (self.sort_dir or ds.default_dir).lower()
        if self.sort_by not in ds.sortable:
            raise ValueError(
                f"Cannot sort {ds.name} by '{self.sort_by}'. "
                f"Sortable columns: {', '.join(ds.sortable)}"
            )
        if self.sort_dir not in ("asc", "desc"):
            raise ValueError("sort_dir must be 'asc' or 'desc'")
        if self.columns:
            unknown = [c for c in self.columns if c not in ds.column_keys]
            if unknown:
                raise ValueError(
                    f"Unknown column(s) for {ds.name}: {', '.join(unknown)}"
                )

    @property
    def selected(self) -> list[Column]:
        if not self.columns:
            return list(self.dataset.columns)
        return [self.dataset.column(k) for k in self.columns]

    def where(self) -> tuple[str, list[Any]]:
        return build_where_clause(
            self.dataset.year_column, self.years, self.year_from, self.year_to,
            self.departments, department_column=self.dataset.department_column,
        )

    def order(self) -> str:
        return build_order_clause(
            self.sort_by, self.sort_dir, self.dataset.sortable,
            self.dataset.default_sort, tiebreak=self.dataset.tiebreak or None,
        )

    def select_sql(self) -> tuple[str, list[Any]]:
        where, params = self.where()
        cols = ", ".join(c.select_sql for c in self.selected)
        return f"SELECT {cols} FROM {self.dataset.table} {where} {self.order()}", params


def fetch_page(conn: sqlite3.Connection, query: TableQuery,
               limit: int = 25, offset: int = 0) -> dict[str, Any]:
    """Return one page of rows plus the total match count."""
    total = count_rows(conn, query)
    sql, params = query.select_sql()
    items = query_to_dicts(conn, f"{sql} LIMIT ? OFFSET ?", params + [limit, offset])
    return {
        "dataset": query.dataset.name,
        "total": total,
        "limit": limit,
        "offset": offset,
        "sort_by": query.sort_by,
        "sort_dir": query.sort_dir,
        "columns": [c.key for c in query.selected],
        "items": items,
    }


def count_rows(conn: sqlite3.Connection, query: TableQuery) -> int:
    where, params = query.where()
    return conn.execute(
        f"SELECT COUNT(*) FROM {query.dataset.table} {where}", params
    ).fetchone()[0]


def available_years(conn: sqlite3.Connection, dataset: Dataset) -> list[int]:
    """Distinct years present in the dataset's table, newest first."""
    col = dataset.year_column
    rows = conn.execute(
        f"SELECT DISTINCT {col} FROM {dataset.table} ORDER BY {col} DESC"
    ).fetchall()
    return [r[0] for r in rows]


def iter_rows(conn: sqlite3.Connection, query: TableQuery,
              batch_size: int = 500) -> Iterator[dict[str, Any]]:
    """Yield every matching row as a dict, fetching in batches."""
    sql, params = query.select_sql()
    cursor = conn.execute(sql, params)
    keys = [d[0] for d in cursor.description]
    while True:
        batch = cursor.fetchmany(batch_size)
        if not batch:
            break
        for row in batch:
            yield dict(zip(keys, row))
