"""Shared SQL query builders for the permit and department routes.

Provides the WHERE / ORDER BY construction used by the JSON endpoints,
the dataset tables, the chart builders and the download route.
"""

from typing import Any

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Months are stored as three-letter labels; this expression sorts them in
# calendar order instead of alphabetically.
MONTH_ORDER_SQL = (
    "CASE month "
    + " ".join(f"WHEN '{m}' THEN {i}" for i, m in enumerate(MONTHS, start=1))
    + " ELSE 13 END"
)


def validate_year_range(year_from: int | None, year_to: int | None) -> None:
    """Raise ValueError when both bounds are given and inverted."""
    if year_from is not None and year_to is not None and year_from > year_to:
        raise ValueError(
            f"year_from ({year_from}) must not be greater than year_to ({year_to})"
        )


def build_where_clause(
    year_column: str = "year",
    years: list[int] | None = None,
    year_from: int | None = None,
    year_to: int | None = None,
    departments: list[str] | None = None,
    department_column: str | None = None,
) -> tuple[str, list[Any]]:
    """Build a SQL WHERE clause from filter parameters.

    Args:
        year_column: Column the year filters apply to (``fiscal_year`` for
            the yearly table, ``year`` elsewhere).
        years: Exact years to include.
        year_from: Inclusive lower bound.
        year_to: Inclusive upper bound.
        departments: Exact department names to include.
        department_column: Column the department filter applies to; when
            None the ``departments`` argument is ignored.

    Returns:
        Tuple of (where_clause_string, params_list). The clause starts with
        "WHERE " if any conditions exist, or is "" if none.

    Raises:
        ValueError: If ``year_from`` is greater than ``year_to``.
    """
    validate_year_range(year_from, year_to)
    conditions: list[str] = []
    params: list[Any] = []

    if years:
        placeholders = ",".join("?" * len(years))
        conditions.append(f"{year_column} IN ({placeholders})")
        params.extend(years)

    if year_from is not None:
        conditions.append(f"{year_column} >= ?")
        params.append(year_from)

    if year_to is not None:
        conditions.append(f"{year_column} <= ?")
        params.append(year_to)

    if departments and department_column:
        placeholders = ",".join("?" * len(departments))
        conditions.append(f"{department_column} IN ({placeholders})")
        params.extend(departments)

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def build_order_clause(
    sort_by: str,
    sort_dir: str,
    allowed_sorts: dict[str, str],
    default_sort: str,
    tiebreak: str | None = None,
) -> str:
    """Build a safe SQL ORDER BY clause.

    Args:
        sort_by: Public column name to sort by.
        sort_dir: 'asc' or 'desc' (case-insensitive).
        allowed_sorts: Maps public column names to SQL sort expressions.
        default_sort: Public name used if ``sort_by`` is not allowed.
        tiebreak: Optional extra ORDER BY term for stable paging.

    Returns:
        ORDER BY clause string, e.g. "ORDER BY fiscal_year DESC".
    """
    key = sort_by if sort_by in allowed_sorts else default_sort
    expr = allowed_sorts[key]
    direction = "DESC" if sort_dir.lower() == "desc" else "ASC"
    clause = f"ORDER BY {expr} {direction}"
    if tiebreak and tiebreak != expr:
        clause += f", {tiebreak}"
    return clause
