"""Database metadata collection.

Summarises what the permit database holds: per-table row counts, fiscal year
ranges, known departments, valuation ranges, the most recent import run and
the schema version. Feeds ``GET /api/v1/metadata`` and the filter panels on
the report pages.

Usage:
    from utils.metadata import collect_metadata

    meta = collect_metadata(conn)
    # meta == {"tables": {...}, "year_ranges": {...}, "departments": [...], ...}
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from schema_design import DATA_TABLES

# Column holding the fiscal year in each data table.
YEAR_COLUMNS = {
    "unique_permits_yearly": "fiscal_year",
    "unique_permits_monthly": "year",
    "unique_permits_quarterly": "year",
    "unique_permits_yearly_bins": "year",
    "department_activity": "year",
    "department_activity_weekday": "year",
}


def _distinct(conn: sqlite3.Connection, sql: str) -> list:
    try:
        return [r[0] for r in conn.execute(sql).fetchall()]
    except sqlite3.OperationalError:
        return []


def collect_metadata(conn: sqlite3.Connection) -> dict:
    """Collect summary metadata about the permit database.

    Returns a dict with:
        - generated_at: ISO timestamp of this call
        - tables: row counts per data table (None when the table is missing)
        - year_ranges: ``{"min", "max"}`` fiscal year per data table
        - fiscal_years: distinct fiscal years in unique_permits_yearly
        - departments: distinct department codes
        - valuation_ranges: distinct bin_range labels
        - last_import: the newest import_runs row, or None
        - schema_version: highest applied migration

    Args:
        conn: Open SQLite connection with row_factory=sqlite3.Row.
    """
    meta: dict = {
        "generated_at": datetime.now().isoformat(),
    }

    # ── Table row counts and year ranges ─────────────────────────────────
    tables: dict = {}
    year_ranges: dict = {}
    for table in DATA_TABLES:
        try:
            tables[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            col = YEAR_COLUMNS[table]
            lo, hi = conn.execute(f"SELECT MIN({col}), MAX({col}) FROM {table}").fetchone()
            year_ranges[table] = {"min": lo, "max": hi}
        except sqlite3.OperationalError:
            tables[table] = None
            year_ranges[table] = None
    meta["tables"] = tables
    meta["year_ranges"] = year_ranges

    meta["fiscal_years"] = _distinct(
        conn, "SELECT DISTINCT fiscal_year FROM unique_permits_yearly ORDER BY fiscal_year"
    )
    meta["departments"] = _distinct(
        conn,
        "SELECT department FROM department_activity "
        "UNION SELECT department FROM department_activity_weekday ORDER BY 1",
    )
    meta["valuation_ranges"] = _distinct(
        conn, "SELECT DISTINCT bin_range FROM unique_permits_yearly_bins ORDER BY bin_range"
    )

    # ── Last import run ──────────────────────────────────────────────────
    try:
        row = conn.execute(
            "SELECT id, started_at, finished_at, status, data_dir, "
            "records_imported, records_skipped, notes "
            "FROM import_runs ORDER BY id DESC LIMIT 1"
        ).fetchone()
        meta["last_import"] = dict(row) if row else None
    except sqlite3.OperationalError:
        meta["last_import"] = None

    try:
        meta["schema_version"] = conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()[0] or 0
    except sqlite3.OperationalError:
        meta["schema_version"] = 0

    return meta
