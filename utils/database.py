"""Database utilities for the permit dashboard.

Provides reusable functions for:
- Connection pragmas
- Upserts keyed on a table's natural key
- Row counting, table introspection and dict-shaped query results
- Slow query tracking surfaced by /health/detailed
"""

import logging
import sqlite3
import threading
import time
from collections import deque
from typing import Any, Dict, List, Sequence

logger = logging.getLogger(__name__)

SLOW_QUERY_MS = 100.0

_stats_lock = threading.Lock()
_query_stats: Dict[str, float] = {"query_count": 0, "total_ms": 0.0, "slow_query_count": 0}
_slow_queries: deque = deque(maxlen=50)


def init_pragmas(conn: sqlite3.Connection) -> None:
    """Apply the WAL / synchronous / busy-timeout pragmas used everywhere."""
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA busy_timeout=5000")


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Check if a table exists in the database."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,),
    )
    return cursor.fetchone() is not None


def list_tables(conn: sqlite3.Connection) -> List[str]:
    """Return user table names in alphabetical order."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    ).fetchall()
    return [r[0] for r in rows]


def get_table_count(conn: sqlite3.Connection, table: str) -> int:
    """Get the row count for a table.

    Args:
        conn: SQLite connection
        table: Table name (callers pass names from a fixed whitelist)

    Returns:
        Number of rows in table
    """
    result = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return result[0] if result else 0


def query_to_dicts(conn: sqlite3.Connection, query: str,
                   params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    """Execute *query* and return the rows as a list of dicts.

    Queries slower than ``SLOW_QUERY_MS`` are logged and kept in a bounded
    in-memory list for the health endpoint.
    """
    start = time.perf_counter()
    cursor = conn.execute(query, tuple(params))
    columns = [d[0] for d in cursor.description] if cursor.description else []
    rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
    _record_query(query, (time.perf_counter() - start) * 1000)
    return rows


def query_one(conn: sqlite3.Connection, query: str,
              params: Sequence[Any] = ()) -> Dict[str, Any] | None:
    """Like :func:`query_to_dicts` but return only the first row (or None)."""
    rows = query_to_dicts(conn, query, params)
    return rows[0] if rows else None


def _record_query(sql: str, duration_ms: float) -> None:
    with _stats_lock:
        _query_stats["query_count"] += 1
        _query_stats["total_ms"] += duration_ms
        if duration_ms >= SLOW_QUERY_MS:
            _query_stats["slow_query_count"] += 1
            _slow_queries.append({
                "sql": " ".join(sql.split())[:300],
                "duration_ms": round(duration_ms, 2),
                "at": time.strftime("%Y-%m-%dT%H:%M:%S"),
            })
            logger.warning("slow_query duration_ms=%.1f sql=%s",
                           duration_ms, " ".join(sql.split())[:120])


def get_query_stats() -> Dict[str, float]:
    """Return query count, slow query count and average query time."""
    with _stats_lock:
        count = _query_stats["query_count"]
        return {
            "query_count": int(count),
            "slow_query_count": int(_query_stats["slow_query_count"]),
            "avg_query_time_ms": round(_query_stats["total_ms"] / count, 2) if count else 0.0,
        }


def get_slow_queries() -> List[Dict[str, Any]]:
    """Return the most recent slow queries, newest last."""
    with _stats_lock:
        return list(_slow_queries)


def batch_upsert(
    conn: sqlite3.Connection,
    table: str,
    columns: List[str],
    rows: List[tuple],
    conflict_columns: Sequence[str],
    batch_size: int = 500,
) -> int:
    """Insert rows, updating non-key columns when the natural key already exists.

    Uses ``INSERT ... ON CONFLICT(...) DO UPDATE SET c = excluded.c`` so that
    re-importing a fixture file updates rows in place instead of duplicating
    them. ``updated_at`` is refreshed on every conflicting row.

    Args:
        conn: SQLite connection.
        table: Target table name.
        columns: Column names matching each tuple in ``rows``.
        rows: Value tuples.
        conflict_columns: Columns of the table's UNIQUE constraint.
        batch_size: Rows per ``executemany`` call. All batches share one
            transaction, committed once at the end, so a failure leaves the
            caller free to roll back every batch.

    Returns:
        Total number of rows upserted.
    """
    if not rows:
        return 0

    cols_str = ", ".join(columns)
    placeholders = ", ".join("?" * len(columns))
    conflict_str = ", ".join(conflict_columns)
    assignments = [
        f"{c} = excluded.{c}" for c in columns if c not in conflict_columns
    ]
    assignments.append("updated_at = CURRENT_TIMESTAMP")
    sql = (
        f"INSERT INTO {table} ({cols_str}) VALUES ({placeholders}) "
        f"ON CONFLICT({conflict_str}) DO UPDATE SET {', '.join(assignments)}"
    )

    total = 0
    for i in range(0, len(rows), batch_size):
        batch = rows[i:i + batch_size]
        conn.executemany(sql, batch)
        total += len(batch)
    conn.commit()
    return total
