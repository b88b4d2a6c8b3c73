#!/usr/bin/env python3
"""
Connection test for the dashboard database.

Prints the SQLite version, the current time, every table, and the record
count of each permit/department table.

Usage:
    python scripts/check_database.py
    python scripts/check_database.py --db /data/permits.sqlite
    python scripts/check_database.py --integrity
"""

import argparse
import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from schema_design import DATA_TABLES, check_database_integrity  # noqa: E402
from utils.config import ImportConfig  # noqa: E402
from utils.database import get_table_count, list_tables, table_exists  # noqa: E402


def describe(conn: sqlite3.Connection) -> dict:
    """Collect version, time, table list and per-table counts."""
    version, now = conn.execute("SELECT sqlite_version(), datetime('now')").fetchone()
    counts: dict[str, int | None] = {}
    for table in DATA_TABLES:
        counts[table] = get_table_count(conn, table) if table_exists(conn, table) else None
    return {
        "sqlite_version": version,
        "current_time": now,
        "tables": list_tables(conn),
        "counts": counts,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check the dashboard database.")
    parser.add_argument("--db", default=str(ImportConfig().db_path))
    parser.add_argument(
        "--integrity", action="store_true",
        help="Also run PRAGMA integrity_check and the natural-key duplicate check",
    )
    args = parser.parse_args(argv)

    db_path = Path(args.db)
    if not db_path.exists():
        print(f"Error: database not found at {db_path}", file=sys.stderr)
        print("Run 'python setup_database.py' and 'python import_data.py' first.",
              file=sys.stderr)
        return 1

    conn = sqlite3.connect(str(db_path))
    try:
        info = describe(conn)
        print(f"Connected to {db_path}")
        print(f"SQLite version: {info['sqlite_version']}")
        print(f"Current time:   {info['current_time']}")
        print("\nTables:")
        for name in info["tables"]:
            print(f"  - {name}")
        print("\nRecord counts:")
        for table, count in info["counts"].items():
            shown = "table not found" if count is None else f"{count:,} records"
            print(f"  {table}: {shown}")

        if args.integrity:
            result = check_database_integrity(conn)
            print("\nIntegrity:")
            for line in result["details"]:
                print(f"  {line}")
            if not all((result["integrity_ok"], result["tables_ok"], result["keys_ok"])):
                return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
