"""
Create the permit dashboard database and apply the schema.

Usage:
    python setup_database.py
    python setup_database.py --db /data/permits.sqlite
    python setup_database.py --force        # recreate from scratch
"""

import argparse
import sys
from pathlib import Path

from schema_design import SCHEMA_VERSION, check_database_integrity, create_database, migrate
from utils.config import ImportConfig


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the dashboard database schema.")
    parser.add_argument(
        "--db", default=str(ImportConfig().db_path),
        help="Path to the SQLite database to create",
    )
    parser.add_argument(
        "--force", action="store_true",
        help="Delete an existing database before creating it",
    )
    args = parser.parse_args(argv)

    db_path = Path(args.db)
    if db_path.exists():
        if not args.force:
            print(f"Database {db_path} exists; applying pending migrations only.")
        else:
            print(f"Removing existing database {db_path}")
            for suffix in ("", "-wal", "-shm"):
                Path(str(db_path) + suffix).unlink(missing_ok=True)

    conn = create_database(db_path)
    try:
        migrate(conn)
        result = check_database_integrity(conn)
    finally:
        conn.close()

    for line in result["details"]:
        print(f"  {line}")
    if not (result["integrity_ok"] and result["tables_ok"]):
        print("Database setup failed.", file=sys.stderr)
        return 1
    print(f"Database ready at {db_path} (schema version {SCHEMA_VERSION}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
