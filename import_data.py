"""
Load the permit analysis JSON exports into the dashboard database.

Reads the six fixture files from the data directory, upserts them into
their tables (creating the schema first if needed) and writes a per-run log
directory with a summary.json.

Usage:
    python import_data.py
    python import_data.py --data-dir public/data/UniquePermitsAnalysisData
    python import_data.py --check                  # inspect files, no import
    python import_data.py --only yearly --only monthly
    python import_data.py --rebuild                # delete the DB first
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from pipeline.importer import DATASETS_BY_NAME, check_data_structure, import_all
from pipeline.logging import ImportLogger
from schema_design import create_database
from utils.config import ImportConfig

logger = logging.getLogger("permit_import")


def print_structure(data_dir: Path) -> int:
    """Print a sample record and the record count of every fixture file.

    Returns the number of files that are missing or unreadable.
    """
    print(f"Checking JSON file structures in {data_dir}...\n")
    problems = 0
    for summary in check_data_structure(data_dir):
        print(f"{summary.filename}:")
        if summary.error:
            problems += 1
            print(f"  ERROR: {summary.error}")
        else:
            print("  Sample record:", json.dumps(summary.sample, indent=2))
            print(f"  Total records: {summary.record_count:,}")
        print("---\n")
    return problems


def main(argv: list[str] | None = None) -> int:
    defaults = ImportConfig()
    parser = argparse.ArgumentParser(
        description="Import the permit analysis JSON fixtures into SQLite."
    )
    parser.add_argument(
        "--db", default=str(defaults.db_path),
        help=f"Path to the SQLite database (default: {defaults.db_path})",
    )
    parser.add_argument(
        "--data-dir", default=str(defaults.data_dir),
        help=f"Directory holding the JSON files (default: {defaults.data_dir})",
    )
    parser.add_argument(
        "--check", action="store_true",
        help="Only print each file's sample record and record count",
    )
    parser.add_argument(
        "--only", action="append", choices=sorted(DATASETS_BY_NAME), metavar="NAME",
        help="Import only this dataset (repeatable): " + ", ".join(DATASETS_BY_NAME),
    )
    parser.add_argument(
        "--rebuild", action="store_true",
        help="Delete the database file before importing",
    )
    parser.add_argument(
        "--log-dir", default=str(defaults.log_dir),
        help=f"Directory for per-run import logs (default: {defaults.log_dir})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    data_dir = Path(args.data_dir)
    if not data_dir.is_dir():
        print(f"Error: data directory not found at {data_dir}", file=sys.stderr)
        return 1

    if args.check:
        return 1 if print_structure(data_dir) else 0

    db_path = Path(args.db)
    if args.rebuild and db_path.exists():
        logger.info("Removing existing database %s", db_path)
        for suffix in ("", "-wal", "-shm"):
            Path(str(db_path) + suffix).unlink(missing_ok=True)

    il = ImportLogger(args.log_dir)
    il.args_dict = vars(args)
    conn = create_database(db_path)
    try:
        summary = import_all(
            conn, data_dir, only=args.only, import_logger=il,
            batch_size=defaults.batch_size,
        )
    finally:
        conn.close()
    summary_path = il.write_summary()

    for name, report in summary.reports.items():
        print(f"  {name:<22} {report.status:<10} {report.console_summary()}")
    print(f"\nImported {summary.records_imported:,} records "
          f"({summary.records_skipped:,} skipped) into {db_path}")
    print(f"Log: {summary_path}")

    if not summary.ok:
        print(f"Failed datasets: {', '.join(summary.failed)}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
