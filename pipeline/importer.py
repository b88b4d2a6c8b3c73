"""
JSON fixture importer: loads the permit analysis exports into SQLite.

Each dataset is one JSON file holding a list of flat records. Records are
mapped field-by-field onto a table and upserted on the table's natural key,
so re-running an import updates counts in place.

    from pipeline.importer import import_all
    summary = import_all(conn, Path("data/UniquePermitsAnalysisData"))

Records missing a required field, or carrying a value that cannot be
converted (non-numeric counts, negative counts, blank departments), are
skipped and recorded on the dataset's StepReport rather than aborting the
whole file.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

from pipeline.logging import ImportLogger, StepReport
from schema_design import NATURAL_KEYS
from utils.database import batch_upsert
from utils.query import MONTHS

logger = logging.getLogger(__name__)


class RecordError(ValueError):
    """A fixture record could not be mapped onto its table."""


# ── Field converters ─────────────────────────────────────────────────────────


def to_count(value: Any) -> int:
    """Non-negative integer; accepts ints, integral floats and digit strings."""
    if isinstance(value, bool) or value is None:
        raise RecordError(f"expected a count, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise RecordError(f"expected a whole number, got {value!r}")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise RecordError(f"expected a whole number, got {value!r}") from None
    elif not isinstance(value, int):
        raise RecordError(f"expected a count, got {value!r}")
    if value < 0:
        raise RecordError(f"count must not be negative, got {value}")
    return value


def to_year(value: Any) -> int:
    year = to_count(value)
    if not 1900 <= year <= 2100:
        raise RecordError(f"year out of range: {year}")
    return year


def to_label(value: Any) -> str:
    """Non-blank text; numbers are stringified (fiscal quarters arrive as ints)."""
    if value is None or isinstance(value, bool):
        raise RecordError(f"expected text, got {value!r}")
    text = str(value).strip()
    if not text:
        raise RecordError("expected non-blank text")
    return text


def to_month(value: Any) -> str:
    """Three-letter month label; full names ("January") are abbreviated."""
    text = to_label(value)
    short = text[:3].title()
    if short in MONTHS and (len(text) == 3 or text.lower().startswith(short.lower())):
        return short
    return text


def to_share(value: Any) -> float | None:
    """Weekday share (0..1); missing values are stored as NULL."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise RecordError(f"expected a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise RecordError(f"expected a number, got {value!r}") from None


# ── Dataset registry ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldMap:
    source: str
    column: str
    convert: Callable[[Any], Any]
    required: bool = True


@dataclass(frozen=True)
class DatasetSpec:
    name: str
    filename: str
    table: str
    fields: tuple[FieldMap, ...]
    description: str = ""

    @property
    def columns(self) -> list[str]:
        return [f.column for f in self.fields]

    @property
    def conflict_columns(self) -> tuple[str, ...]:
        return NATURAL_KEYS[self.table]

    def map_record(self, record: Any) -> tuple:
        """Convert one JSON record into a row tuple ordered like ``columns``."""
        if not isinstance(record, dict):
            raise RecordError(f"expected an object, got {type(record).__name__}")
        values = []
        for f in self.fields:
            if f.source not in record:
                if f.required:
                    raise RecordError(f"missing field '{f.source}'")
                values.append(None)
                continue
            try:
                values.append(f.convert(record[f.source]))
            except RecordError as e:
                raise RecordError(f"{f.source}: {e}") from None
        return tuple(values)


DATASETS: tuple[DatasetSpec, ...] = (
    DatasetSpec(
        name="yearly",
        filename="UniquePermitYearlyJson.json",
        table="unique_permits_yearly",
        fields=(
            FieldMap("FiscalYear", "fiscal_year", to_year),
            FieldMap("PermitCount", "permit_count", to_count),
        ),
        description="Unique permits per fiscal year",
    ),
    DatasetSpec(
        name="department_activity",
        filename="DeptAnnualActivityJson.json",
        table="department_activity",
        fields=(
            FieldMap("year", "year", to_year),
            FieldMap("activity_count", "activity_count", to_count),
            FieldMap("department", "department", to_label),
        ),
        description="Annual activity count per department",
    ),
    DatasetSpec(
        name="department_weekday",
        filename="DeptAnnualActivityWeekdayJson.json",
        table="department_activity_weekday",
        fields=(
            FieldMap("year", "year", to_year),
            FieldMap("monday", "monday", to_share, required=False),
            FieldMap("tuesday", "tuesday", to_share, required=False),
            FieldMap("wednesday", "wednesday", to_share, required=False),
            FieldMap("thursday", "thursday", to_share, required=False),
            FieldMap("friday", "friday", to_share, required=False),
            FieldMap("department", "department", to_label),
        ),
        description="Share of department activity per weekday",
    ),
    DatasetSpec(
        name="monthly",
        filename="UniquePermitMonthlyJson.json",
        table="unique_permits_monthly",
        fields=(
            FieldMap("FiscalMonth", "month", to_month),
            FieldMap("PermitCount", "permit_count", to_count),
            FieldMap("FiscalYear", "year", to_year),
        ),
        description="Unique permits per month",
    ),
    DatasetSpec(
        name="quarterly",
        filename="UniquePermitQuarterlyJson.json",
        table="unique_permits_quarterly",
        fields=(
            FieldMap("FiscalQuarter", "quarter", to_label),
            FieldMap("PermitCount", "permit_count", to_count),
            FieldMap("FiscalYear", "year", to_year),
        ),
        description="Unique permits per fiscal quarter",
    ),
    DatasetSpec(
        name="yearly_bins",
        filename="UniquePermitYearlyBinsJson.json",
        table="unique_permits_yearly_bins",
        fields=(
            FieldMap("permit_range", "bin_range", to_label),
            FieldMap("count", "permit_count", to_count),
            FieldMap("year", "year", to_year),
        ),
        description="Unique permits per valuation range per year",
    ),
)

DATASETS_BY_NAME: dict[str, DatasetSpec] = {d.name: d for d in DATASETS}


# ── File reading ─────────────────────────────────────────────────────────────


class FixtureError(Exception):
    """A fixture file is missing or does not hold a JSON list."""


def load_records(path: Path) -> list[Any]:
    """Read a fixture file and return its list of records.

    Raises:
        FixtureError: If the file is missing, not JSON, or not a list.
    """
    if not path.exists():
        raise FixtureError(f"file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise FixtureError(f"could not read {path.name}: {e}") from e
    if not isinstance(data, list):
        raise FixtureError(f"{path.name} does not contain a JSON list")
    return data


@dataclass
class FileSummary:
    """Result of inspecting one fixture file without importing it."""

    dataset: str
    filename: str
    exists: bool
    record_count: int = 0
    sample: Any = None
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataset": self.dataset,
            "filename": self.filename,
            "exists": self.exists,
            "record_count": self.record_count,
            "sample": self.sample,
            "error": self.error,
        }


def check_data_structure(data_dir: Path,
                         datasets: Iterable[DatasetSpec] = DATASETS) -> list[FileSummary]:
    """Report the first record and record count of every fixture file."""
    summaries = []
    for spec in datasets:
        path = Path(data_dir) / spec.filename
        summary = FileSummary(dataset=spec.name, filename=spec.filename, exists=path.exists())
        if summary.exists:
            try:
                records = load_records(path)
                summary.record_count = len(records)
                summary.sample = records[0] if records else None
            except FixtureError as e:
                summary.error = str(e)
        else:
            summary.error = "file not found"
        summaries.append(summary)
    return summaries


# ── Import ───────────────────────────────────────────────────────────────────


def import_dataset(conn: sqlite3.Connection, spec: DatasetSpec, data_dir: Path,
                   report: StepReport | None = None, batch_size: int = 500) -> StepReport:
    """Upsert every valid record of one fixture file.

    Duplicate natural keys inside one file resolve to the last record, the
    same outcome as upserting them one by one.
    """
    if report is None:
        report = StepReport(step_name=spec.name, status="started")
    path = Path(data_dir) / spec.filename

    try:
        records = load_records(path)
    except FixtureError as e:
        category = "missing_file" if not path.exists() else "unreadable_file"
        report.add_skip(category, str(e), item=spec.filename)
        report.status = "skipped" if category == "missing_file" else "failed"
        if category == "unreadable_file":
            report.add_error(str(e))
        logger.warning("%s: %s", spec.name, e)
        return report

    logger.info("Importing %s from %s (%d records)", spec.name, spec.filename, len(records))
    rows: dict[tuple, tuple] = {}
    key_idx = [spec.columns.index(c) for c in spec.conflict_columns]
    for i, record in enumerate(records):
        try:
            row = spec.map_record(record)
        except RecordError as e:
            report.add_skip("invalid_record", str(e), item=f"{spec.filename}[{i}]")
            logger.debug("%s record %d skipped: %s", spec.name, i, e)
            continue
        rows[tuple(row[k] for k in key_idx)] = row

    try:
        report.items_processed = batch_upsert(
            conn, spec.table, spec.columns, list(rows.values()),
            spec.conflict_columns, batch_size=batch_size,
        )
    except sqlite3.DatabaseError as e:
        conn.rollback()
        report.status = "failed"
        report.add_error(f"{spec.table}: {e}")
        logger.error("%s: upsert failed: %s", spec.name, e)
        return report

    duplicates = len(records) - report.items_skipped - len(rows)
    if duplicates:
        report.detail = f"{duplicates} duplicate key(s) merged"
    logger.info("Imported %d %s records", report.items_processed, spec.name)
    return report


@dataclass
class ImportSummary:
    """Reports for every dataset touched by one :func:`import_all` call."""

    run_id: int | None
    reports: dict[str, StepReport] = field(default_factory=dict)

    @property
    def records_imported(self) -> int:
        return sum(r.items_processed for r in self.reports.values())

    @property
    def records_skipped(self) -> int:
        return sum(r.items_skipped for r in self.reports.values())

    @property
    def failed(self) -> list[str]:
        return [n for n, r in self.reports.items() if r.status == "failed"]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "records_imported": self.records_imported,
            "records_skipped": self.records_skipped,
            "failed": self.failed,
            "datasets": {n: r.to_dict() for n, r in self.reports.items()},
        }


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def import_all(conn: sqlite3.Connection, data_dir: Path,
               only: Iterable[str] | None = None,
               import_logger: ImportLogger | None = None,
               batch_size: int = 500) -> ImportSummary:
    """Import every dataset (or the ``only`` subset) in registry order.

    A row in ``import_runs`` records the run's status and totals.

    Raises:
        KeyError: If ``only`` names an unknown dataset.
    """
    wanted = set(only) if only else None
    if wanted:
        unknown = wanted - set(DATASETS_BY_NAME)
        if unknown:
            raise KeyError(f"unknown dataset(s): {', '.join(sorted(unknown))}")

    cur = conn.execute(
        "INSERT INTO import_runs (started_at, status, data_dir) VALUES (?, 'running', ?)",
        (_now(), str(data_dir)),
    )
    conn.commit()
    summary = ImportSummary(run_id=cur.lastrowid)

    for spec in DATASETS:
        if wanted is not None and spec.name not in wanted:
            if import_logger:
                import_logger.record_user_skip(spec.name, "not selected with --only")
            continue
        report = import_logger.start_step(spec.name) if import_logger else None
        report = import_dataset(conn, spec, data_dir, report=report, batch_size=batch_size)
        if import_logger:
            import_logger.finish_step(spec.name, report)
        elif report.status == "started":
            report.status = "completed"
        summary.reports[spec.name] = report

    status = "completed" if summary.ok else "failed"
    notes = ", ".join(
        f"{n}: {r.status}" for n, r in summary.reports.items() if r.status != "completed"
    )
    conn.execute(
        "UPDATE import_runs SET finished_at = ?, status = ?, records_imported = ?, "
        "records_skipped = ?, notes = ? WHERE id = ?",
        (_now(), status, summary.records_imported, summary.records_skipped,
         notes or None, summary.run_id),
    )
    conn.commit()
    logger.info(
        "Import run %s %s: %d imported, %d skipped",
        summary.run_id, status, summary.records_imported, summary.records_skipped,
    )
    return summary
