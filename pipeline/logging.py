"""
Import logging: per-dataset log files and structured skip accounting.

Provides:
  - ImportLogger: manages a run directory under ``import_logs/`` with one log
    file per dataset plus a ``summary.json`` for the whole run.
  - StepReport: what one dataset import did, what it skipped, and why.
  - SkipRecord: a single skip event with a category and detail string.

Usage inside the importer::

    il = ImportLogger("import_logs")
    report = il.start_step("yearly")
    ...                                   # importer logs normally
    il.finish_step("yearly", report)
    il.write_summary()

Skip categories (for SkipRecord.category):
    missing_file      fixture file not present in the data directory
    unreadable_file   file is not valid JSON or not a list of records
    invalid_record    record lacks a required field or has a bad value
    user_skipped      dataset excluded by ``--only``
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Keep summary files readable when a fixture is badly broken.
MAX_LOGGED_SKIPS = 50


@dataclass
class SkipRecord:
    """One thing that was skipped, with a machine-readable category."""

    category: str
    detail: str
    item: str = ""         # dataset name, file name or record index

    def to_dict(self) -> dict[str, str]:
        d: dict[str, str] = {"category": self.category, "detail": self.detail}
        if self.item:
            d["item"] = self.item
        return d


@dataclass
class StepReport:
    """Structured summary of one dataset import."""

    step_name: str
    status: str = "not_started"               # started | completed | failed | skipped
    elapsed_seconds: float = 0.0
    items_processed: int = 0
    items_skipped: int = 0
    skips: list[SkipRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    detail: str = ""

    def add_skip(self, category: str, detail: str, item: str = "") -> None:
        self.skips.append(SkipRecord(category=category, detail=detail, item=item))
        self.items_skipped += 1

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def skip_counts_by_category(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for s in self.skips:
            counts[s.category] = counts.get(s.category, 0) + 1
        return counts

    def console_summary(self) -> str:
        """One-line summary suitable for the terminal."""
        parts: list[str] = [f"{self.items_processed:,} imported"]
        if self.items_skipped:
            cats = self.skip_counts_by_category()
            skip_parts = [f"{v} {k.replace('_', ' ')}" for k, v in sorted(cats.items())]
            parts.append(f"{self.items_skipped:,} skipped ({', '.join(skip_parts)})")
        if self.errors:
            parts.append(f"{len(self.errors)} errors")
        if self.detail:
            parts.append(self.detail)
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "step_name": self.step_name,
            "status": self.status,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "items_processed": self.items_processed,
            "items_skipped": self.items_skipped,
        }
        if self.detail:
            d["detail"] = self.detail
        if self.skips:
            d["skips"] = [s.to_dict() for s in self.skips[:MAX_LOGGED_SKIPS]]
        if self.errors:
            d["errors"] = self.errors
        return d


class ImportLogger:
    """Manages per-run, per-dataset log files.

    Creates a directory like::

        import_logs/2026-10-16T14-30-00/
            yearly.log
            monthly.log
            summary.json
    """

    def __init__(self, logs_dir: Path | str = "import_logs") -> None:
        self.logs_root = Path(logs_dir)
        self.run_id = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        self.run_dir = self.logs_root / self.run_id
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self._handlers: dict[str, logging.FileHandler] = {}
        self._start_times: dict[str, float] = {}
        self._reports: dict[str, StepReport] = {}
        self.run_start = time.monotonic()
        self.args_dict: dict[str, Any] = {}

    def start_step(self, step_name: str) -> StepReport:
        """Open a log file for *step_name* and attach it to the root logger."""
        handler = logging.FileHandler(self.run_dir / f"{step_name}.log", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
            datefmt="%H:%M:%S",
        ))
        logging.getLogger().addHandler(handler)
        self._handlers[step_name] = handler
        self._start_times[step_name] = time.monotonic()

        report = StepReport(step_name=step_name, status="started")
        self._reports[step_name] = report
        return report

    def finish_step(self, step_name: str, report: StepReport | None = None) -> StepReport:
        """Detach the log handler for *step_name* and finalise its report."""
        elapsed = time.monotonic() - self._start_times.pop(step_name, self.run_start)
        if report is None:
            report = self._reports.get(step_name, StepReport(step_name=step_name))
        report.elapsed_seconds = elapsed
        if report.status == "started":
            report.status = "completed"
        self._reports[step_name] = report

        logger.info("[%s] %s", step_name, report.console_summary())

        handler = self._handlers.pop(step_name, None)
        if handler:
            handler.stream.write(f"\n{'=' * 60}\n")
            handler.stream.write(f"DATASET SUMMARY: {step_name}\n")
            handler.stream.write(f"  Status:   {report.status}\n")
            handler.stream.write(f"  Elapsed:  {elapsed:.2f}s\n")
            handler.stream.write(f"  Imported: {report.items_processed}\n")
            handler.stream.write(f"  Skipped:  {report.items_skipped}\n")
            for cat, count in sorted(report.skip_counts_by_category().items()):
                handler.stream.write(f"    {cat}: {count}\n")
            for err in report.errors:
                handler.stream.write(f"  Error: {err}\n")
            handler.stream.write(f"{'=' * 60}\n")
            handler.close()
            logging.getLogger().removeHandler(handler)
        return report

    def record_user_skip(self, step_name: str, reason: str) -> None:
        """Record that a dataset was excluded by command-line flags."""
        report = StepReport(step_name=step_name, status="skipped")
        report.add_skip("user_skipped", reason)
        self._reports[step_name] = report

    def write_summary(self) -> Path:
        """Write a JSON summary of the entire run to the run directory."""
        summary = {
            "run_id": self.run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_elapsed_seconds": round(time.monotonic() - self.run_start, 2),
            "args": self.args_dict,
            "steps": {name: rpt.to_dict() for name, rpt in self._reports.items()},
        }
        path = self.summary_path
        with open(path, "w") as f:
            json.dump(summary, f, indent=2, default=str)
        return path

    def get_reports(self) -> dict[str, StepReport]:
        return dict(self._reports)

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.json"
