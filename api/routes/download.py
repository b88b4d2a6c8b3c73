"""
GET /api/v1/download/{name} endpoint.

Exports a dataset as CSV, newline-delimited JSON or Excel, applying the same
sort, filter and column parameters as /api/v1/datasets/{name}.

- CSV starts with ``#`` source attribution rows, then the header row.
- Excel is written with openpyxl write_only mode: a Metadata sheet followed
  by the data sheet named after the dataset.
- NDJSON's first line is a ``{"_metadata": {...}}`` object.
- ``X-Total-Count`` carries the number of exported records.
"""

import csv
import io
import json
import sqlite3
from datetime import datetime, timezone

import openpyxl
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from api.database import get_db
from api.params import DepartmentFilters
from api.routes.datasets import build_table_query, resolve_dataset
from utils.datasets import TableQuery, iter_rows

router = APIRouter(prefix="/download", tags=["download"])

SOURCE_NAME = "Permit Activity Dashboard"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def filter_summary(query: TableQuery) -> str:
    """Human-readable summary of the active filters (``none`` when unfiltered)."""
    active: list[str] = []
    if query.years:
        active.append(f"year={','.join(str(y) for y in query.years)}")
    if query.year_from is not None:
        active.append(f"year_from={query.year_from}")
    if query.year_to is not None:
        active.append(f"year_to={query.year_to}")
    if query.departments:
        active.append(f"department={','.join(query.departments)}")
    return "; ".join(active) if active else "none"


def xlsx_bytes(query: TableQuery, rows: list[dict], metadata: list[tuple[str, object]]) -> bytes:
    wb = openpyxl.Workbook(write_only=True)
    meta_ws = wb.create_sheet("Metadata")
    for item in metadata:
        meta_ws.append(list(item))
    ws = wb.create_sheet(query.dataset.label[:31])
    ws.append([c.label for c in query.selected])
    for row in rows:
        ws.append([row[c.key] for c in query.selected])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@router.get("/{name}", summary="Download a dataset as CSV, JSON, or Excel")
def download(
    name: str,
    request: Request,
    fmt: str = Query("csv", pattern="^(csv|json|xlsx)$", description="Output format"),
    sort_by: str | None = Query(None, description="Column to sort by"),
    sort_dir: str | None = Query(None, pattern="^(asc|desc)$", description="Sort direction"),
    columns: list[str] | None = Query(None, description="Subset of columns to export"),
    filters: DepartmentFilters = Depends(),
    conn: sqlite3.Connection = Depends(get_db),
) -> StreamingResponse:
    """Stream the dataset rows in the requested format."""
    dataset = resolve_dataset(name)
    query = build_table_query(dataset, sort_by, sort_dir, filters, columns)
    keys = [c.key for c in query.selected]

    # Rows are read up front: the request-scoped connection may be closed
    # before a streaming body is consumed.
    rows = list(iter_rows(conn, query))
    total_count = len(rows)
    extra_headers = {"X-Total-Count": str(total_count)}

    export_date = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    export_url = str(request.url)
    summary = filter_summary(query)
    stem = dataset.file_stem or dataset.name

    if fmt == "csv":
        def csv_stream():
            buf = io.StringIO()
            writer_raw = csv.writer(buf)
            writer_raw.writerow([f"# Source: {SOURCE_NAME} ({dataset.label})"])
            writer_raw.writerow([f"# Export Date: {export_date}"])
            writer_raw.writerow([f"# Filters: {summary}"])
            writer_raw.writerow([f"# URL: {export_url}"])
            writer_raw.writerow([f"# Total Records: {total_count}"])
            yield buf.getvalue()
            buf.seek(0)
            buf.truncate()
            writer = csv.DictWriter(buf, fieldnames=keys)
            writer.writeheader()
            yield buf.getvalue()
            for row in rows:
                buf.seek(0)
                buf.truncate()
                writer.writerow(row)
                yield buf.getvalue()

        return StreamingResponse(
            csv_stream(),
            media_type="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename={stem}.csv",
                **extra_headers,
            },
        )

    if fmt == "xlsx":
        content = xlsx_bytes(query, rows, [
            ("Source", SOURCE_NAME),
            ("Dataset", dataset.label),
            ("Export Date", export_date),
            ("Filters", summary),
            ("URL", export_url),
            ("Total Records", total_count),
        ])
        return StreamingResponse(
            iter([content]),
            media_type=XLSX_MEDIA_TYPE,
            headers={
                "Content-Disposition": f"attachment; filename={stem}.xlsx",
                "Content-Length": str(len(content)),
                **extra_headers,
            },
        )

    def json_stream():
        metadata = {
            "_metadata": {
                "source": SOURCE_NAME,
                "dataset": dataset.name,
                "export_date": export_date,
                "filters": summary,
                "url": export_url,
                "total_records": total_count,
            }
        }
        yield json.dumps(metadata, default=str) + "\n"
        for row in rows:
            yield json.dumps(row, default=str) + "\n"

    return StreamingResponse(
        json_stream(),
        media_type="application/x-ndjson",
        headers={
            "Content-Disposition": f"attachment; filename={stem}.ndjson",
            **extra_headers,
        },
    )
