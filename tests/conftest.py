"""
Pytest fixtures for the permit dashboard tests.

Provides deterministic JSON fixture files shaped like the analysis exports,
a database imported from them, an open connection to it and a TestClient
for the FastAPI app.

Fixture data at a glance:
    yearly       FY2019-FY2023: 900, 1000, 1100, 1050, 1200
    monthly      FY2022 and FY2023, Jan-Mar (stored out of calendar order)
    quarterly    FY2022 and FY2023, quarters 1-2
    yearly_bins  FY2022 (five bins) and FY2023 (four bins, no 10M+)
    activity     LU, PLN Check and PSC for 2021-2023
    weekday      LU and PSC for 2022-2023; LU 2022 has no friday share
"""

import json
import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.importer import import_all  # noqa: E402
from schema_design import create_database  # noqa: E402

YEARLY = [
    {"FiscalYear": 2019, "PermitCount": 900},
    {"FiscalYear": 2020, "PermitCount": 1000},
    {"FiscalYear": 2021, "PermitCount": 1100},
    {"FiscalYear": 2022, "PermitCount": 1050},
    {"FiscalYear": 2023, "PermitCount": 1200},
]

MONTHLY = [
    {"FiscalMonth": "Mar", "PermitCount": 100, "FiscalYear": 2022},
    {"FiscalMonth": "Jan", "PermitCount": 80, "FiscalYear": 2022},
    {"FiscalMonth": "Feb", "PermitCount": 90, "FiscalYear": 2022},
    {"FiscalMonth": "March", "PermitCount": 110, "FiscalYear": 2023},
    {"FiscalMonth": "Jan", "PermitCount": 95, "FiscalYear": 2023},
    {"FiscalMonth": "Feb", "PermitCount": 85, "FiscalYear": 2023},
]

QUARTERLY = [
    {"FiscalQuarter": 1, "PermitCount": 260, "FiscalYear": 2022},
    {"FiscalQuarter": 2, "PermitCount": 270, "FiscalYear": 2022},
    {"FiscalQuarter": 1, "PermitCount": 290, "FiscalYear": 2023},
    {"FiscalQuarter": 2, "PermitCount": 310, "FiscalYear": 2023},
]

YEARLY_BINS = [
    {"permit_range": "0-10K", "count": 300, "year": 2022},
    {"permit_range": "10K-100K", "count": 400, "year": 2022},
    {"permit_range": "100K-1M", "count": 200, "year": 2022},
    {"permit_range": "1M-10M", "count": 50, "year": 2022},
    {"permit_range": "10M+", "count": 10, "year": 2022},
    {"permit_range": "0-10K", "count": 320, "year": 2023},
    {"permit_range": "10K-100K", "count": 420, "year": 2023},
    {"permit_range": "100K-1M", "count": 250, "year": 2023},
    {"permit_range": "1M-10M", "count": 60, "year": 2023},
]

DEPARTMENT_ACTIVITY = [
    {"year": 2021, "activity_count": 100, "department": "LU"},
    {"year": 2022, "activity_count": 120, "department": "LU"},
    {"year": 2023, "activity_count": 150, "department": "LU"},
    {"year": 2021, "activity_count": 200, "department": "PLN Check"},
    {"year": 2022, "activity_count": 210, "department": "PLN Check"},
    {"year": 2023, "activity_count": 190, "department": "PLN Check"},
    {"year": 2021, "activity_count": 300, "department": "PSC"},
    {"year": 2022, "activity_count": 320, "department": "PSC"},
    {"year": 2023, "activity_count": 350, "department": "PSC"},
]

DEPARTMENT_WEEKDAY = [
    {"year": 2022, "monday": 0.25, "tuesday": 0.25, "wednesday": 0.3,
     "thursday": 0.2, "department": "LU"},
    {"year": 2023, "monday": 0.2, "tuesday": 0.2, "wednesday": 0.2,
     "thursday": 0.2, "friday": 0.2, "department": "LU"},
    {"year": 2022, "monday": 0.3, "tuesday": 0.2, "wednesday": 0.2,
     "thursday": 0.15, "friday": 0.15, "department": "PSC"},
    {"year": 2023, "monday": 0.224, "tuesday": 0.206, "wednesday": 0.2,
     "thursday": 0.19, "friday": 0.18, "department": "PSC"},
]

FIXTURE_FILES: dict[str, list] = {
    "UniquePermitYearlyJson.json": YEARLY,
    "UniquePermitMonthlyJson.json": MONTHLY,
    "UniquePermitQuarterlyJson.json": QUARTERLY,
    "UniquePermitYearlyBinsJson.json": YEARLY_BINS,
    "DeptAnnualActivityJson.json": DEPARTMENT_ACTIVITY,
    "DeptAnnualActivityWeekdayJson.json": DEPARTMENT_WEEKDAY,
}


def write_fixtures(data_dir: Path, files: dict[str, list] | None = None) -> Path:
    """Write each ``{filename: records}`` pair as a JSON file under *data_dir*."""
    data_dir.mkdir(parents=True, exist_ok=True)
    for name, records in (FIXTURE_FILES if files is None else files).items():
        (data_dir / name).write_text(json.dumps(records), encoding="utf-8")
    return data_dir


def build_db(db_path: Path, data_dir: Path) -> Path:
    conn = create_database(db_path)
    try:
        import_all(conn, data_dir)
    finally:
        conn.close()
    return db_path


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def data_dir(tmp_path):
    """A directory holding all six fixture files."""
    return write_fixtures(tmp_path / "data")


@pytest.fixture()
def db_path(tmp_path, data_dir):
    """Path to a database imported from the standard fixtures."""
    return build_db(tmp_path / "permits.sqlite", data_dir)


@pytest.fixture()
def conn(db_path):
    """Open connection to the imported database with ``sqlite3.Row`` rows."""
    c = sqlite3.connect(str(db_path))
    c.row_factory = sqlite3.Row
    yield c
    c.close()


@pytest.fixture()
def empty_db_path(tmp_path):
    """Path to a database with the schema applied and no data."""
    c = create_database(tmp_path / "empty.sqlite")
    c.close()
    return tmp_path / "empty.sqlite"


@pytest.fixture()
def client(db_path):
    """TestClient for an app pointed at the imported fixture database."""
    from fastapi.testclient import TestClient

    from api.app import create_app

    return TestClient(create_app(db_path))


@pytest.fixture(autouse=True)
def _reset_app_state():
    """Clear rate-limit counters and the dashboard cache between tests."""
    from api import app as app_module
    from api.routes import dashboard

    app_module._rate_counters.clear()
    dashboard._summary_cache.clear()
    yield
    app_module._rate_counters.clear()
    dashboard._summary_cache.clear()
