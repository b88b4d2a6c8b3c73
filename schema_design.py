"""
Permit dashboard schema: tables, triggers, indexes and migrations.

Every data table follows the same pattern:

    id          INTEGER PRIMARY KEY AUTOINCREMENT
    <columns>   the values loaded from the JSON fixtures
    created_at  set on insert
    updated_at  refreshed by an AFTER UPDATE trigger
    UNIQUE(<natural key>)  target of the importer's ON CONFLICT upserts

Tables:
    unique_permits_yearly         fiscal_year, permit_count
    unique_permits_monthly        month (Jan..Dec), permit_count, year
    unique_permits_quarterly      quarter ("1".."4"), permit_count, year
    unique_permits_yearly_bins    bin_range, permit_count, year
    department_activity           year, activity_count, department
    department_activity_weekday   year, monday..friday (share 0..1), department
    import_runs                   one row per importer invocation

Usage:
    from schema_design import create_database, migrate
    conn = create_database(Path("permit_dashboard.sqlite"))
"""

import sqlite3
from pathlib import Path


# Natural-key columns per data table; mirrors the UNIQUE constraints below.
NATURAL_KEYS: dict[str, tuple[str, ...]] = {
    "unique_permits_yearly": ("fiscal_year",),
    "unique_permits_monthly": ("month", "year"),
    "unique_permits_quarterly": ("quarter", "year"),
    "unique_permits_yearly_bins": ("bin_range", "year"),
    "department_activity": ("year", "department"),
    "department_activity_weekday": ("year", "department"),
}

DATA_TABLES: tuple[str, ...] = tuple(NATURAL_KEYS)


def _updated_at_trigger(table: str) -> str:
    return f"""
CREATE TRIGGER IF NOT EXISTS trg_{table}_updated_at
AFTER UPDATE ON {table}
FOR EACH ROW WHEN NEW.updated_at = OLD.updated_at
BEGIN
    UPDATE {table} SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;
"""


_DDL_001_PERMITS = """
CREATE TABLE IF NOT EXISTS unique_permits_yearly (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    fiscal_year   INTEGER NOT NULL,
    permit_count  INTEGER NOT NULL CHECK (permit_count >= 0),
    created_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (fiscal_year)
);

CREATE TABLE IF NOT EXISTS unique_permits_monthly (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    month         TEXT    NOT NULL,
    permit_count  INTEGER NOT NULL CHECK (permit_count >= 0),
    year          INTEGER NOT NULL,
    created_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (month, year)
);

CREATE TABLE IF NOT EXISTS unique_permits_quarterly (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    quarter       TEXT    NOT NULL,
    permit_count  INTEGER NOT NULL CHECK (permit_count >= 0),
    year          INTEGER NOT NULL,
    created_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (quarter, year)
);

CREATE TABLE IF NOT EXISTS unique_permits_yearly_bins (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    bin_range     TEXT    NOT NULL,
    permit_count  INTEGER NOT NULL CHECK (permit_count >= 0),
    year          INTEGER NOT NULL,
    created_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (bin_range, year)
);

CREATE INDEX IF NOT EXISTS idx_permits_yearly_year    ON unique_permits_yearly(fiscal_year);
CREATE INDEX IF NOT EXISTS idx_permits_monthly_year   ON unique_permits_monthly(year);
CREATE INDEX IF NOT EXISTS idx_permits_quarterly_year ON unique_permits_quarterly(year);
CREATE INDEX IF NOT EXISTS idx_permits_bins_year      ON unique_permits_yearly_bins(year);
"""

_DDL_001_DEPARTMENTS = """
CREATE TABLE IF NOT EXISTS department_activity (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    year            INTEGER NOT NULL,
    activity_count  INTEGER NOT NULL CHECK (activity_count >= 0),
    department      VARCHAR(50) NOT NULL,
    created_at      TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at      TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (year, department)
);

CREATE TABLE IF NOT EXISTS department_activity_weekday (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    year        INTEGER NOT NULL,
    monday      REAL,
    tuesday     REAL,
    wednesday   REAL,
    thursday    REAL,
    friday      REAL,
    department  VARCHAR(50) NOT NULL,
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (year, department)
);

CREATE INDEX IF NOT EXISTS idx_dept_activity_year    ON department_activity(year);
CREATE INDEX IF NOT EXISTS idx_dept_activity_dept    ON department_activity(department);
CREATE INDEX IF NOT EXISTS idx_dept_weekday_year     ON department_activity_weekday(year);
CREATE INDEX IF NOT EXISTS idx_dept_weekday_dept     ON department_activity_weekday(department);
"""

_DDL_002_IMPORT_RUNS = """
CREATE TABLE IF NOT EXISTS import_runs (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at        TEXT NOT NULL,
    finished_at       TEXT,
    status            TEXT NOT NULL DEFAULT 'running',
    data_dir          TEXT,
    records_imported  INTEGER DEFAULT 0,
    records_skipped   INTEGER DEFAULT 0,
    notes             TEXT
);
"""


# ── Migration framework ───────────────────────────────────────────────────────

_DDL_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    description TEXT,
    applied_at  TEXT    DEFAULT (datetime('now'))
);
"""

# Each entry: (version, description, sql)
_MIGRATIONS = [
    (
        1,
        "001_data_tables: permit and department tables with updated_at triggers",
        _DDL_001_PERMITS
        + _DDL_001_DEPARTMENTS
        + "".join(_updated_at_trigger(t) for t in DATA_TABLES),
    ),
    (
        2,
        "002_import_runs: importer run log for data freshness",
        _DDL_002_IMPORT_RUNS,
    ),
]

SCHEMA_VERSION = _MIGRATIONS[-1][0]


def _current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none applied)."""
    try:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0
    except sqlite3.OperationalError:
        return 0


def migrate(conn: sqlite3.Connection) -> int:
    """Apply all pending migrations in order.

    Idempotent: migrations at or below the recorded version are skipped.

    Returns:
        Number of migrations applied in this call (0 if already up to date).
    """
    conn.execute(_DDL_SCHEMA_VERSION)
    conn.commit()

    current = _current_version(conn)
    applied = 0
    for version, description, sql in _MIGRATIONS:
        if version <= current:
            continue
        conn.executescript(sql)
        conn.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (version, description),
        )
        conn.commit()
        applied += 1
    return applied


def create_database(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the dashboard database and run all migrations.

    Args:
        db_path: Filesystem path for the SQLite file (created if absent).

    Returns:
        An open connection with ``sqlite3.Row`` rows and the schema applied.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    migrate(conn)
    return conn


def check_database_integrity(conn: sqlite3.Connection) -> dict:
    """Run SQLite integrity checks plus table and natural-key checks.

    Returns:
        Dict with keys: integrity_ok, tables_ok, keys_ok (bools) and
        details (list[str]).
    """
    details: list[str] = []
    integrity_ok = True
    tables_ok = True
    keys_ok = True

    try:
        messages = [r[0] for r in conn.execute("PRAGMA integrity_check").fetchall()]
        if messages == ["ok"]:
            details.append("integrity_check: ok")
        else:
            integrity_ok = False
            details.extend(f"integrity_check: {m}" for m in messages)
    except sqlite3.DatabaseError as e:
        integrity_ok = False
        details.append(f"integrity_check error: {e}")

    existing = {
        r[0] for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
    }
    for table, key in NATURAL_KEYS.items():
        if table not in existing:
            tables_ok = False
            details.append(f"{table}: missing")
            continue
        cols = ", ".join(key)
        dupes = conn.execute(
            f"SELECT COUNT(*) FROM (SELECT {cols} FROM {table} "
            f"GROUP BY {cols} HAVING COUNT(*) > 1)"
        ).fetchone()[0]
        if dupes:
            keys_ok = False
            details.append(f"{table}: {dupes} duplicate key(s) on ({cols})")
        else:
            details.append(f"{table}: ok")

    return {
        "integrity_ok": integrity_ok,
        "tables_ok": tables_ok,
        "keys_ok": keys_ok,
        "details": details,
    }
