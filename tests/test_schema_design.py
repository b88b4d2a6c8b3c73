"""
Tests for schema_design.py: tables, natural keys, migrations and integrity checks.
"""
import sqlite3

import pytest

from schema_design import (
    DATA_TABLES,
    NATURAL_KEYS,
    SCHEMA_VERSION,
    check_database_integrity,
    create_database,
    migrate,
)


@pytest.fixture()
def db(tmp_path):
    conn = create_database(tmp_path / "schema.sqlite")
    yield conn
    conn.close()


def _tables(conn):
    return {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}


class TestCreateDatabase:
    def test_creates_all_data_tables(self, db):
        assert set(DATA_TABLES) <= _tables(db)

    def test_creates_import_runs_and_schema_version(self, db):
        assert {"import_runs", "schema_version"} <= _tables(db)

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "db.sqlite"
        conn = create_database(path)
        conn.close()
        assert path.exists()

    def test_row_factory_is_row(self, db):
        row = db.execute("SELECT 1 AS one").fetchone()
        assert row["one"] == 1

    def test_updated_at_triggers_exist(self, db):
        triggers = {
            r[0] for r in db.execute("SELECT name FROM sqlite_master WHERE type='trigger'")
        }
        for table in DATA_TABLES:
            assert f"trg_{table}_updated_at" in triggers


class TestConstraints:
    def test_natural_key_is_unique(self, db):
        db.execute("INSERT INTO unique_permits_yearly (fiscal_year, permit_count) VALUES (2023, 1)")
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO unique_permits_yearly (fiscal_year, permit_count) VALUES (2023, 2)"
            )

    def test_negative_count_rejected(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO department_activity (year, activity_count, department) "
                "VALUES (2023, -1, 'LU')"
            )

    def test_same_month_different_year_allowed(self, db):
        db.execute("INSERT INTO unique_permits_monthly (month, permit_count, year) VALUES ('Jan', 1, 2022)")
        db.execute("INSERT INTO unique_permits_monthly (month, permit_count, year) VALUES ('Jan', 1, 2023)")
        count = db.execute("SELECT COUNT(*) FROM unique_permits_monthly").fetchone()[0]
        assert count == 2

    def test_weekday_shares_nullable(self, db):
        db.execute(
            "INSERT INTO department_activity_weekday (year, department) VALUES (2023, 'LU')"
        )
        row = db.execute("SELECT monday, friday FROM department_activity_weekday").fetchone()
        assert row["monday"] is None and row["friday"] is None

    def test_natural_keys_cover_every_data_table(self):
        assert set(NATURAL_KEYS) == set(DATA_TABLES)


class TestMigrate:
    def test_version_recorded(self, db):
        version = db.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
        assert version == SCHEMA_VERSION

    def test_second_run_is_noop(self, db):
        assert migrate(db) == 0
        rows = db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        assert rows == SCHEMA_VERSION

    def test_fresh_connection_applies_all(self):
        conn = sqlite3.connect(":memory:")
        try:
            assert migrate(conn) == SCHEMA_VERSION
        finally:
            conn.close()


class TestIntegrity:
    def test_clean_database_passes(self, db):
        result = check_database_integrity(db)
        assert result["integrity_ok"]
        assert result["tables_ok"]
        assert result["keys_ok"]
        assert "integrity_check: ok" in result["details"]

    def test_missing_table_reported(self, db):
        db.execute("DROP TABLE department_activity_weekday")
        result = check_database_integrity(db)
        assert result["tables_ok"] is False
        assert "department_activity_weekday: missing" in result["details"]
