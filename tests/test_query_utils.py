"""
Tests for utils/query.py: WHERE / ORDER BY builders and month ordering.
"""
import sqlite3

import pytest

from utils.query import (
    MONTH_ORDER_SQL,
    MONTHS,
    build_order_clause,
    build_where_clause,
    validate_year_range,
)


class TestBuildWhereClause:
    def test_no_filters(self):
        assert build_where_clause() == ("", [])

    def test_years_in_list(self):
        where, params = build_where_clause("fiscal_year", years=[2022, 2023])
        assert where == "WHERE fiscal_year IN (?,?)"
        assert params == [2022, 2023]

    def test_range_bounds(self):
        where, params = build_where_clause("year", year_from=2020, year_to=2022)
        assert where == "WHERE year >= ? AND year <= ?"
        assert params == [2020, 2022]

    def test_departments_need_a_column(self):
        assert build_where_clause("year", departments=["LU"]) == ("", [])
        where, params = build_where_clause(
            "year", departments=["LU", "PSC"], department_column="department",
        )
        assert where == "WHERE department IN (?,?)"
        assert params == ["LU", "PSC"]

    def test_all_filters_combined(self):
        where, params = build_where_clause(
            "year", [2023], 2020, 2024, ["PSC"], department_column="department",
        )
        assert where.count(" AND ") == 3
        assert params == [2023, 2020, 2024, "PSC"]

    def test_empty_lists_ignored(self):
        assert build_where_clause("year", years=[], departments=[],
                                  department_column="department") == ("", [])

    def test_inverted_range_raises(self):
        with pytest.raises(ValueError, match="year_from"):
            build_where_clause("year", year_from=2024, year_to=2020)


class TestValidateYearRange:
    def test_equal_bounds_ok(self):
        validate_year_range(2023, 2023)

    def test_single_bound_ok(self):
        validate_year_range(2023, None)
        validate_year_range(None, 2019)


class TestBuildOrderClause:
    ALLOWED = {"fiscal_year": "fiscal_year", "permit_count": "permit_count"}

    def test_valid_sort(self):
        clause = build_order_clause("permit_count", "asc", self.ALLOWED, "fiscal_year")
        assert clause == "ORDER BY permit_count ASC"

    def test_unknown_sort_falls_back(self):
        clause = build_order_clause("id; DROP TABLE x", "desc", self.ALLOWED, "fiscal_year")
        assert clause == "ORDER BY fiscal_year DESC"

    def test_direction_case_insensitive(self):
        assert build_order_clause("fiscal_year", "DESC", self.ALLOWED, "fiscal_year").endswith("DESC")
        assert build_order_clause("fiscal_year", "sideways", self.ALLOWED, "fiscal_year").endswith("ASC")

    def test_tiebreak_appended(self):
        clause = build_order_clause("fiscal_year", "desc", self.ALLOWED, "fiscal_year",
                                    tiebreak="permit_count")
        assert clause == "ORDER BY fiscal_year DESC, permit_count"

    def test_tiebreak_same_as_sort_skipped(self):
        clause = build_order_clause("fiscal_year", "asc", self.ALLOWED, "fiscal_year",
                                    tiebreak="fiscal_year")
        assert clause == "ORDER BY fiscal_year ASC"


class TestMonthOrder:
    def test_months_sort_in_calendar_order(self):
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE TABLE t (month TEXT)")
            conn.executemany("INSERT INTO t VALUES (?)",
                             [(m,) for m in ("Dec", "Apr", "Jan", "Aug", "Feb")])
            rows = conn.execute(f"SELECT month FROM t ORDER BY {MONTH_ORDER_SQL}").fetchall()
        finally:
            conn.close()
        assert [r[0] for r in rows] == ["Jan", "Feb", "Apr", "Aug", "Dec"]

    def test_twelve_months(self):
        assert len(MONTHS) == 12
        assert MONTHS[0] == "Jan" and MONTHS[-1] == "Dec"
