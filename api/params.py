"""Query-parameter dependencies shared by the permit, department and chart routes."""

from typing import Any

from fastapi import Query


class YearFilters:
    """``year`` (repeatable), ``year_from`` and ``year_to``."""

    def __init__(
        self,
        year: list[int] | None = Query(None, description="Restrict to these fiscal year(s)"),
        year_from: int | None = Query(None, description="Earliest fiscal year (inclusive)"),
        year_to: int | None = Query(None, description="Latest fiscal year (inclusive)"),
    ) -> None:
        self.years = year
        self.year_from = year_from
        self.year_to = year_to

    def kwargs(self) -> dict[str, Any]:
        return {"years": self.years, "year_from": self.year_from, "year_to": self.year_to}


class DepartmentFilters(YearFilters):
    """Year filters plus ``department`` (repeatable)."""

    def __init__(
        self,
        year: list[int] | None = Query(None, description="Restrict to these fiscal year(s)"),
        year_from: int | None = Query(None, description="Earliest fiscal year (inclusive)"),
        year_to: int | None = Query(None, description="Latest fiscal year (inclusive)"),
        department: list[str] | None = Query(None, description="Restrict to these department code(s)"),
    ) -> None:
        super().__init__(year, year_from, year_to)
        self.departments = department

    def kwargs(self) -> dict[str, Any]:
        return {**super().kwargs(), "departments": self.departments}
