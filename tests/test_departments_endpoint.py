"""
Tests for the /api/v1/departments endpoints.
"""
import sqlite3

import pytest


def test_list_departments(client):
    data = client.get("/api/v1/departments").json()
    assert [d["department"] for d in data] == ["LU", "PLN Check", "PSC"]
    assert data[2]["total_activity"] == 970


class TestActivity:
    def test_all_rows(self, client):
        data = client.get("/api/v1/departments/activity").json()
        assert len(data) == 9
        assert data[0] == {"year": 2023, "activity_count": 150, "department": "LU"}

    def test_department_filter(self, client):
        data = client.get("/api/v1/departments/activity?department=LU&department=PSC&year=2022").json()
        assert {(r["department"], r["activity_count"]) for r in data} == {("LU", 120), ("PSC", 320)}

    def test_inverted_range(self, client):
        resp = client.get("/api/v1/departments/activity?year_from=2024&year_to=2020")
        assert resp.status_code == 400


class TestSingleDepartment:
    def test_rows_for_department(self, client):
        data = client.get("/api/v1/departments/activity/PSC").json()
        assert [r["year"] for r in data] == [2023, 2022, 2021]
        assert all(r["department"] == "PSC" for r in data)

    def test_name_with_space(self, client):
        data = client.get("/api/v1/departments/activity/PLN%20Check?year=2023").json()
        assert data == [{"year": 2023, "activity_count": 190, "department": "PLN Check"}]

    def test_unknown_department_is_404(self, client):
        resp = client.get("/api/v1/departments/activity/XYZ")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Department 'XYZ' not found"


class TestWeekday:
    def test_weekday_rows(self, client):
        data = client.get("/api/v1/departments/activity/weekday?department=LU").json()
        assert [r["year"] for r in data] == [2023, 2022]
        assert data[1]["friday"] is None
        assert data[1]["monday"] == pytest.approx(0.25)

    def test_weekday_route_not_shadowed(self, client):
        resp = client.get("/api/v1/departments/activity/weekday")
        assert resp.status_code == 200
        assert "monday" in resp.json()[0]


class TestWorkloadDistribution:
    def test_workload_cells(self, client):
        data = client.get("/api/v1/departments/workload?year=2023&department=PSC").json()
        assert [c["period"] for c in data] == ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
        assert [c["value"] for c in data] == [22, 21, 20, 19, 18]

    def test_workload_half_shares_round_up(self, client, db_path):
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "UPDATE department_activity_weekday SET monday = 0.125, tuesday = 0.165 "
            "WHERE department = 'PSC' AND year = 2023"
        )
        conn.commit()
        conn.close()
        data = client.get("/api/v1/departments/workload?year=2023&department=PSC").json()
        assert [c["value"] for c in data][:2] == [13, 17]

    def test_distribution(self, client):
        data = client.get("/api/v1/departments/distribution").json()
        assert data[0]["name"] == "LU"
        assert data[0]["values"] == [100, 120, 150]
        assert data[0]["color"].startswith("rgb(")
