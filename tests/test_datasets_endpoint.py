"""
Tests for the /api/v1/datasets endpoints.
"""


def test_catalog(client):
    data = client.get("/api/v1/datasets").json()
    names = [d["name"] for d in data]
    assert "annual-permits" in names and "department-weekday" in names
    annual = next(d for d in data if d["name"] == "annual-permits")
    assert annual["columns"][0] == {"key": "fiscal_year", "label": "Fiscal Year", "sortable": True}


class TestPage:
    def test_default_page(self, client):
        data = client.get("/api/v1/datasets/annual-permits").json()
        assert data["total"] == 5
        assert data["sort_by"] == "fiscal_year"
        assert data["sort_dir"] == "desc"
        assert data["columns"] == ["fiscal_year", "permit_count", "avg_per_month"]
        assert data["items"][0]["fiscal_year"] == 2023

    def test_sort_and_paginate(self, client):
        data = client.get(
            "/api/v1/datasets/annual-permits?sort_by=permit_count&sort_dir=asc&limit=2&offset=1"
        ).json()
        assert [r["permit_count"] for r in data["items"]] == [1000, 1050]
        assert data["limit"] == 2 and data["offset"] == 1

    def test_department_filter(self, client):
        data = client.get("/api/v1/datasets/department-activity?department=LU").json()
        assert data["total"] == 3

    def test_department_ignored_for_permit_datasets(self, client):
        data = client.get("/api/v1/datasets/annual-permits?department=LU").json()
        assert data["total"] == 5

    def test_year_filters(self, client):
        data = client.get("/api/v1/datasets/valuation-bins?year=2023").json()
        assert data["total"] == 4


class TestErrors:
    def test_unknown_dataset(self, client):
        resp = client.get("/api/v1/datasets/nope")
        assert resp.status_code == 404
        assert "annual-permits" in resp.json()["detail"]

    def test_unsortable_column(self, client):
        resp = client.get("/api/v1/datasets/annual-permits?sort_by=bogus")
        assert resp.status_code == 400
        assert "Cannot sort" in resp.json()["detail"]

    def test_bad_sort_dir(self, client):
        assert client.get("/api/v1/datasets/annual-permits?sort_dir=up").status_code == 422

    def test_limit_bounds(self, client):
        assert client.get("/api/v1/datasets/annual-permits?limit=0").status_code == 422
        assert client.get("/api/v1/datasets/annual-permits?limit=501").status_code == 422

    def test_inverted_range(self, client):
        resp = client.get("/api/v1/datasets/annual-permits?year_from=2023&year_to=2019")
        assert resp.status_code == 400
