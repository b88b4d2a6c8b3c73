"""
Tests for api/routes/frontend.py: HTML pages, the HTMX table partial,
theme handling and HTML error pages.
"""
import pytest
from starlette.requests import Request

from api.routes.frontend import resolve_theme, wants_html

HTML = {"Accept": "text/html"}


def _request(path="/", query=b"", headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": path,
                    "query_string": query, "headers": raw})


class TestPages:
    def test_index(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "kpi-card" in resp.text
        assert 'id="chart-permit-volume"' in resp.text
        assert 'id="chart-permit-distribution"' in resp.text
        assert "Total Permits (FY 2023)" in resp.text

    @pytest.mark.parametrize("kind,title", [
        ("annual", "Annual Unique Permits Analysis"),
        ("monthly", "Monthly Unique Permits Analysis"),
        ("quarterly", "Quarterly Unique Permits Analysis"),
    ])
    def test_permit_reports(self, client, kind, title):
        resp = client.get(f"/reports/permits/{kind}")
        assert resp.status_code == 200
        assert title in resp.text
        assert 'class="data-table"' in resp.text

    def test_unknown_report(self, client):
        assert client.get("/reports/permits/weekly").status_code == 404

    def test_department_report(self, client):
        resp = client.get("/reports/departments/LU")
        assert resp.status_code == 200
        assert "Land Use Activity Analysis" in resp.text
        assert "3 records" in resp.text

    def test_unknown_department(self, client):
        assert client.get("/reports/departments/XYZ").status_code == 404

    def test_inverted_year_range(self, client):
        assert client.get("/reports/permits/annual?year_from=2023&year_to=2019").status_code == 400


class TestTablePartial:
    def test_sorted_partial(self, client):
        resp = client.get("/partials/table/annual-permits?sort_by=permit_count&sort_dir=asc")
        assert resp.status_code == 200
        assert 'aria-sort="ascending"' in resp.text
        assert resp.text.index(">900<") < resp.text.index(">1,200<")

    def test_department_filter(self, client):
        resp = client.get("/partials/table/department-activity?department=PSC")
        assert "3 records" in resp.text

    def test_unknown_dataset(self, client):
        assert client.get("/partials/table/nope").status_code == 404


class TestTheme:
    def test_query_param_sets_cookie(self, client):
        resp = client.get("/?theme=dark")
        assert 'data-theme="dark"' in resp.text
        assert "theme=dark" in resp.headers["set-cookie"]

    def test_cookie_respected(self, client):
        client.cookies.set("theme", "dark")
        resp = client.get("/reports/permits/annual")
        assert 'data-theme="dark"' in resp.text

    def test_default_light(self, client):
        resp = client.get("/")
        assert 'data-theme="light"' in resp.text
        assert "set-cookie" not in resp.headers

    def test_resolve_theme(self):
        assert resolve_theme(_request(query=b"theme=dark")) == "dark"
        assert resolve_theme(_request(query=b"theme=neon")) == "light"
        assert resolve_theme(_request(headers={"Cookie": "theme=dark"})) == "dark"
        assert resolve_theme(_request(query=b"theme=light", headers={"Cookie": "theme=dark"})) == "light"


class TestErrorPages:
    def test_html_404(self, client):
        resp = client.get("/no-such-page", headers=HTML)
        assert resp.status_code == 404
        assert "Page not found" in resp.text

    def test_api_404_stays_json(self, client):
        resp = client.get("/api/v1/charts/nope", headers=HTML)
        assert resp.status_code == 404
        assert "detail" in resp.json()

    def test_wants_html(self):
        assert wants_html(_request("/reports/permits/annual", headers=HTML))
        assert not wants_html(_request("/api/v1/permits/yearly", headers=HTML))
        assert not wants_html(_request("/", headers={"Accept": "application/json"}))

    def test_html_500_page(self, db_path, monkeypatch):
        from fastapi.testclient import TestClient

        from api.app import create_app
        from utils import reports

        def boom(conn):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(reports, "list_departments", boom)
        client = TestClient(create_app(db_path), raise_server_exceptions=False)

        page = client.get("/reports/permits/annual", headers=HTML)
        assert page.status_code == 500
        assert "Something went wrong (500)" in page.text
        assert "kaboom" not in page.text

        api = client.get("/api/v1/departments", headers=HTML)
        assert api.status_code == 500
        assert api.json()["error"] == "Internal server error"
