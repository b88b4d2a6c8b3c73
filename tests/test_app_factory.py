"""
Tests for api/app.py: create_app() factory, health checks and middleware.
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api import app as app_module
from api.app import _fmt_number, _fmt_pct, _rate_bucket, create_app


class TestFactory:
    def test_returns_fastapi(self, db_path):
        assert isinstance(create_app(db_path), FastAPI)

    def test_routes_registered(self, db_path):
        paths = create_app(db_path).openapi()["paths"]
        for expected in (
            "/health",
            "/api/v1/permits/yearly",
            "/api/v1/permits/distribution",
            "/api/v1/departments/activity/{department}",
            "/api/v1/dashboard/overview",
            "/api/v1/charts/{name}",
            "/api/v1/datasets/{name}",
            "/api/v1/download/{name}",
            "/api/v1/metadata",
        ):
            assert expected in paths

    def test_frontend_routes_mounted(self, client):
        # HTML pages are excluded from the OpenAPI schema
        assert client.get("/reports/permits/annual").status_code == 200
        assert client.get("/static/css/style.css").status_code == 200

    def test_openapi_schema(self, client):
        resp = client.get("/openapi.json")
        assert resp.status_code == 200
        assert resp.json()["info"]["title"] == "Permit Activity Dashboard API"


class TestHealth:
    def test_ok(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["unique_permits_yearly"] == 5

    def test_no_database(self, tmp_path):
        client = TestClient(create_app(tmp_path / "missing.sqlite"))
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "no_database"

    def test_detailed(self, client):
        data = client.get("/health/detailed").json()
        assert data["table_counts"]["department_activity"] == 9
        assert set(data["cache_stats"]) == {"hits", "misses", "size"}

    def test_query_stats(self, client):
        data = client.get("/api/v1/health/queries").json()
        assert "query_count" in data["stats"]
        assert isinstance(data["slow_queries"], list)


class TestMiddleware:
    def test_security_headers(self, client):
        resp = client.get("/api/v1/permits/yearly")
        csp = resp.headers["Content-Security-Policy"]
        assert "cdn.plot.ly" in csp and "unpkg.com" in csp
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert "X-Request-ID" in resp.headers

    def test_cache_control(self, client):
        assert client.get("/api/v1/permits/yearly").headers["Cache-Control"] == "public, max-age=300"

    def test_etag_and_304(self, client):
        first = client.get("/api/v1/permits/yearly")
        etag = first.headers["ETag"]
        assert etag.startswith('W/"')
        second = client.get("/api/v1/permits/yearly", headers={"If-None-Match": etag})
        assert second.status_code == 304

    def test_no_etag_on_errors(self, client):
        resp = client.get("/api/v1/charts/nope")
        assert resp.status_code == 404
        assert "ETag" not in resp.headers

    def test_download_rate_limit_shared_across_datasets(self, client, monkeypatch):
        monkeypatch.setitem(app_module._RATE_LIMITS, "/api/v1/download", 2)
        assert client.get("/api/v1/download/annual-permits").status_code == 200
        assert client.get("/api/v1/download/monthly-permits").status_code == 200
        resp = client.get("/api/v1/download/quarterly-permits")
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"

    def test_health_not_rate_limited(self, client, monkeypatch):
        monkeypatch.setattr(app_module, "_DEFAULT_RATE_LIMIT", 1)
        for _ in range(3):
            assert client.get("/health").status_code == 200

    def test_unhandled_error_is_json_500(self, db_path, monkeypatch):
        from utils import reports

        def boom(conn):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(reports, "list_departments", boom)
        client = TestClient(create_app(db_path), raise_server_exceptions=False)
        resp = client.get("/api/v1/departments")
        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Internal server error", "detail": "kaboom", "status_code": 500,
        }


class TestHelpers:
    @pytest.mark.parametrize("path,bucket", [
        ("/api/v1/download/annual-permits", "/api/v1/download"),
        ("/api/v1/permits/yearly", "/api/v1/permits/yearly"),
    ])
    def test_rate_bucket(self, path, bucket):
        assert _rate_bucket(path)[0] == bucket

    def test_fmt_number(self):
        assert _fmt_number(1234567) == "1,234,567"
        assert _fmt_number(96.67) == "96.67"
        assert _fmt_number(100.0) == "100"
        assert _fmt_number("Increasing") == "Increasing"

    def test_fmt_pct(self):
        assert _fmt_pct(0.224) == "22.4%"
        assert _fmt_pct(None) != "0.0%"
