"""
Tests for api/routes/charts.py: chart registry, titles and /api/v1/charts.
"""
import pytest

from api.routes.charts import CHARTS, annual_chart_title, monthly_chart_title
from utils.charts import THEMES


class TestTitles:
    @pytest.mark.parametrize("selected,expected", [
        (0, "Annual Permit Volume for All Years"),
        (1, "Annual Permit Volume for Selected Year"),
        (3, "Annual Permit Volume for 3 Selected Years"),
    ])
    def test_annual(self, selected, expected):
        assert annual_chart_title(selected) == expected

    @pytest.mark.parametrize("years,expected", [
        ([], "Monthly Permit Volume"),
        ([2023, 2023], "Monthly Permit Volume for FY 2023"),
        ([2023, 2021, 2022], "Monthly Permit Volume for FY 2021, 2022, 2023"),
        ([2019, 2020, 2021, 2022], "Monthly Permit Volume for Selected Years"),
    ])
    def test_monthly(self, years, expected):
        assert monthly_chart_title(years) == expected


class TestChartList:
    def test_lists_every_chart(self, client):
        data = client.get("/api/v1/charts").json()
        assert [c["name"] for c in data] == list(CHARTS)
        assert {"annual-permits", "department-workload", "permit-volume"} <= set(CHARTS)

    @pytest.mark.parametrize("name", sorted(CHARTS))
    def test_every_chart_builds(self, client, name):
        resp = client.get(f"/api/v1/charts/{name}")
        assert resp.status_code == 200, resp.text
        fig = resp.json()
        assert isinstance(fig["data"], list)
        assert fig["layout"]["title"]["text"]


class TestChartOptions:
    def test_annual_with_overlays(self, client):
        fig = client.get("/api/v1/charts/annual-permits?trend_line=true&average_line=true").json()
        assert [t["type"] for t in fig["data"]] == ["bar", "scatter", "scatter"]
        assert fig["layout"]["title"]["text"] == "Annual Permit Volume for All Years"

    def test_annual_year_selection_title(self, client):
        fig = client.get("/api/v1/charts/annual-permits?year=2022&year=2023").json()
        assert fig["layout"]["title"]["text"] == "Annual Permit Volume for 2 Selected Years"
        assert fig["data"][0]["y"] == [1050, 1200]

    def test_dark_theme(self, client):
        fig = client.get("/api/v1/charts/annual-permits?theme=dark").json()
        assert fig["layout"]["font"]["color"] == THEMES["dark"]["font"]

    def test_invalid_theme_is_422(self, client):
        assert client.get("/api/v1/charts/annual-permits?theme=sepia").status_code == 422

    def test_unknown_chart_is_404(self, client):
        resp = client.get("/api/v1/charts/nope")
        assert resp.status_code == 404
        assert "Available:" in resp.json()["detail"]

    def test_inverted_range_is_400(self, client):
        resp = client.get("/api/v1/charts/annual-permits?year_from=2023&year_to=2020")
        assert resp.status_code == 400


class TestChartContent:
    def test_monthly_permits_groups_by_year(self, client):
        fig = client.get("/api/v1/charts/monthly-permits").json()
        assert [t["name"] for t in fig["data"]] == ["2022", "2023"]
        assert fig["data"][1]["y"][:3] == [95, 85, 110]
        assert fig["layout"]["title"]["text"] == "Monthly Permit Volume for FY 2022, 2023"

    def test_quarterly_labels(self, client):
        fig = client.get("/api/v1/charts/quarterly-permits").json()
        assert fig["data"][0]["x"] == ["2022-Q1", "2022-Q2", "2023-Q1", "2023-Q2"]

    def test_valuation_ranges_stacked(self, client):
        fig = client.get("/api/v1/charts/valuation-ranges").json()
        assert [t["name"] for t in fig["data"]] == ["<$100K", "$100K-$1M", "$1M-$10M", ">$10M"]
        assert fig["layout"]["barmode"] == "stack"

    def test_single_department_title(self, client):
        fig = client.get("/api/v1/charts/department-activity?department=LU").json()
        assert fig["layout"]["title"]["text"] == "LU Activity by Year"
        assert [t["name"] for t in fig["data"]] == ["LU"]

    def test_workload_latest_year_only(self, client):
        fig = client.get("/api/v1/charts/department-workload").json()
        assert fig["layout"]["title"]["text"] == "Department Workload by Weekday (FY 2023)"
        assert fig["data"][0]["y"] == ["LU", "PSC"]

    def test_permit_distribution_horizontal(self, client):
        fig = client.get("/api/v1/charts/permit-distribution").json()
        bar = fig["data"][0]
        assert bar["orientation"] == "h"
        assert bar["y"] == ["10K-100K", "0-10K", "100K-1M", "1M-10M"]
        assert bar["x"] == [420, 320, 250, 60]
        assert fig["layout"]["title"]["text"] == "Permit Distribution by Category"
        assert fig["layout"]["xaxis"]["title"]["text"] == "Number of Permits"

    def test_distribution_boxes(self, client):
        fig = client.get("/api/v1/charts/department-distribution").json()
        assert [t["type"] for t in fig["data"]] == ["box", "box", "box"]
