"""
Frontend HTML routes.

Serves the Jinja2 templates for the dashboard, the report pages and the
table partial. Charts are drawn client side: each page lists the chart
names it shows and static/js/dashboard.js fetches ``/api/v1/charts/{name}``
and renders it with plotly.js.

Routes:
    GET /                               → index.html (KPI cards + dashboard charts)
    GET /reports/permits/{kind}         → report.html (annual | monthly | quarterly)
    GET /reports/departments/{dept}     → department.html
    GET /partials/table/{dataset}       → partials/table.html (HTMX swap target)

Theme: ``?theme=light|dark`` wins and is remembered in the ``theme`` cookie;
otherwise the cookie, otherwise light.
"""

import logging
import sqlite3
from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.database import get_db
from api.routes.charts import CHARTS
from utils import reports
from utils.charts import THEMES
from utils.datasets import Dataset, TableQuery, available_years, count_rows, fetch_page, get_dataset

router = APIRouter(tags=["frontend"])
logger = logging.getLogger(__name__)

# Templates instance is set by create_app() after mounting.
_templates: Jinja2Templates | None = None

PAGE_SIZE = 25
THEME_COOKIE = "theme"
DEFAULT_THEME = "light"

PERMIT_REPORTS: dict[str, dict[str, Any]] = {
    "annual": {
        "title": "Annual Unique Permits Analysis",
        "dataset": "annual-permits",
        "charts": ["annual-permits", "valuation-bins"],
    },
    "monthly": {
        "title": "Monthly Unique Permits Analysis",
        "dataset": "monthly-permits",
        "charts": ["monthly-trend", "monthly-permits"],
    },
    "quarterly": {
        "title": "Quarterly Unique Permits Analysis",
        "dataset": "quarterly-permits",
        "charts": ["quarterly-permits"],
    },
}

DEPARTMENT_TITLES = {
    "LU": "Land Use Activity Analysis",
    "PLN Check": "Plan Check Activity Analysis",
    "PSC": "PSC Activity Analysis",
}

DASHBOARD_CHARTS = [
    "permit-volume",
    "valuation-ranges",
    "permit-distribution",
    "department-trends",
    "department-workload",
    "department-distribution",
]


def set_templates(t: Jinja2Templates) -> None:
    global _templates
    _templates = t


def _tmpl() -> Jinja2Templates:
    if _templates is None:
        raise RuntimeError("Templates not initialised, call set_templates() first")
    return _templates


def resolve_theme(request: Request) -> str:
    """Theme from the query string, then the cookie, then the default."""
    for candidate in (request.query_params.get("theme"), request.cookies.get(THEME_COOKIE)):
        if candidate in THEMES:
            return candidate
    return DEFAULT_THEME


def _render(request: Request, name: str, context: dict[str, Any],
            status_code: int = 200) -> HTMLResponse:
    theme = resolve_theme(request)
    response = _tmpl().TemplateResponse(
        request, name, {"theme": theme, **context}, status_code=status_code,
    )
    if request.query_params.get("theme") in THEMES:
        response.set_cookie(THEME_COOKIE, theme, max_age=365 * 24 * 3600, samesite="lax")
    return response


def _opt_int(value: str | None) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except ValueError:
        return None


def _parse_table_params(request: Request) -> dict[str, Any]:
    """Extract table sort, page and filter params from the query string."""
    params = request.query_params
    years = [y for y in (_opt_int(v) for v in params.getlist("year")) if y is not None]
    return {
        "sort_by":   params.get("sort_by") or None,
        "sort_dir":  params.get("sort_dir") or None,
        "page":      max(1, _opt_int(params.get("page")) or 1),
        "years":     years or None,
        "year_from": _opt_int(params.get("year_from")),
        "year_to":   _opt_int(params.get("year_to")),
    }


def _table_context(request: Request, conn: sqlite3.Connection, dataset: Dataset,
                   departments: list[str] | None = None) -> dict[str, Any]:
    """Run one paginated table query and return template context vars."""
    filters = _parse_table_params(request)
    try:
        query = TableQuery(
            dataset,
            sort_by=filters["sort_by"],
            sort_dir=filters["sort_dir"],
            years=filters["years"],
            year_from=filters["year_from"],
            year_to=filters["year_to"],
            departments=departments,
        )
        total = count_rows(conn, query)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None

    chart_params: list[tuple[str, Any]] = [("year", y) for y in filters["years"] or []]
    chart_params += [(k, filters[k]) for k in ("year_from", "year_to") if filters[k] is not None]
    chart_params += [("department", d) for d in departments or []]

    total_pages = max(1, (total + PAGE_SIZE - 1) // PAGE_SIZE)
    page = min(filters["page"], total_pages)
    table = fetch_page(conn, query, limit=PAGE_SIZE, offset=(page - 1) * PAGE_SIZE)
    return {
        "dataset":     dataset,
        "table":       table,
        "columns":     query.selected,
        "page":        page,
        "total_pages": total_pages,
        "filters":     filters,
        "department":  departments[0] if departments else None,
        "chart_query": urlencode(chart_params),
    }


def _chart_entries(names: list[str]) -> list[dict[str, str]]:
    return [{"name": n, "title": CHARTS[n].title} for n in names]


def _nav_context(conn: sqlite3.Connection) -> dict[str, Any]:
    return {
        "nav_reports": [(kind, page["title"]) for kind, page in PERMIT_REPORTS.items()],
        "nav_departments": [d["department"] for d in reports.list_departments(conn)],
    }


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(request: Request, conn: sqlite3.Connection = Depends(get_db)) -> HTMLResponse:
    """Dashboard landing page."""
    return _render(request, "index.html", {
        "title":    "Dashboard",
        "overview": reports.dashboard_overview(conn),
        "summary":  reports.dashboard_summary(conn),
        "charts":   _chart_entries(DASHBOARD_CHARTS),
        **_nav_context(conn),
    })


@router.get("/reports/permits/{kind}", response_class=HTMLResponse, include_in_schema=False)
def permit_report(kind: str, request: Request,
                  conn: sqlite3.Connection = Depends(get_db)) -> HTMLResponse:
    """Chart + sortable table page for annual, monthly or quarterly permits."""
    page = PERMIT_REPORTS.get(kind)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Unknown report '{kind}'")
    dataset = get_dataset(page["dataset"])
    return _render(request, "report.html", {
        "title":       page["title"],
        "charts":      _chart_entries(page["charts"]),
        "year_options": available_years(conn, dataset),
        **_table_context(request, conn, dataset),
        **_nav_context(conn),
    })


@router.get("/reports/departments/{department}", response_class=HTMLResponse,
            include_in_schema=False)
def department_report(department: str, request: Request,
                      conn: sqlite3.Connection = Depends(get_db)) -> HTMLResponse:
    """Activity chart, weekday heatmap and activity table for one department."""
    if not reports.department_exists(conn, department):
        raise HTTPException(status_code=404, detail=f"Department '{department}' not found")
    dataset = get_dataset("department-activity")
    return _render(request, "department.html", {
        "title":        DEPARTMENT_TITLES.get(department, f"{department} Activity Analysis"),
        "charts":       _chart_entries(["department-activity", "department-workload"]),
        "weekday_rows": reports.department_weekday(conn, departments=[department]),
        "year_options": available_years(conn, dataset),
        **_table_context(request, conn, dataset, departments=[department]),
        **_nav_context(conn),
    })


@router.get("/partials/table/{dataset_name}", response_class=HTMLResponse,
            include_in_schema=False)
def table_partial(dataset_name: str, request: Request,
                  conn: sqlite3.Connection = Depends(get_db)) -> HTMLResponse:
    """HTMX partial: sorted, filtered, paginated table."""
    try:
        dataset = get_dataset(dataset_name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown dataset '{dataset_name}'") from None
    departments = request.query_params.getlist("department") or None
    if not dataset.department_column:
        departments = None
    return _render(request, "partials/table.html",
                   _table_context(request, conn, dataset, departments))


# ── HTML error pages ──────────────────────────────────────────────────────────

def wants_html(request: Request) -> bool:
    """True for browser page requests (not API calls or fetches for JSON)."""
    if request.url.path.startswith("/api/"):
        return False
    return "text/html" in request.headers.get("accept", "")


def register_error_handlers(app: FastAPI) -> None:
    """Render errors/404.html and errors/500.html for browser requests.

    API calls keep the JSON responses: HTTP errors go to FastAPI's default
    handler and unhandled exceptions to the handler *app* already has
    registered for ``Exception``.
    """
    json_error_handler = app.exception_handlers.get(Exception)

    @app.exception_handler(StarletteHTTPException)
    async def html_http_exception_handler(request: Request, exc: StarletteHTTPException):
        if not wants_html(request):
            return await http_exception_handler(request, exc)
        template = "errors/404.html" if exc.status_code == 404 else "errors/500.html"
        return _tmpl().TemplateResponse(
            request, template,
            {"theme": resolve_theme(request), "title": "Error",
             "status_code": exc.status_code, "detail": exc.detail},
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def html_exception_handler(request: Request, exc: Exception):
        if not wants_html(request) and json_error_handler is not None:
            return await json_error_handler(request, exc)
        logger.exception("unhandled_error path=%s", request.url.path)
        return _tmpl().TemplateResponse(
            request, "errors/500.html",
            {"theme": resolve_theme(request), "title": "Error",
             "status_code": 500, "detail": "Internal server error"},
            status_code=500,
        )
