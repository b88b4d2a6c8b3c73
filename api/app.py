"""
FastAPI application factory.

Usage:
    python -m api.app                    # Dev server on port 8000
    APP_DB_PATH=/data/permits.sqlite python -m api.app
    python main.py                       # Same, with CLI flags and browser launch

OpenAPI docs available at http://localhost:8000/docs after starting.

Middleware, outermost last:
    security headers (CSP allows the plotly.js and HTMX CDNs)
    request logging + per-IP rate limiting (429 with Retry-After: 60)
    weak ETag from the database file size + Cache-Control per endpoint group
    CORS (GET/HEAD/OPTIONS)

Logging is plain text by default; APP_LOG_FORMAT=json switches to one JSON
object per line carrying method, path, status, duration_ms, client_ip and
request_id.
"""

import json
import logging
import os
import sqlite3
import time
import uuid
import warnings
from collections import defaultdict
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from api.database import get_db_path, set_db_path
from api.routes import charts, dashboard, datasets, departments, download, metadata, permits
from api.routes import frontend as frontend_routes
from schema_design import DATA_TABLES
from utils.config import AppConfig
from utils.database import get_query_stats, get_slow_queries

# ── Configuration ─────────────────────────────────────────────────────────────
_cfg = AppConfig.from_env()

# ── Structured JSON logging ───────────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge extra fields added via logger.info("...", extra={...})
        for key in ("method", "path", "status", "duration_ms", "client_ip",
                    "request_id"):
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


_logger = logging.getLogger("permit_dashboard_api")
_handler = logging.StreamHandler()
if _cfg.log_format == "json":
    _handler.setFormatter(_JsonFormatter())
else:
    _handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
logging.basicConfig(handlers=[_handler], level=logging.INFO, force=True)

# ── Rate limiting state with memory bounds ────────────────────────────────────
# Keys are path prefixes; every download shares one bucket per IP.
_RATE_LIMITS: dict[str, int] = {
    "/api/v1/download": _cfg.rate_limit_download,
}
_DEFAULT_RATE_LIMIT = _cfg.rate_limit_default
_rate_counters: dict[str, dict[str, list]] = defaultdict(lambda: defaultdict(list))
_MAX_TRACKED_IPS = 10_000
_last_cleanup: float = 0.0
_CLEANUP_INTERVAL = 300.0  # 5 minutes


def _rate_bucket(path: str) -> tuple[str, int]:
    """Return the counter key and per-minute limit for *path*."""
    for prefix, limit in _RATE_LIMITS.items():
        if path.startswith(prefix):
            return prefix, limit
    return path, _DEFAULT_RATE_LIMIT


def _cleanup_rate_counters() -> None:
    """Remove stale rate counter entries to bound memory usage."""
    global _last_cleanup
    now = time.time()
    if now - _last_cleanup < _CLEANUP_INTERVAL:
        return
    _last_cleanup = now
    window_start = now - 60.0
    to_delete = []
    for ip, paths in _rate_counters.items():
        for path in list(paths.keys()):
            paths[path] = [t for t in paths[path] if t > window_start]
            if not paths[path]:
                del paths[path]
        if not paths:
            to_delete.append(ip)
    for ip in to_delete:
        del _rate_counters[ip]
    # Still over the cap: drop the IPs with the fewest recent hits
    if len(_rate_counters) > _MAX_TRACKED_IPS:
        excess = len(_rate_counters) - _MAX_TRACKED_IPS
        oldest = sorted(
            _rate_counters.keys(),
            key=lambda ip: sum(len(v) for v in _rate_counters[ip].values()),
        )[:excess]
        for ip in oldest:
            del _rate_counters[ip]


def _get_client_ip(request: Request) -> str:
    """Return the real client IP, respecting X-Forwarded-For from trusted proxies."""
    direct_ip = request.client.host if request.client else "unknown"
    if not _cfg.trusted_proxies:
        return direct_ip
    if direct_ip not in _cfg.trusted_proxies:
        return direct_ip
    xff = request.headers.get("X-Forwarded-For", "")
    if xff:
        # X-Forwarded-For: client, proxy1, proxy2 (leftmost is the client)
        real_ip = xff.split(",")[0].strip()
        if real_ip:
            return real_ip
    return direct_ip


# ── Application metrics ───────────────────────────────────────────────────────
# In-memory counters; reset on process restart.
_app_start_time: float = time.time()
_metrics: dict = {
    "request_count": 0,
    "error_count": 0,
    "blocked_count": 0,
    "response_times_ms": [],  # capped at last 100 entries
}
_RESPONSE_TIME_WINDOW = 100

# Cache-Control per endpoint group; first matching prefix wins.
_CACHE_CONTROL = (
    ("/api/v1/download", "private, no-cache"),
    ("/api/v1/metadata", "no-cache"),
    ("/api/v1/charts", "public, max-age=300"),
    ("/api/v1/datasets", "public, max-age=300"),
    ("/api/v1/dashboard", "public, max-age=300"),
    ("/api/v1/permits", "public, max-age=300"),
    ("/api/v1/departments", "public, max-age=300"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warn on startup when the database has not been built yet."""
    db_path = get_db_path()
    if not db_path.exists():
        warnings.warn(
            f"Database not found at {db_path}. "
            "Run 'python import_data.py' first.",
            stacklevel=2,
        )
    yield


def _with_params(query_params, **changes) -> str:
    """Jinja filter: current query string with *changes* applied.

    A value of None removes the key; list values become repeated keys.
    """
    pairs = [(k, v) for k, v in query_params.multi_items() if k not in changes]
    for key, value in changes.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, str(v)) for v in value)
        else:
            pairs.append((key, str(value)))
    return urlencode(pairs)


def _fmt_number(value) -> str:
    """Jinja filter: thousands separators, "n/a" for missing values."""
    if value is None:
        return "n/a"
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    try:
        return f"{int(value):,}"
    except (TypeError, ValueError):
        return str(value)


def _fmt_pct(share) -> str:
    """Jinja filter: a 0..1 share as a percentage with one decimal."""
    if share is None:
        return "n/a"
    return f"{share * 100:.1f}%"


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Override the database path (useful for testing).

    Returns:
        Configured FastAPI application instance.
    """
    if db_path is not None:
        set_db_path(db_path)

    app = FastAPI(
        title="Permit Activity Dashboard API",
        summary="REST API over permit volume and department activity aggregates.",
        description=(
            "## Permit Activity Dashboard API\n\n"
            "Aggregate queries over unique permit counts (yearly, monthly, quarterly, "
            "by valuation range) and department activity, plus Plotly chart figures, "
            "paginated table datasets and CSV/XLSX/NDJSON downloads.\n\n"
            "### Filters\n"
            "Most list endpoints accept `year` (repeatable), `year_from` and `year_to`; "
            "department endpoints also accept `department` (repeatable). "
            "An inverted year range returns `400`.\n\n"
            "### Rate limits\n"
            f"- `/api/v1/download`: {_cfg.rate_limit_download} req/min per IP\n"
            f"- All other endpoints: {_cfg.rate_limit_default} req/min per IP\n\n"
            "Returns `429 Too Many Requests` with `Retry-After: 60` when exceeded.\n\n"
            "### Data freshness\n"
            "Data changes only when `import_data.py` runs; see `/api/v1/metadata` "
            "for the last import run."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "permits", "description": "Unique permit counts by period and valuation range."},
            {"name": "departments", "description": "Department activity totals, weekday shares and distributions."},
            {"name": "dashboard", "description": "Summary statistics, KPIs, trends and KPI cards."},
            {"name": "charts", "description": "Plotly figure JSON for the dashboard and report pages."},
            {"name": "datasets", "description": "Sorted, filtered, paginated table data."},
            {"name": "download", "description": "Dataset export as CSV, Excel or NDJSON."},
            {"name": "metadata", "description": "Table counts, year ranges and import history."},
            {"name": "meta", "description": "Health checks."},
        ],
    )

    # ── CORS middleware ───────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── ETag + Cache-Control middleware ───────────────────────────────────────

    _etag_value: str | None = None
    _etag_size: int = 0

    def _compute_etag() -> str | None:
        """Compute a weak ETag from the database file size.

        SQLite WAL mode may touch mtime on reads, so only a size change is
        treated as a data modification.
        """
        nonlocal _etag_value, _etag_size
        path = get_db_path()
        if not path.exists():
            return None
        try:
            size = path.stat().st_size
        except OSError:
            return None
        if _etag_value and size == _etag_size:
            return _etag_value
        _etag_size = size
        _etag_value = f'W/"{size:x}"'
        return _etag_value

    @app.middleware("http")
    async def cache_control_middleware(request: Request, call_next):
        """Add Cache-Control headers and handle ETag/If-None-Match."""
        path = request.url.path

        etag = None
        if request.method == "GET" and path.startswith("/api/v1"):
            etag = _compute_etag()
            if etag:
                if_none_match = request.headers.get("If-None-Match")
                if if_none_match and if_none_match == etag:
                    return Response(status_code=304, headers={"ETag": etag})

        response = await call_next(request)

        if etag and response.status_code == 200:
            response.headers["ETag"] = etag
        for prefix, value in _CACHE_CONTROL:
            if path.startswith(prefix):
                response.headers.setdefault("Cache-Control", value)
                break
        return response

    # ── Request logging + rate limiting middleware ────────────────────────────

    @app.middleware("http")
    async def log_and_rate_limit(request: Request, call_next):
        """Log each request, enforce per-IP rate limits, and record metrics."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        client_ip = _get_client_ip(request)
        path = request.url.path

        _cleanup_rate_counters()

        # Health check bypass, not rate limited
        if path == "/health":
            return await call_next(request)

        bucket, limit = _rate_bucket(path)
        now = time.time()
        window_start = now - 60.0
        hits = _rate_counters[client_ip][bucket]
        _rate_counters[client_ip][bucket] = [t for t in hits if t > window_start]
        if len(_rate_counters[client_ip][bucket]) >= limit:
            _metrics["blocked_count"] += 1
            _logger.warning(
                "rate_limited ip=%s path=%s limit=%d", client_ip, path, limit
            )
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests", "status_code": 429},
                headers={"Retry-After": "60"},
            )
        _rate_counters[client_ip][bucket].append(now)

        _metrics["request_count"] += 1
        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000

        _metrics["response_times_ms"].append(duration_ms)
        if len(_metrics["response_times_ms"]) > _RESPONSE_TIME_WINDOW:
            _metrics["response_times_ms"] = (
                _metrics["response_times_ms"][-_RESPONSE_TIME_WINDOW:]
            )
        if response.status_code >= 500:
            _metrics["error_count"] += 1

        response.headers["X-Request-ID"] = request_id

        if _cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "client_ip": client_ip,
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f ip=%s rid=%s",
                request.method, path, response.status_code, duration_ms,
                client_ip, request_id,
            )
        if duration_ms > 500:
            _logger.warning(
                "slow_request method=%s path=%s duration_ms=%.1f",
                request.method, path, duration_ms,
            )
        return response

    # ── Content Security Policy + security headers ───────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        """Add Content-Security-Policy, X-Content-Type-Options, and X-Frame-Options."""
        response = await call_next(request)
        # plotly.js needs blob: for PNG export and inline styles for its SVG.
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' cdn.plot.ly unpkg.com 'unsafe-inline' 'unsafe-eval'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: blob:; "
            "font-src 'self' data:; "
            "connect-src 'self';"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of a traceback."""
        _logger.exception("unhandled_error path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc),
                "status_code": 500,
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"error": "Bad request", "detail": str(exc), "status_code": 400},
        )

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK if the API is running and can read the database."""
        path = get_db_path()
        if not path.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "no_database", "database": str(path)},
            )
        try:
            conn = sqlite3.connect(str(path))
            try:
                count = conn.execute(
                    "SELECT COUNT(*) FROM unique_permits_yearly"
                ).fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(e)},
            )
        return {"status": "ok", "database": str(path), "unique_permits_yearly": count}

    @app.get(
        "/health/detailed",
        tags=["meta"],
        summary="Detailed health metrics",
        response_description="Operational metrics for monitoring dashboards",
    )
    def health_detailed():
        """Return uptime, request/error counters, table counts and cache stats.

        Counters reset on process restart.
        """
        path = get_db_path()
        if not path.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "no_database", "database": str(path)},
            )

        try:
            conn = sqlite3.connect(str(path))
            try:
                counts = {
                    table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                    for table in DATA_TABLES
                }
            finally:
                conn.close()
        except sqlite3.Error as exc:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(exc)},
            )

        rts = _metrics["response_times_ms"]
        avg_rt = round(sum(rts) / len(rts), 2) if rts else 0.0
        qstats = get_query_stats()

        return {
            "status": "ok",
            "uptime_seconds": round(time.time() - _app_start_time, 2),
            "request_count": _metrics["request_count"],
            "error_count": _metrics["error_count"],
            "db_size_bytes": os.path.getsize(str(path)),
            "table_counts": counts,
            "avg_response_time_ms": avg_rt,
            "rate_limiter_stats": {
                "tracked_ips": len(_rate_counters),
                "blocked_requests": _metrics["blocked_count"],
            },
            "cache_stats": dashboard._summary_cache.stats(),
            "slow_query_count": qstats["slow_query_count"],
            "avg_query_time_ms": qstats["avg_query_time_ms"],
        }

    @app.get(
        "/api/v1/health/queries",
        tags=["meta"],
        summary="Slow query log",
        response_description="Recent slow queries for performance monitoring",
    )
    def health_queries():
        """Return query timing stats and the most recent slow queries."""
        return {
            "stats": get_query_stats(),
            "slow_queries": get_slow_queries(),
        }

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/api/v1"
    app.include_router(permits.router,     prefix=prefix)
    app.include_router(departments.router, prefix=prefix)
    app.include_router(dashboard.router,   prefix=prefix)
    app.include_router(charts.router,      prefix=prefix)
    app.include_router(datasets.router,    prefix=prefix)
    app.include_router(download.router,    prefix=prefix)
    app.include_router(metadata.router,    prefix=prefix)

    # ── Static files + Jinja2 templates ───────────────────────────────────────
    _here = Path(__file__).parent.parent  # project root

    static_dir = _here / "static"
    templates_dir = _here / "templates"

    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    if templates_dir.exists():
        templates = Jinja2Templates(directory=str(templates_dir))
        templates.env.filters["with_params"] = _with_params
        templates.env.filters["fmt_number"] = _fmt_number
        templates.env.filters["fmt_pct"] = _fmt_pct

        frontend_routes.set_templates(templates)
        app.include_router(frontend_routes.router)

        # Custom HTML error pages for 404/500
        frontend_routes.register_error_handlers(app)

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
