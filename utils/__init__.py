"""Shared utilities for the permit dashboard.

Submodules:
    cache         in-memory TTL cache for dashboard responses
    calculations  trend lines, growth percentages, valuation and heatmap transforms
    charts        Plotly figure builders and light/dark themes
    config        importer and app configuration from environment variables
    database      connection pragmas, query helpers, batch upserts, query timing
    datasets      registry of tabular datasets for tables and downloads
    metadata      database summary for /api/v1/metadata
    query         WHERE / ORDER BY builders and month ordering
    reports       SQL report queries shared by routes, charts and pages
"""

# Cache
from utils.cache import TTLCache, make_key

# Calculations
from utils.calculations import (
    average,
    average_valuation,
    format_trend,
    growth_percentage,
    linear_regression,
    trend_direction,
)

# Configuration
from utils.config import AppConfig, ImportConfig

# Database utilities
from utils.database import (
    batch_upsert,
    get_query_stats,
    get_table_count,
    init_pragmas,
    query_to_dicts,
    table_exists,
)

# Query builders
from utils.query import MONTHS, build_order_clause, build_where_clause

__all__ = [
    "TTLCache",
    "make_key",
    "average",
    "average_valuation",
    "format_trend",
    "growth_percentage",
    "linear_regression",
    "trend_direction",
    "AppConfig",
    "ImportConfig",
    "batch_upsert",
    "get_query_stats",
    "get_table_count",
    "init_pragmas",
    "query_to_dicts",
    "table_exists",
    "MONTHS",
    "build_order_clause",
    "build_where_clause",
]
