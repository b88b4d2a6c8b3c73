"""GET /api/v1/metadata endpoint.

Returns summary metadata about the permit database: table counts, fiscal
year ranges, departments, valuation ranges and the last import run.

Useful for:
  - Client-side filter option population
  - Checking data freshness after an import
"""

import sqlite3

from fastapi import APIRouter, Depends

from api.database import get_db
from utils.metadata import collect_metadata

router = APIRouter(prefix="/metadata", tags=["metadata"])


@router.get(
    "",
    summary="Database metadata and coverage statistics",
    response_description="Summary metadata about the permit database",
)
def get_metadata(
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    return collect_metadata(conn)
