"""Trend-line arithmetic and dashboard transforms.

Everything here works on plain lists of row dicts as returned by
``utils.database.query_to_dicts``; no function touches the database.
"""

import math
from typing import Any, Iterable, Mapping, Sequence

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")

# Representative dollar value for each permit valuation bin.
VALUATION_MIDPOINTS: dict[str, int] = {
    "0-10K": 5_000,
    "10K-100K": 55_000,
    "100K-1M": 550_000,
    "1M-10M": 5_500_000,
    "10M+": 15_000_000,
}

# Display buckets for the valuation ranges chart; the two smallest bins share one.
VALUATION_RANGE_LABELS: dict[str, str] = {
    "0-10K": "<$100K",
    "10K-100K": "<$100K",
    "100K-1M": "$100K-$1M",
    "1M-10M": "$1M-$10M",
    "10M+": ">$10M",
}
VALUATION_RANGE_ORDER = ("<$100K", "$100K-$1M", "$1M-$10M", ">$10M")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, not to even."""
    return math.floor(value + 0.5)


def linear_regression(rows: Iterable[Mapping[str, Any]], x_key: str,
                      y_key: str) -> list[dict[str, float]]:
    """Least-squares trend line through ``(row[x_key], row[y_key])``.

    Returns the line's two endpoints, ``[{"x": min_x, "y": ...},
    {"x": max_x, "y": ...}]``, or ``[]`` when fewer than two rows carry
    numeric values for both keys or when every x is identical.
    """
    points = [
        (r[x_key], r[y_key]) for r in rows
        if _is_number(r.get(x_key)) and _is_number(r.get(y_key))
    ]
    n = len(points)
    if n < 2:
        return []

    sum_x = sum(x for x, _ in points)
    sum_y = sum(y for _, y in points)
    sum_xy = sum(x * y for x, y in points)
    sum_xx = sum(x * x for x, _ in points)
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return []

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    min_x = min(x for x, _ in points)
    max_x = max(x for x, _ in points)
    return [
        {"x": min_x, "y": slope * min_x + intercept},
        {"x": max_x, "y": slope * max_x + intercept},
    ]


def average(rows: Iterable[Mapping[str, Any]], y_key: str) -> float:
    """Mean of the numeric ``row[y_key]`` values; 0 when there are none."""
    values = [r[y_key] for r in rows if _is_number(r.get(y_key))]
    if not values:
        return 0
    return sum(values) / len(values)


def growth_percentage(current: float | None, previous: float | None,
                      ndigits: int = 2) -> float | None:
    """Percentage change from *previous* to *current*, rounded.

    Returns None when either value is missing or *previous* is zero.
    """
    if current is None or not previous:
        return None
    return round((current - previous) / previous * 100, ndigits)


def trend_direction(pct: float | None) -> str:
    """'up' for zero or positive change, 'down' otherwise."""
    return "down" if pct is not None and pct < 0 else "up"


def format_trend(pct: float | None) -> str:
    """Signed one-decimal percentage, e.g. ``+8.5%`` or ``-3.2%``."""
    pct = pct or 0.0
    sign = "+" if pct >= 0 else ""
    return f"{sign}{pct:.1f}%"


def average_valuation(bins: Iterable[Mapping[str, Any]]) -> int:
    """Count-weighted mean of the valuation bin midpoints, rounded to an int.

    Unknown bin labels contribute their count with a value of 0.
    """
    total_value = 0
    total_count = 0
    for b in bins:
        count = b.get("permit_count") or 0
        total_value += VALUATION_MIDPOINTS.get(b.get("bin_range"), 0) * count
        total_count += count
    if total_count == 0:
        return 0
    return round_half_up(total_value / total_count)


def valuation_by_year(bins: Iterable[Mapping[str, Any]]) -> dict[int, int]:
    """Group yearly bin rows by year and return each year's average valuation."""
    grouped: dict[int, list[Mapping[str, Any]]] = {}
    for b in bins:
        grouped.setdefault(b["year"], []).append(b)
    return {year: average_valuation(rows) for year, rows in grouped.items()}


def pivot_valuation_ranges(bins: Iterable[Mapping[str, Any]],
                           years: Sequence[int]) -> list[dict[str, Any]]:
    """One ``{"year": "2023", "<$100K": n, ...}`` object per requested year.

    Bins are folded into the display buckets of ``VALUATION_RANGE_LABELS``;
    unknown bins keep their raw label. Buckets with no permits are omitted.
    """
    wanted = set(years)
    pivot: dict[int, dict[str, Any]] = {y: {"year": str(y)} for y in years}
    for b in bins:
        if b["year"] not in wanted:
            continue
        label = VALUATION_RANGE_LABELS.get(b["bin_range"], b["bin_range"])
        bucket = pivot[b["year"]]
        bucket[label] = bucket.get(label, 0) + (b.get("permit_count") or 0)
    return [pivot[y] for y in years]


def weekday_heatmap(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Flatten weekday share rows into heatmap cells.

    Each input row yields five cells ``{department, period, year, value}``
    where ``period`` is the capitalised weekday and ``value`` the share
    expressed as a rounded percentage. Missing shares become 0.
    """
    cells = []
    for row in rows:
        for day in WEEKDAYS:
            share = row.get(day)
            cells.append({
                "department": row["department"],
                "period": day.capitalize(),
                "year": row["year"],
                "value": round_half_up(share * 100) if _is_number(share) else 0,
            })
    return cells
