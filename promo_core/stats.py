"""Small numeric helpers shared by the aggregators."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half up to ``digits`` decimals, the way persisted rates are rounded."""
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return rounded


def round_int(value: float) -> int:
    return int(math.floor(value + 0.5))


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float | None:
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def percentile_nearest_rank(values: Sequence[float], pct: float = 0.95) -> float:
    """Nearest-rank percentile: sort ascending, take index ``ceil(pct * n) - 1``."""
    if not values:
        return 0
    ordered = sorted(values)
    index = max(0, math.ceil(pct * len(ordered)) - 1)
    return ordered[index]


def population_stddev(values: Sequence[float], center: float | None = None) -> float:
    if not values:
        return 0.0
    if center is None:
        center = mean(values)
    variance = sum((v - center) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 date or datetime, treating naive values as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_between(start: datetime, end: datetime) -> float:
    return abs((end - start).total_seconds()) / 86400


def iso_week(moment: datetime) -> str:
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"
