"""
Shared numeric helpers for the analytics engines.

Design Pattern: Utility Module Pattern
Algorithm: Decimal-based half-up rounding, simple aggregates
Big O: O(n) for aggregates over n values
"""

import math
import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from ..errors import ValidationError
from ..models import PeriodSummary, WindowSummary

_SEASON_RE = re.compile(r"^(\d{4})-(\d{2})$")


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round half away from zero (``round()`` would use banker's rounding).

    Examples:
        >>> round_half_up(62.5)
        63
        >>> round_half_up(18.85, 1)
        18.9
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded.is_zero():
        # no "-0.0" from float noise
        rounded = rounded.copy_abs()
    return int(rounded) if digits == 0 else float(rounded)


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    variance = sum((v - avg) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def hit_rate(hits: int, total: int) -> int:
    """Percentage of hits, rounded half-up to a whole number."""
    if total <= 0:
        return 0
    return round_half_up(hits / total * 100)


def summarize_window(values: Sequence[float], line: float) -> WindowSummary:
    if not values:
        return WindowSummary()
    hits = sum(1 for v in values if v >= line)
    return WindowSummary(
        hit_rate=hit_rate(hits, len(values)),
        average=round_half_up(mean(values), 1),
        games=len(values),
    )


def summarize_period(values: Sequence[float]) -> PeriodSummary:
    if not values:
        return PeriodSummary()
    return PeriodSummary(average=round_half_up(mean(values), 1), games=len(values))


def season_bounds(season: str) -> tuple[date, date]:
    """
    Date range covered by a season label.

    A season runs from October 1 of its first year through June 30 of the
    next, which covers the regular season and the playoffs.

    Examples:
        >>> season_bounds("2023-24")
        (datetime.date(2023, 10, 1), datetime.date(2024, 6, 30))
    """
    match = _SEASON_RE.match((season or "").strip())
    if not match:
        raise ValidationError(f"Season must look like '2023-24', got {season!r}")
    start_year = int(match.group(1))
    if int(match.group(2)) != (start_year + 1) % 100:
        raise ValidationError(f"Season {season!r} does not span consecutive years")
    return date(start_year, 10, 1), date(start_year + 1, 6, 30)


def previous_season(season: str) -> str:
    start, _ = season_bounds(season)
    prev = start.year - 1
    return f"{prev}-{(prev + 1) % 100:02d}"
