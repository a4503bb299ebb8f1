"""
Composite stat calculator - map a box-score line to the scalar a prop is graded on.

Design Pattern: Lookup Table Pattern
Algorithm: Dictionary of field tuples, summed per record
Big O: O(1) per record
"""

from .models import GameStatRecord

# category -> raw fields that are summed
STAT_COMPONENTS: dict[str, tuple[str, ...]] = {
    "pts": ("pts",),
    "reb": ("reb",),
    "ast": ("ast",),
    "stl": ("stl",),
    "blk": ("blk",),
    "turnover": ("turnover",),
    "fgm": ("fgm",),
    "fg3m": ("fg3m",),
    "ftm": ("ftm",),
    "pra": ("pts", "reb", "ast"),
    "pr": ("pts", "reb"),
    "pa": ("pts", "ast"),
    "ra": ("reb", "ast"),
}

# Provider spellings seen in feeds
CATEGORY_ALIASES: dict[str, str] = {
    "3ptm": "fg3m",
    "tov": "turnover",
}

STAT_LABELS: dict[str, str] = {
    "pts": "Points",
    "reb": "Rebounds",
    "ast": "Assists",
    "stl": "Steals",
    "blk": "Blocks",
    "turnover": "Turnovers",
    "fgm": "Field Goals Made",
    "fg3m": "Threes Made",
    "ftm": "Free Throws Made",
    "pra": "Points + Rebounds + Assists",
    "pr": "Points + Rebounds",
    "pa": "Points + Assists",
    "ra": "Rebounds + Assists",
}

SUPPORTED_CATEGORIES: tuple[str, ...] = tuple(STAT_COMPONENTS)


def normalize_category(stat_category: str) -> str:
    key = (stat_category or "").strip().lower()
    return CATEGORY_ALIASES.get(key, key)


def is_supported(stat_category: str) -> bool:
    return normalize_category(stat_category) in STAT_COMPONENTS


def label(stat_category: str) -> str:
    key = normalize_category(stat_category)
    return STAT_LABELS.get(key, stat_category)


def stat_value(record: GameStatRecord, stat_category: str) -> float:
    """
    Value of ``stat_category`` for one game.

    Unknown categories return 0 instead of raising, so aggregation code never
    needs a per-call error branch. Callers that take categories from users
    should check ``is_supported`` first.
    """
    fields = STAT_COMPONENTS.get(normalize_category(stat_category))
    if fields is None:
        return 0
    return sum(max(getattr(record, name) or 0, 0) for name in fields)
