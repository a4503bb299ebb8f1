"""
Odds format conversion and expected-value helpers.

Converts between American odds, decimal odds and probabilities, and prices a
wager against a hit-rate estimate.

Design Pattern: Utility Functions
Algorithm: O(1) for all conversions
"""

from __future__ import annotations

from typing import Optional


def american_to_decimal(american: int | float) -> float:
    """
    Convert American odds to decimal odds.

    Examples:
        >>> round(american_to_decimal(-110), 3)
        1.909
        >>> american_to_decimal(150)
        2.5
    """
    am = float(american)
    if am == 0:
        raise ValueError("American odds cannot be 0")

    if am > 0:
        return (am / 100.0) + 1.0
    return (100.0 / abs(am)) + 1.0


def american_to_implied_prob(american: int | float) -> float:
    """
    Implied probability (0.0 to 1.0) of American odds, vig included.

    Examples:
        >>> round(american_to_implied_prob(-110), 3)
        0.524
        >>> round(american_to_implied_prob(150), 3)
        0.4
    """
    return 1.0 / american_to_decimal(american)


def american_payout(american: int | float, wager: float) -> float:
    """
    Profit returned on a winning ``wager`` (stake not included).

    Examples:
        >>> american_payout(150, 100)
        150.0
        >>> round(american_payout(-150, 100), 2)
        66.67
    """
    am = float(american)
    if am == 0:
        raise ValueError("American odds cannot be 0")
    if am >= 0:
        return wager * am / 100.0
    return wager * 100.0 / abs(am)


def probability_to_american_odds(probability: float) -> Optional[int]:
    """
    Fair (no-vig) American odds for a win probability.

    Returns None for probabilities of 0 or 1, which have no finite price.

    Examples:
        >>> probability_to_american_odds(0.6)
        -150
        >>> probability_to_american_odds(0.4)
        150
        >>> probability_to_american_odds(1.0) is None
        True
    """
    if probability <= 0.0 or probability >= 1.0:
        return None
    if probability >= 0.5:
        return -round(100.0 * probability / (1.0 - probability))
    return round(100.0 * (1.0 - probability) / probability)
