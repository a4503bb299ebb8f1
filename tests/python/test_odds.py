"""Odds conversion helpers."""

import pytest

from props_api.utils.odds import (
    american_payout,
    american_to_decimal,
    american_to_implied_prob,
    probability_to_american_odds,
)


def test_american_to_decimal():
    assert american_to_decimal(150) == 2.5
    assert american_to_decimal(-200) == 1.5
    assert american_to_decimal(100) == 2.0


def test_implied_probability():
    assert american_to_implied_prob(-200) == pytest.approx(2 / 3)
    assert american_to_implied_prob(300) == pytest.approx(0.25)


def test_payout_excludes_stake():
    assert american_payout(150, 100) == 150.0
    assert american_payout(-110, 110) == pytest.approx(100.0)
    assert american_payout(100, 40) == 40.0


def test_zero_odds_rejected():
    with pytest.raises(ValueError):
        american_to_decimal(0)
    with pytest.raises(ValueError):
        american_payout(0, 100)


@pytest.mark.parametrize(
    "probability,expected",
    [(0.5, -100), (0.6, -150), (0.7, -233), (0.2, 400), (0.25, 300)],
)
def test_fair_odds(probability, expected):
    assert probability_to_american_odds(probability) == expected


def test_fair_odds_undefined_at_extremes():
    assert probability_to_american_odds(0.0) is None
    assert probability_to_american_odds(1.0) is None
