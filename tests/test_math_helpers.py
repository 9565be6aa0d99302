"""
Tests for indicator math.
"""

import pytest

from sol_momentum.utils.math_helpers import (
    drop_from_high,
    pct_change,
    population_std,
    rsi,
    sma,
    zscore,
)
from sol_momentum.utils.precision import format_size, from_raw_amount, to_raw_amount


def test_sma_and_population_std():
    prices = [2, 4, 4, 4, 5, 5, 7, 9]
    assert sma(prices) == pytest.approx(5.0)
    assert population_std(prices) == pytest.approx(2.0)


def test_empty_series():
    assert sma([]) == 0.0
    assert population_std([]) == 0.0
    assert drop_from_high([], 1.0) == 0.0


def test_zscore_zero_std():
    assert zscore(10, 10, 0) == 0.0
    assert zscore(6, 10, 2) == pytest.approx(-2.0)


def test_rsi_no_losses_is_100():
    assert rsi([1, 2, 3, 4, 5]) == 100.0


def test_rsi_short_series_is_neutral():
    assert rsi([1.0]) == 50.0


def test_rsi_mixed():
    # Deltas +1, -1, +1: avg gain 2/3, avg loss 1/3, RS = 2
    assert rsi([1, 2, 1, 2]) == pytest.approx(100 - 100 / 3)


def test_rsi_uses_last_period_deltas():
    # An old crash outside the window does not count
    prices = [100, 50] + [50 + i for i in range(1, 16)]
    assert rsi(prices, period=14) == 100.0


def test_pct_change_and_drop_from_high():
    assert pct_change(0, 5) == 0.0
    assert pct_change(100, 90) == pytest.approx(-10.0)
    assert drop_from_high([80, 100, 90], 85) == pytest.approx(-15.0)
    # Only the lookback window counts toward the high
    assert drop_from_high([200, 100, 90], 90, lookback=2) == pytest.approx(-10.0)


def test_raw_amount_conversion():
    assert to_raw_amount(12.5) == 12_500_000
    assert from_raw_amount("38250000") == pytest.approx(38.25)
    with pytest.raises(ValueError):
        to_raw_amount(-1)


def test_format_size_rounds_down():
    assert format_size(0.123456, 3) == "0.123"
    assert format_size(2.0, 2) == "2"
    assert format_size(7.9, 0) == "7"
