"""
Mathematical helper functions.

SMA, population standard deviation, z-scores, Wilder RSI, deviation and
drawdown-from-high used by the signal and trend engines.
"""

import numpy as np


def sma(x) -> float:
    """Arithmetic mean (0 for an empty series)."""
    x = np.asarray(x, dtype=float)
    if len(x) == 0:
        return 0.0
    return float(np.mean(x))


def population_std(x) -> float:
    """Population standard deviation (ddof=0)."""
    x = np.asarray(x, dtype=float)
    if len(x) == 0:
        return 0.0
    return float(np.std(x, ddof=0))


def zscore(value: float, mean: float, std: float) -> float:
    """
    Compute z-score of a value against a mean/std.

    Returns 0 when std is zero.
    """
    if std == 0:
        return 0.0
    return float((value - mean) / std)


def rsi(prices, period: int = 14) -> float:
    """
    Relative strength index over the last `min(period, n-1)` price deltas.

    Gains and losses are averaged Wilder-style (simple mean over the window,
    which is Wilder's seed value). Returns 100 when there are no losses.

    Args:
        prices: Price series, oldest first
        period: Maximum number of deltas to use

    Returns:
        RSI in [0, 100]; 50 if fewer than two prices
    """
    p = np.asarray(prices, dtype=float)
    if len(p) < 2:
        return 50.0

    window = min(period, len(p) - 1)
    deltas = np.diff(p)[-window:]
    avg_gain = float(np.sum(deltas[deltas > 0])) / window
    avg_loss = float(-np.sum(deltas[deltas < 0])) / window

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100 - 100 / (1 + rs))


def pct_change(from_value: float, to_value: float) -> float:
    """Percentage change between two values (0 if from_value is 0)."""
    if from_value == 0:
        return 0.0
    return (to_value - from_value) / from_value * 100


def drop_from_high(prices, current: float, lookback: int = 48) -> float:
    """
    Percent distance of `current` below the max of the last `lookback` prices.

    Returns a value <= 0 when current is under the recent high.
    """
    p = np.asarray(prices, dtype=float)
    if len(p) == 0:
        return 0.0
    high = float(np.max(p[-lookback:]))
    return pct_change(high, current)
