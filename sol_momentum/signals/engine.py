"""
Signal Engine

Scores token snapshots with two strategies:
- Momentum: volume spikes, buy pressure, short-term price strength
- Mean reversion: z-score / RSI / drawdown from a rolling in-memory price
  history, with a price-change proxy while the history is still cold

Outputs at most one signal per mint, highest score first.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from sol_momentum.core.config import Config
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.portfolio.models import Signal
from sol_momentum.utils.math_helpers import (
    drop_from_high,
    pct_change,
    population_std,
    rsi,
    sma,
    zscore,
)

logger = logging.getLogger(__name__)


class PriceHistory:
    """Per-mint rolling price samples, trimmed to a time window."""

    def __init__(self, window_hours: float = 24.0):
        self.window_seconds = window_hours * 3600
        self._samples: Dict[str, Deque[Tuple[float, float]]] = {}

    def record(self, mint: str, price: float, ts: Optional[float] = None):
        if not price or price <= 0:
            return
        ts = time.time() if ts is None else ts
        samples = self._samples.setdefault(mint, deque())
        samples.append((ts, float(price)))
        self._trim(samples, ts)

    def prices(self, mint: str, now: Optional[float] = None) -> List[float]:
        samples = self._samples.get(mint)
        if not samples:
            return []
        self._trim(samples, time.time() if now is None else now)
        return [p for _, p in samples]

    def __len__(self):
        return len(self._samples)

    def _trim(self, samples: Deque[Tuple[float, float]], now: float):
        cutoff = now - self.window_seconds
        while samples and samples[0][0] < cutoff:
            samples.popleft()


class Indicators:
    """Mean-reversion indicators for one token."""

    def __init__(self, sma: float, std_dev: float, z_score: float, rsi: float,
                 deviation_pct: float, drop_from_high: float, samples: int):
        self.sma = sma
        self.std_dev = std_dev
        self.z_score = z_score
        self.rsi = rsi
        self.deviation_pct = deviation_pct
        self.drop_from_high = drop_from_high
        self.samples = samples


def _clamp_score(score: float) -> int:
    return max(0, min(100, round(score)))


def _txns(token: dict) -> Tuple[int, int]:
    txns = token.get("txns_24h") or {}
    return int(txns.get("buys") or 0), int(txns.get("sells") or 0)


class SignalEngine:
    """
    Momentum + mean-reversion signal generation.

    The engine owns the rolling price history; every call to detect_signals
    feeds it, whether or not a candidate qualifies.
    """

    def __init__(self, config: Config, alerts: Optional[AlertSink] = None):
        """
        Initialize signal engine.

        Args:
            config: System configuration
            alerts: Alert sink for SIGNAL events (optional)
        """
        self.config = config
        self.alerts = alerts
        self.history = PriceHistory(config.signal.history_window_hours)

    # ------------------------
    # Indicators
    # ------------------------

    def get_indicators(self, mint: str, current_price: float) -> Optional[Indicators]:
        """
        Compute indicators from the trimmed history.

        Returns:
            Indicators, or None until min_history_samples are recorded
        """
        prices = self.history.prices(mint)
        if len(prices) < self.config.signal.min_history_samples:
            return None

        mean = sma(prices)
        std = population_std(prices)
        return Indicators(
            sma=mean,
            std_dev=std,
            z_score=zscore(current_price, mean, std),
            rsi=rsi(prices, self.config.signal.rsi_period),
            deviation_pct=pct_change(mean, current_price),
            drop_from_high=drop_from_high(prices, current_price, self.config.signal.high_lookback_samples),
            samples=len(prices),
        )

    # ------------------------
    # Scoring
    # ------------------------

    def momentum_score(self, token: dict) -> Signal:
        """Score a snapshot for momentum continuation."""
        score = 0.0
        reasons: List[str] = []

        volume_1h = token.get("volume_1h") or 0
        change_1h = token.get("price_change_1h") or 0
        change_6h = token.get("price_change_6h") or 0
        change_24h = token.get("price_change_24h") or 0

        # Volume spike: 1h volume vs 6h hourly average
        avg_6h_per_hour = (token.get("volume_6h") or 0) / 6
        if avg_6h_per_hour > 0 and volume_1h > avg_6h_per_hour * self.config.filters.volume_spike_multiplier:
            spike = volume_1h / avg_6h_per_hour
            score += min(30, spike * 10)
            reasons.append(f"Volume spike {spike:.1f}x")

        # Buy pressure
        buys, sells = _txns(token)
        if buys + sells > 0:
            buy_ratio = buys / (buys + sells)
            if buy_ratio > 0.55:
                score += min(25, (buy_ratio - 0.5) * 100)
                reasons.append(f"Buy ratio {buy_ratio * 100:.0f}%")

        # Short-term momentum
        if change_1h > 2:
            score += min(20, change_1h * 2)
            reasons.append(f"1h +{change_1h:.1f}%")

        if change_6h > 0 and change_24h > 0:
            score += 10
            reasons.append("Sustained uptrend")

        if (token.get("liquidity") or 0) > 5_000_000:
            score += 5
            reasons.append("High liquidity")

        if change_1h > 5 and volume_1h > 100_000:
            score += 10
            reasons.append("Possible breakout")

        # Negative signals
        if change_1h < -3:
            score -= 20
            reasons.append("Dumping")
        if sells > buys * 1.5:
            score -= 15
            reasons.append("Heavy selling")

        return Signal(
            token=token.get("token", ""),
            mint=token["mint"],
            price=token.get("price") or 0.0,
            score=_clamp_score(score),
            strategy="momentum",
            reasons=reasons,
        )

    def mean_reversion_score(self, token: dict) -> Signal:
        """Score a snapshot for a bounce after an oversold move."""
        score = 0.0
        reasons: List[str] = []

        price = token.get("price") or 0.0
        volume_1h = token.get("volume_1h") or 0
        change_1h = token.get("price_change_1h") or 0
        change_6h = token.get("price_change_6h") or 0
        change_24h = token.get("price_change_24h") or 0

        ind = self.get_indicators(token["mint"], price)
        if ind is not None:
            if ind.z_score < -1.5:
                score += min(30, abs(ind.z_score) * 12)
                reasons.append(f"Z-score {ind.z_score:.2f}")
            elif ind.z_score < -1.0:
                score += min(15, abs(ind.z_score) * 12)
                reasons.append(f"Z-score {ind.z_score:.2f}")

            if ind.rsi < 25:
                score += 25
                reasons.append(f"RSI {ind.rsi:.0f} (oversold)")
            elif ind.rsi < 35:
                score += 15
                reasons.append(f"RSI {ind.rsi:.0f}")

            if ind.drop_from_high < -10:
                score += 15
                reasons.append(f"{ind.drop_from_high:.1f}% from high")
            elif ind.drop_from_high < -5:
                score += 8
                reasons.append(f"{ind.drop_from_high:.1f}% from high")

            # Above the mean is disqualifying for this strategy
            if ind.z_score > 0.5:
                score -= 30
                reasons.append("Above mean")
        else:
            # Cold start proxy from price-change fields
            if change_24h < -10:
                score += 20
                reasons.append(f"24h {change_24h:.1f}%")
            elif change_24h < -5:
                score += 10
                reasons.append(f"24h {change_24h:.1f}%")

            if change_6h < -8:
                score += 15
                reasons.append(f"6h {change_6h:.1f}%")
            elif change_6h < -4:
                score += 8
                reasons.append(f"6h {change_6h:.1f}%")

            if change_1h > 0 and change_6h < -5:
                score += 10
                reasons.append("1h bounce")

        if volume_1h > 50_000:
            score += 5
            reasons.append("Active volume")
        elif volume_1h < 10_000:
            score -= 10
            reasons.append("Thin volume")

        buys, sells = _txns(token)
        if buys + sells > 0 and buys / (buys + sells) > 0.5 and change_24h < -5:
            score += 10
            reasons.append("Dip buying")

        if (token.get("liquidity") or 0) > 5_000_000:
            score += 5
            reasons.append("High liquidity")

        if change_1h < -5 and change_6h < -10:
            score -= 25
            reasons.append("Freefall")

        return Signal(
            token=token.get("token", ""),
            mint=token["mint"],
            price=price,
            score=_clamp_score(score),
            strategy="meanReversion",
            reasons=reasons,
        )

    # ------------------------
    # Detection
    # ------------------------

    def detect_signals(self, candidates: List[dict]) -> List[Signal]:
        """
        Record a sample for each candidate, score both strategies and keep the
        best qualifying signal per mint.

        Args:
            candidates: Normalized token snapshots

        Returns:
            Signals with score >= signal.min_score, highest first
        """
        for token in candidates:
            self.history.record(token["mint"], token.get("price") or 0.0)

        min_score = self.config.signal.min_score
        scored: List[Signal] = []
        for token in candidates:
            for sig in (self.momentum_score(token), self.mean_reversion_score(token)):
                if sig.score >= min_score:
                    scored.append(sig)

        scored.sort(key=lambda s: s.score, reverse=True)

        # Sorted descending, so the first entry per mint is the best one
        best: Dict[str, Signal] = {}
        for sig in scored:
            if sig.mint not in best:
                best[sig.mint] = sig
        signals = list(best.values())

        if signals and self.alerts is not None:
            self.alerts.write(
                "SIGNAL",
                f"Detected {len(signals)} signals",
                {
                    "top": [
                        {"token": s.token, "score": s.score, "strategy": s.strategy, "reasons": s.reasons}
                        for s in signals[:5]
                    ]
                },
            )

        logger.debug(f"[SignalEngine] {len(candidates)} candidates -> {len(signals)} signals")
        return signals
