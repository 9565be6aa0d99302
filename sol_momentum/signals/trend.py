"""
Trend Filter

Classifies the market regime of a reference asset (SOL) by comparing its
current price to the mean of a multi-day series:
- uptrend: deviation > +threshold
- downtrend: deviation < -threshold
- neutral: otherwise, or whenever data is missing

Series sources, in order:
1. Hyperliquid 1h candle closes over trend.lookback_days
2. DexScreener reference price fed into a rolling in-memory history
3. A synthetic series reconstructed from 24h/6h/1h change fields

The synthetic series is piecewise-linear interpolation between four anchor
prices, not sampled data. It is only good enough for this coarse regime
check and is never fed to the Signal Engine indicators.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np
import pandas as pd

from sol_momentum.core.config import Config
from sol_momentum.monitoring.alerts import AlertSink

logger = logging.getLogger(__name__)

UPTREND = "uptrend"
DOWNTREND = "downtrend"
NEUTRAL = "neutral"


@dataclass
class TrendReading:
    trend: str = NEUTRAL
    current_price: float = 0.0
    sma: float = 0.0
    deviation: float = 0.0
    source: str = "none"


def synthetic_history(current_price: float, change_24h: float, change_6h: float, change_1h: float) -> List[float]:
    """
    Reconstruct an hourly series (oldest first, 25 points) from change fields.

    Anchors at -24h, -6h, -1h and now are back-solved from the percentage
    changes and joined by linear interpolation.
    """
    anchors = pd.Series(
        {
            -24: current_price / (1 + change_24h / 100),
            -6: current_price / (1 + change_6h / 100),
            -1: current_price / (1 + change_1h / 100),
            0: current_price,
        },
        dtype=float,
    )
    hourly = anchors.reindex(range(-24, 1)).interpolate(method="index")
    return hourly.tolist()


class TrendFilter:
    """Cached market regime classifier."""

    def __init__(
        self,
        config: Config,
        data_loader,
        alerts: Optional[AlertSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize trend filter.

        Args:
            config: System configuration
            data_loader: MarketDataLoader (candles + token price)
            alerts: Alert sink for failures (optional)
            clock: Monotonic clock used for the cache TTL
        """
        self.config = config
        self.data_loader = data_loader
        self.alerts = alerts
        self.clock = clock
        self.rolling = deque(maxlen=config.trend.max_rolling_samples)

        self._cached: Optional[TrendReading] = None
        self._cached_at = 0.0

    async def get_market_trend(self) -> TrendReading:
        """
        Current regime. Cached for trend.cache_ttl_seconds; never raises.
        """
        now = self.clock()
        if self._cached is not None and (now - self._cached_at) < self.config.trend.cache_ttl_seconds:
            return self._cached

        try:
            prices, source = await self.fetch_price_history()
            if not prices or len(prices) < 3:
                logger.info("[Trend] Insufficient price data, returning neutral")
                return TrendReading()

            reading = self.classify(prices, source)
            self._cached = reading
            self._cached_at = now
            logger.info(
                f"[Trend] {self.config.trend.reference_coin}: ${reading.current_price:.2f} | "
                f"SMA: ${reading.sma:.2f} | Dev: {reading.deviation:.1f}% | "
                f"Trend: {reading.trend.upper()} ({source})"
            )
            return reading
        except Exception as e:
            logger.error(f"[Trend] Analysis failed: {e}")
            if self.alerts is not None:
                self.alerts.write("ERROR", f"Trend analysis failed: {e}")
            return TrendReading()

    def classify(self, prices: List[float], source: str = "") -> TrendReading:
        """Classify the last price of a series against the series mean."""
        series = np.asarray(prices, dtype=float)
        current = float(series[-1])
        mean = float(np.mean(series))
        deviation = (current - mean) / mean * 100 if mean else 0.0

        threshold = self.config.trend.threshold_pct
        if deviation > threshold:
            trend = UPTREND
        elif deviation < -threshold:
            trend = DOWNTREND
        else:
            trend = NEUTRAL

        return TrendReading(trend=trend, current_price=current, sma=mean, deviation=deviation, source=source)

    async def fetch_price_history(self):
        """
        Fetch the reference series.

        Returns:
            (prices oldest first, source name); ([], "none") if every source failed
        """
        cfg = self.config.trend

        candles = await self.data_loader.get_candle_closes(
            cfg.reference_coin, "1h", cfg.lookback_days * 24
        )
        if candles.is_ok and len(candles.value) >= 3:
            return candles.value, "candles"
        logger.info(f"[Trend] Candle source unavailable ({candles.status.value}), trying fallback...")

        quote = await self.data_loader.get_token_price(cfg.reference_mint)
        if not quote.is_ok:
            return [], "none"

        price = quote.value["price"]
        self.rolling.append(price)
        if len(self.rolling) >= cfg.min_rolling_samples:
            return list(self.rolling), "rolling"

        return (
            synthetic_history(
                price,
                quote.value.get("price_change_24h") or 0.0,
                quote.value.get("price_change_6h") or 0.0,
                quote.value.get("price_change_1h") or 0.0,
            ),
            "synthetic",
        )
