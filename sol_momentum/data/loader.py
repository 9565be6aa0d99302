"""
Market Data Loader

Candidate discovery and price lookups from DexScreener (aiohttp), plus
reference-asset candles from the Hyperliquid Info endpoint.

Transient failures never propagate: every public call returns a FetchResult
(OK / EMPTY / FAILED).
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

import aiohttp
from hyperliquid.info import Info

from sol_momentum.core.config import Config
from sol_momentum.core.results import FetchResult

logger = logging.getLogger(__name__)

# Established Solana tokens always scanned, ahead of trending addresses
WATCHLIST = [
    ("SOL", "So11111111111111111111111111111111111111112"),
    ("JUP", "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"),
    ("RAY", "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"),
    ("BONK", "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"),
    ("WIF", "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm"),
    ("PYTH", "HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3"),
    ("ORCA", "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE"),
    ("MNDE", "MNDEFzGvMt87ueuHvVU9VcTqsAP5b3fTGPsHuuPA5ey"),
    ("RENDER", "rndrizKT3MK1iimdxRdWabcF7Zg7AR5T4nud4EkHBof"),
    ("HNT", "hntyVP6YFm1Hg25TN9WGLqM12b8TQmcknKrdu1oxWux"),
    ("JITO", "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn"),
    ("W", "85VBFQZC9TZkfaptBWjvUw7YbZjy52A6mjtPGjstQAmQ"),
    ("TENSOR", "TNSRxcUxoT9xBG3de7PiJyTDYu7kskLqcpddxnEJAS6"),
    ("MOBILE", "mb1eu7TzEc71KxDpsmsKoucSSuuoGLv1drys1oP2jh6"),
    ("DRIFT", "DriFtupJYLTosbwoN8koMbEYSx54aFAVLddWsbksjwg7"),
    ("POPCAT", "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"),
    ("MEW", "MEW1gQWJ3nEXg2qgERiKu7FAFj79PHvQVREQUzScPP5"),
    ("KMNO", "KMNo3nJsBXfcpJTVhZcXLW7RmTwTt4GVFE7suUBo9sS"),
    ("SAMO", "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"),
    ("BOME", "ukHH6c7mMyiWCf1b9pnWe25TSpkDDt3H5pQZgZ74J82"),
    ("WEN", "WENWENvqqNya429ubCdR81ZmD69brwQaaBYY6p3LCpk"),
    ("TRUMP", "6p6xgHyF7AeE6TZkSmFsko444wqoP15icUSqi2jfGiPN"),
    ("AI16Z", "HeLp6NuQkmYB4pYWo2zYs22mESHXPQYzXbB8n4V98jwC"),
    ("FARTCOIN", "9BB6NFEcjBCtnNLFko2FqVQBq8HHM13kCyYcdQbgpump"),
]

BATCH_SIZE = 30  # DexScreener accepts up to 30 comma-separated addresses
SEARCH_QUERIES = ("SOL", "USDC", "trending")

INTERVAL_MS = {
    "1m": 60_000,
    "5m": 5 * 60_000,
    "15m": 15 * 60_000,
    "1h": 60 * 60_000,
    "4h": 4 * 60 * 60_000,
    "1d": 24 * 60 * 60_000,
}


def _liquidity(pair: dict) -> float:
    try:
        return float((pair.get("liquidity") or {}).get("usd") or 0)
    except (TypeError, ValueError):
        return 0.0


def best_pairs(pairs: List[dict]) -> Dict[str, dict]:
    """Highest-liquidity pair per base token mint."""
    best: Dict[str, dict] = {}
    for pair in pairs:
        mint = (pair.get("baseToken") or {}).get("address")
        if not mint:
            continue
        existing = best.get(mint)
        if existing is None or _liquidity(pair) > _liquidity(existing):
            best[mint] = pair
    return best


def normalize_pair(pair: dict) -> dict:
    """DexScreener pair -> internal token snapshot."""
    volume = pair.get("volume") or {}
    change = pair.get("priceChange") or {}
    txns = (pair.get("txns") or {}).get("h24") or {}
    created_ms = pair.get("pairCreatedAt") or 0
    return {
        "token": (pair.get("baseToken") or {}).get("symbol") or "UNKNOWN",
        "mint": (pair.get("baseToken") or {}).get("address") or "",
        "price": float(pair.get("priceUsd") or 0),
        "liquidity": _liquidity(pair),
        "volume_24h": float(volume.get("h24") or 0),
        "volume_6h": float(volume.get("h6") or 0),
        "volume_1h": float(volume.get("h1") or 0),
        "price_change_24h": float(change.get("h24") or 0),
        "price_change_6h": float(change.get("h6") or 0),
        "price_change_1h": float(change.get("h1") or 0),
        "txns_24h": {"buys": int(txns.get("buys") or 0), "sells": int(txns.get("sells") or 0)},
        "pair_address": pair.get("pairAddress") or "",
        "dex_id": pair.get("dexId") or "",
        "age_hours": (time.time() * 1000 - created_ms) / 3_600_000 if created_ms else 0.0,
    }


class MarketDataLoader:
    """
    Fetches token snapshots from DexScreener and candles from Hyperliquid.

    Handles:
    - Trending discovery (profiles, boosts, searches) + fixed watchlist
    - Batched pair lookups, best-liquidity pair per mint
    - Discovery filters (liquidity, 24h volume, pair age)
    - Single-mint price lookups
    - Reference candles (Info.candles_snapshot, run off the event loop)
    """

    def __init__(self, config: Config, info: Optional[Info] = None):
        """
        Initialize data loader.

        Args:
            config: System configuration
            info: Hyperliquid Info client (created lazily if omitted)
        """
        self.config = config
        self.base_url = config.api.dexscreener.rstrip("/")
        self._info = info
        self._session: Optional[aiohttp.ClientSession] = None

    # ------------------------
    # Internal helpers
    # ------------------------

    @property
    def info(self) -> Info:
        if self._info is None:
            self._info = Info(self.config.hyperliquid.api_url, skip_ws=True)
        return self._info

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.api.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, url: str):
        """GET a JSON document. Raises on transport or HTTP errors."""
        session = await self._get_session()
        async with session.get(url) as resp:
            if resp.status != 200:
                raise aiohttp.ClientResponseError(
                    resp.request_info, resp.history, status=resp.status, message=resp.reason or ""
                )
            return await resp.json(content_type=None)

    async def _try_get_json(self, url: str):
        """GET a JSON document, or None on any transient failure."""
        try:
            return await self._get_json(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"[DataLoader] Request failed {url}: {e}")
            return None

    def passes_filters(self, pair: dict) -> bool:
        """Chain, liquidity, volume and age filters."""
        f = self.config.filters
        created_ms = pair.get("pairCreatedAt") or 0
        age_hours = (time.time() * 1000 - created_ms) / 3_600_000 if created_ms else 0.0
        return (
            pair.get("chainId") == "solana"
            and _liquidity(pair) >= f.min_liquidity_usd
            and float((pair.get("volume") or {}).get("h24") or 0) >= f.min_volume_24h
            and age_hours >= f.min_age_hours
        )

    async def _discover_addresses(self) -> List[str]:
        """Trending Solana token addresses from profiles, boosts and searches."""
        found: List[str] = []

        def add(addr):
            if addr and addr not in found:
                found.append(addr)

        for path in ("token-profiles/latest/v1", "token-boosts/latest/v1"):
            data = await self._try_get_json(f"{self.base_url}/{path}")
            if isinstance(data, list):
                for item in data:
                    if item.get("chainId") == "solana":
                        add(item.get("tokenAddress"))

        for q in SEARCH_QUERIES:
            data = await self._try_get_json(f"{self.base_url}/latest/dex/search?q={q}")
            for pair in (data or {}).get("pairs") or []:
                if pair.get("chainId") == "solana":
                    add((pair.get("baseToken") or {}).get("address"))

        return found

    # ------------------------
    # Public API
    # ------------------------

    async def scan_tokens(self) -> FetchResult:
        """
        Discover candidates.

        Returns:
            FetchResult with a list of normalized snapshots (EMPTY if none
            passed the filters, FAILED if no pair data could be fetched)
        """
        try:
            watch_mints = [mint for _, mint in WATCHLIST]
            trending = [a for a in await self._discover_addresses() if a not in watch_mints]
            addresses = watch_mints + trending[: self.config.filters.max_trending]

            pairs: List[dict] = []
            fetched_any = False
            for i in range(0, len(addresses), BATCH_SIZE):
                chunk = addresses[i:i + BATCH_SIZE]
                data = await self._try_get_json(f"{self.base_url}/tokens/v1/solana/{','.join(chunk)}")
                if isinstance(data, list):
                    fetched_any = True
                    pairs.extend(data)

            if not fetched_any:
                return FetchResult.failed("No pair data from DexScreener")

            candidates = [normalize_pair(p) for p in best_pairs(pairs).values() if self.passes_filters(p)]

            logger.info(
                f"[DataLoader] Found {len(candidates)} candidates from "
                f"{len(trending)} trending + {len(WATCHLIST)} watchlist tokens"
            )
            if not candidates:
                return FetchResult.empty()
            return FetchResult.ok(candidates)
        except Exception as e:
            logger.exception("[DataLoader] Scanner error")
            return FetchResult.failed(f"Scanner error: {e}")

    async def get_token_price(self, mint: str) -> FetchResult:
        """
        Current price of a mint from its most liquid pair.

        Returns:
            FetchResult with {price, liquidity, volume_24h, price_change_24h/6h/1h, token}
        """
        try:
            data = await self._get_json(f"{self.base_url}/tokens/v1/solana/{mint}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"[DataLoader] Price fetch error for {mint}: {e}")
            return FetchResult.failed(str(e))

        if not isinstance(data, list) or not data:
            return FetchResult.empty()

        snap = normalize_pair(max(data, key=_liquidity))
        if snap["price"] <= 0:
            return FetchResult.empty()

        return FetchResult.ok({
            "token": snap["token"],
            "price": snap["price"],
            "liquidity": snap["liquidity"],
            "volume_24h": snap["volume_24h"],
            "price_change_24h": snap["price_change_24h"],
            "price_change_6h": snap["price_change_6h"],
            "price_change_1h": snap["price_change_1h"],
        })

    def get_candles(self, coin: str, interval: str, start_ms: int, end_ms: int) -> List[Dict]:
        """
        Fetch candle data for a coin using SDK (blocking).

        Returns:
            List of candles with keys: t, o, h, l, c, v
        """
        if interval not in INTERVAL_MS:
            raise ValueError(f"Unsupported interval: {interval}")

        resp = self.info.candles_snapshot(coin, interval, int(start_ms), int(end_ms))
        candles = resp if isinstance(resp, list) else []

        out: List[Dict] = []
        for c in candles:
            if isinstance(c, dict):
                out.append({
                    "t": int(c.get("t")),
                    "o": float(c.get("o")),
                    "h": float(c.get("h")),
                    "l": float(c.get("l")),
                    "c": float(c.get("c")),
                    "v": float(c.get("v", 0.0)),
                })
        out.sort(key=lambda x: x["t"])
        return out

    async def get_candle_closes(self, coin: str, interval: str, lookback_bars: int) -> FetchResult:
        """
        Close prices (oldest first) for the last `lookback_bars` bars.
        """
        end_ms = int(time.time() * 1000)
        start_ms = end_ms - lookback_bars * INTERVAL_MS.get(interval, INTERVAL_MS["1h"])
        try:
            candles = await asyncio.to_thread(self.get_candles, coin, interval, start_ms, end_ms)
        except Exception as e:
            logger.warning(f"[DataLoader] Candle fetch failed for {coin}: {e}")
            return FetchResult.failed(str(e))

        closes = [c["c"] for c in candles if c["c"] > 0]
        if not closes:
            return FetchResult.empty()
        return FetchResult.ok(closes)
