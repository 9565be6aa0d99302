"""
Perp Executor

Opens and closes short hedges on Hyperliquid perpetuals using the SDK
Exchange (market_open / market_close). Mark prices come from Info.all_mids.

Markets are named "<COIN>-PERP" in config and map to the Hyperliquid coin.
The SDK is synchronous; calls run in a worker thread.
"""

import asyncio
import logging
import time
import uuid
from typing import Dict, Optional

from eth_account import Account
from hyperliquid.exchange import Exchange
from hyperliquid.info import Info

from sol_momentum.core.config import Config
from sol_momentum.core.results import FetchResult
from sol_momentum.execution.orders import ShortResult
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.utils.precision import format_size

logger = logging.getLogger(__name__)

MAX_SLIPPAGE = 0.03


def market_coin(market: str) -> str:
    """'SOL-PERP' -> 'SOL'. Raises ValueError for anything else."""
    if not market.endswith("-PERP") or len(market) <= len("-PERP"):
        raise ValueError(f"Unknown perp market: {market}")
    return market[: -len("-PERP")]


def _filled(resp: dict) -> dict:
    """First fill of an order response; raises on an error status."""
    if not isinstance(resp, dict) or resp.get("status") != "ok":
        raise RuntimeError(f"Order rejected: {resp}")
    statuses = resp["response"]["data"]["statuses"]
    for st in statuses:
        if "error" in st:
            raise RuntimeError(st["error"])
        if "filled" in st:
            return st["filled"]
    raise RuntimeError(f"Order not filled: {statuses}")


class PerpExecutor:
    """
    Perp short execution.

    Clients are constructed lazily: dry-run only ever needs Info for mark
    prices, and Exchange is only built for live shorts.
    """

    def __init__(
        self,
        config: Config,
        alerts: Optional[AlertSink] = None,
        info: Optional[Info] = None,
        exchange: Optional[Exchange] = None,
    ):
        """
        Initialize perp executor.

        Args:
            config: System configuration
            alerts: Alert sink for execution errors
            info: Hyperliquid Info client (optional)
            exchange: Hyperliquid Exchange client (optional)
        """
        self.config = config
        self.alerts = alerts
        self._info = info
        self._exchange = exchange
        self._sz_decimals: Dict[str, int] = {}
        self.api_error_count = 0

    @property
    def dry_run(self) -> bool:
        return not (self.config.is_live and (self._exchange is not None or self.config.hyperliquid.secret_key))

    @property
    def info(self) -> Info:
        if self._info is None:
            self._info = Info(self.config.hyperliquid.api_url, skip_ws=True)
        return self._info

    @property
    def exchange(self) -> Exchange:
        if self._exchange is None:
            hl = self.config.hyperliquid
            wallet = Account.from_key(hl.secret_key)
            self._exchange = Exchange(wallet, hl.api_url, account_address=hl.address or None)
            logger.info(f"[PerpExecutor] Exchange client initialized for {hl.address or wallet.address}")
        return self._exchange

    # ------------------------
    # Helpers
    # ------------------------

    def _with_retries(self, func, *args, **kwargs):
        """Call SDK function with retries/backoff and error tracking."""
        max_attempts = self.config.execution.max_attempts
        delay = 0.5
        for attempt in range(1, max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except Exception:
                self.api_error_count += 1
                if attempt == max_attempts:
                    raise
                time.sleep(delay)
                delay *= 2

    def _size_decimals(self, coin: str) -> int:
        if not self._sz_decimals:
            meta = self._with_retries(self.info.meta)
            self._sz_decimals = {u["name"]: int(u["szDecimals"]) for u in meta.get("universe", [])}
        if coin not in self._sz_decimals:
            raise ValueError(f"Unknown perp market: {coin}")
        return self._sz_decimals[coin]

    def _failed(self, message: str) -> ShortResult:
        logger.error(f"[PerpExecutor] {message}")
        if self.alerts is not None:
            self.alerts.write("ERROR", message)
        return ShortResult.failure(message)

    # ------------------------
    # Public API
    # ------------------------

    async def mark_price(self, market: str) -> FetchResult:
        """Current mid price of a perp market."""
        try:
            coin = market_coin(market)
            mids = await asyncio.to_thread(self._with_retries, self.info.all_mids)
        except Exception as e:
            logger.warning(f"[PerpExecutor] Mark price failed for {market}: {e}")
            return FetchResult.failed(str(e))

        px = float(mids.get(coin) or 0)
        if px <= 0:
            return FetchResult.empty()
        return FetchResult.ok(px)

    async def open_short(self, market: str, size_usdc: float, leverage: Optional[int] = None) -> ShortResult:
        """
        Open a short of `size_usdc` margin at `leverage`.

        Returns:
            ShortResult with entry_price and base_amount
        """
        leverage = leverage or self.config.shorts.leverage
        try:
            coin = market_coin(market)
            quote = await self.mark_price(market)
            if not quote.is_ok:
                return self._failed(f"Open short failed for {market}: no mark price")
            mark = quote.value
            position_id = f"perp-short-{int(time.time() * 1000)}-{uuid.uuid4().hex[:4]}"

            if self.dry_run:
                logger.info(f"[PerpExecutor] DRY-RUN SHORT: {market} | Size: ${size_usdc:.2f} | Leverage: {leverage}x")
                return ShortResult(
                    success=True,
                    position_id=position_id,
                    market=market,
                    size_usdc=size_usdc,
                    leverage=leverage,
                    entry_price=mark,
                    base_amount=size_usdc * leverage / mark,
                    tx_id=f"dry-run-perp-{int(time.time() * 1000)}",
                    simulated=True,
                )

            sz = float(format_size(size_usdc * leverage / mark, await asyncio.to_thread(self._size_decimals, coin)))
            if sz <= 0:
                return self._failed(f"Open short failed for {market}: size rounds to zero")

            await asyncio.to_thread(self._with_retries, self.exchange.update_leverage, leverage, coin, True)
            resp = await asyncio.to_thread(
                self._with_retries, self.exchange.market_open, coin, False, sz, None, MAX_SLIPPAGE
            )
            fill = _filled(resp)
            entry_price = float(fill.get("avgPx") or mark)

            logger.info(f"[PerpExecutor] LIVE SHORT: {market} | Size: ${size_usdc:.2f} | {leverage}x | oid {fill.get('oid')}")
            return ShortResult(
                success=True,
                position_id=position_id,
                market=market,
                size_usdc=size_usdc,
                leverage=leverage,
                entry_price=entry_price,
                base_amount=float(fill.get("totalSz") or sz),
                tx_id=str(fill.get("oid", "")),
            )
        except Exception as e:
            return self._failed(f"Open short failed for {market}: {e}")

    async def close_short(self, market: str, base_amount: float) -> ShortResult:
        """Buy back `base_amount` of a short (reduce-only market close)."""
        try:
            coin = market_coin(market)
            if self.dry_run:
                logger.info(f"[PerpExecutor] DRY-RUN CLOSE SHORT: {market}")
                return ShortResult(
                    success=True,
                    market=market,
                    base_amount=base_amount,
                    tx_id=f"dry-run-perp-close-{int(time.time() * 1000)}",
                    simulated=True,
                )

            resp = await asyncio.to_thread(
                self._with_retries, self.exchange.market_close, coin, base_amount, None, MAX_SLIPPAGE
            )
            fill = _filled(resp)
            logger.info(f"[PerpExecutor] LIVE CLOSE SHORT: {market} | oid {fill.get('oid')}")
            return ShortResult(
                success=True,
                market=market,
                base_amount=float(fill.get("totalSz") or base_amount),
                entry_price=float(fill.get("avgPx") or 0),
                tx_id=str(fill.get("oid", "")),
            )
        except Exception as e:
            return self._failed(f"Close short failed for {market}: {e}")
