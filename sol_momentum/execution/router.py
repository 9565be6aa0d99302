"""
Swap Executor

USDC <-> token swaps through the Jupiter aggregator.

Dry-run simulates fills from the Jupiter quote. Live mode fetches the swap
transaction, signs it with the wallet keypair (solders) and submits it over
Solana JSON-RPC, waiting for confirmation.
"""

import asyncio
import base64
import logging
import time
from typing import Optional

import aiohttp
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from sol_momentum.core.config import Config
from sol_momentum.execution.orders import SwapResult
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.utils.precision import USDC_DECIMALS, from_raw_amount, to_raw_amount

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class TransientError(Exception):
    """Retryable transport failure (rate limit, 5xx, expired blockhash)."""


class SwapExecutor:
    """
    Jupiter swap execution.

    Failures never raise: they are logged, alerted and returned as
    SwapResult(success=False).
    """

    def __init__(self, config: Config, alerts: Optional[AlertSink] = None):
        """
        Initialize swap executor.

        Args:
            config: System configuration
            alerts: Alert sink for execution errors
        """
        self.config = config
        self.alerts = alerts
        self.api_error_count = 0
        self._session: Optional[aiohttp.ClientSession] = None
        self.keypair: Optional[Keypair] = None

        if config.is_live and config.wallet_private_key:
            try:
                self.keypair = Keypair.from_base58_string(config.wallet_private_key)
                logger.info(f"[SwapExecutor] Wallet loaded: {self.keypair.pubkey()}")
            except ValueError as e:
                logger.error(f"[SwapExecutor] Failed to load wallet: {e}; falling back to dry-run")
        else:
            logger.info(f"[SwapExecutor] Mode: {config.mode} (no wallet needed)")

    @property
    def dry_run(self) -> bool:
        return not (self.config.is_live and self.keypair is not None)

    # ------------------------
    # HTTP helpers
    # ------------------------

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

    async def _request_json(self, method: str, url: str, **kwargs):
        session = await self._get_session()
        async with session.request(method, url, **kwargs) as resp:
            if resp.status in RETRYABLE_STATUS:
                raise TransientError(f"HTTP {resp.status} from {url}")
            if resp.status != 200:
                body = await resp.text()
                raise RuntimeError(f"HTTP {resp.status}: {body[:200]}")
            return await resp.json(content_type=None)

    async def _with_retries(self, func, *args, **kwargs):
        """Call an async function with retries/backoff on transient errors."""
        max_attempts = self.config.execution.max_attempts
        delay = 0.5
        for attempt in range(1, max_attempts + 1):
            try:
                return await func(*args, **kwargs)
            except (TransientError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.api_error_count += 1
                if attempt == max_attempts:
                    raise
                logger.warning(f"[SwapExecutor] Attempt {attempt} failed: {e}; retrying in {delay}s")
                await asyncio.sleep(delay)
                delay *= 2

    # ------------------------
    # Jupiter
    # ------------------------

    async def get_quote(self, input_mint: str, output_mint: str, amount: int) -> dict:
        """Jupiter quote for `amount` raw units of input_mint."""
        url = (
            f"{self.config.api.jupiter}/quote?inputMint={input_mint}&outputMint={output_mint}"
            f"&amount={amount}&slippageBps={self.config.execution.slippage_bps}"
        )
        quote = await self._with_retries(self._request_json, "GET", url)
        if not quote or not quote.get("outAmount"):
            raise RuntimeError("No quote available")
        return quote

    async def _swap_transaction(self, quote: dict) -> bytes:
        payload = {
            "quoteResponse": quote,
            "userPublicKey": str(self.keypair.pubkey()),
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "dynamicSlippage": True,
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": self.config.execution.priority_fee_lamports,
                    "priorityLevel": "high",
                }
            },
        }
        data = await self._with_retries(
            self._request_json, "POST", f"{self.config.api.jupiter}/swap", json=payload
        )
        swap_tx = (data or {}).get("swapTransaction")
        if not swap_tx:
            raise RuntimeError("No swap transaction returned")
        return base64.b64decode(swap_tx)

    def sign_transaction(self, tx_bytes: bytes) -> bytes:
        """Sign a serialized VersionedTransaction with the wallet keypair."""
        unsigned = VersionedTransaction.from_bytes(tx_bytes)
        signed = VersionedTransaction(unsigned.message, [self.keypair])
        return bytes(signed)

    # ------------------------
    # RPC
    # ------------------------

    async def _rpc(self, method: str, params: list):
        data = await self._request_json(
            "POST",
            self.config.api.rpc_url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
        )
        if "error" in data:
            message = data["error"].get("message", "Unknown error")
            if any(x in message.lower() for x in ("blockhash", "expired", "timeout")):
                raise TransientError(message)
            raise RuntimeError(message)
        return data.get("result")

    async def send_and_confirm(self, signed_tx: bytes) -> str:
        """Submit a signed transaction and wait for 'confirmed'. Returns the signature."""
        encoded = base64.b64encode(signed_tx).decode()
        signature = await self._with_retries(
            self._rpc,
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": "confirmed", "maxRetries": 3}],
        )

        deadline = time.monotonic() + self.config.execution.confirm_timeout_seconds
        while time.monotonic() < deadline:
            result = await self._rpc("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
            statuses = (result or {}).get("value") or []
            status = statuses[0] if statuses else None
            if status:
                if status.get("err"):
                    raise RuntimeError(f"Transaction failed: {status['err']}")
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return signature
            await asyncio.sleep(0.5)
        raise RuntimeError(f"Transaction confirmation timeout: {signature}")

    async def _execute(self, quote: dict) -> str:
        tx_bytes = await self._swap_transaction(quote)
        return await self.send_and_confirm(self.sign_transaction(tx_bytes))

    # ------------------------
    # Public API
    # ------------------------

    async def buy(self, mint: str, usdc_amount: float, symbol: str = "") -> SwapResult:
        """
        Swap USDC -> token.

        Args:
            mint: Token to buy
            usdc_amount: USDC to spend
            symbol: For logging

        Returns:
            SwapResult with output_amount (raw units) and implied price
        """
        try:
            quote = await self.get_quote(self.config.api.usdc_mint, mint, to_raw_amount(usdc_amount, USDC_DECIMALS))
            output_amount = str(quote["outAmount"])
            decimals = int(quote.get("outputDecimals") or 9)
            price = usdc_amount / from_raw_amount(output_amount, decimals)

            if self.dry_run:
                logger.info(f"[SwapExecutor] DRY-RUN BUY: {usdc_amount} USDC -> {symbol} @ ~${price:.6f}")
                return SwapResult(
                    success=True,
                    output_amount=output_amount,
                    price=price,
                    tx_id=f"dry-run-{int(time.time() * 1000)}",
                    simulated=True,
                )

            tx_id = await self._execute(quote)
            logger.info(f"[SwapExecutor] LIVE BUY: {usdc_amount} USDC -> {symbol} tx: {tx_id}")
            return SwapResult(success=True, output_amount=output_amount, price=price, tx_id=tx_id)
        except Exception as e:
            return self._failed(f"Buy failed for {symbol}: {e}")

    async def sell(self, mint: str, amount: str, symbol: str = "") -> SwapResult:
        """
        Swap token -> USDC.

        Args:
            mint: Token to sell
            amount: Raw token units
            symbol: For logging

        Returns:
            SwapResult with usdc_received
        """
        try:
            quote = await self.get_quote(mint, self.config.api.usdc_mint, int(amount))
            usdc_received = from_raw_amount(quote["outAmount"], USDC_DECIMALS)

            if self.dry_run:
                logger.info(f"[SwapExecutor] DRY-RUN SELL: {symbol} -> {usdc_received:.2f} USDC")
                return SwapResult(
                    success=True,
                    usdc_received=usdc_received,
                    tx_id=f"dry-run-{int(time.time() * 1000)}",
                    simulated=True,
                )

            tx_id = await self._execute(quote)
            logger.info(f"[SwapExecutor] LIVE SELL: {symbol} -> {usdc_received:.2f} USDC tx: {tx_id}")
            return SwapResult(success=True, usdc_received=usdc_received, tx_id=tx_id)
        except Exception as e:
            return self._failed(f"Sell failed for {symbol}: {e}")

    def _failed(self, message: str) -> SwapResult:
        logger.error(f"[SwapExecutor] {message}")
        if self.alerts is not None:
            self.alerts.write("ERROR", message)
        return SwapResult.failure(message)
