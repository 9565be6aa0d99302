"""
Tests for swap and perp execution in dry-run mode.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sol_momentum.core.results import FetchStatus
from sol_momentum.execution.perps import PerpExecutor, _filled, market_coin
from sol_momentum.execution.router import SwapExecutor, TransientError
from tests.conftest import read_alert_types


@pytest.fixture
def swaps(config, alerts):
    return SwapExecutor(config, alerts)


@pytest.fixture
def perps(config, alerts):
    info = MagicMock()
    info.all_mids.return_value = {"SOL": "150", "BTC": "60000"}
    return PerpExecutor(config, alerts, info=info)


def test_swap_executor_defaults_to_dry_run(swaps):
    assert swaps.dry_run
    assert swaps.keypair is None


@pytest.mark.asyncio
async def test_dry_run_buy_uses_quote(swaps):
    swaps._request_json = AsyncMock(return_value={"outAmount": "45000000", "outputDecimals": 6})
    result = await swaps.buy("MintA", 45.0, "AAA")

    assert result.success
    assert result.simulated
    assert result.output_amount == "45000000"
    assert result.price == pytest.approx(1.0)
    assert result.tx_id.startswith("dry-run-")

    url = swaps._request_json.await_args.args[1]
    assert "amount=45000000" in url
    assert "outputMint=MintA" in url


@pytest.mark.asyncio
async def test_dry_run_sell_reports_usdc(swaps):
    swaps._request_json = AsyncMock(return_value={"outAmount": "38250000"})
    result = await swaps.sell("MintA", "45000000", "AAA")
    assert result.success
    assert result.usdc_received == pytest.approx(38.25)


@pytest.mark.asyncio
async def test_swap_failure_returns_result_and_alerts(swaps, alerts):
    swaps._request_json = AsyncMock(side_effect=RuntimeError("HTTP 400: bad mint"))
    result = await swaps.buy("MintA", 10.0, "AAA")
    assert not result.success
    assert "bad mint" in result.error
    assert "ERROR" in read_alert_types(alerts)


@pytest.mark.asyncio
async def test_missing_quote_is_failure(swaps):
    swaps._request_json = AsyncMock(return_value={})
    result = await swaps.sell("MintA", "1", "AAA")
    assert not result.success


@pytest.mark.asyncio
async def test_transient_errors_are_retried(swaps):
    swaps._request_json = AsyncMock(side_effect=[TransientError("HTTP 429"), {"outAmount": "1000000"}])
    result = await swaps.sell("MintA", "1", "AAA")
    assert result.success
    assert swaps._request_json.await_count == 2
    assert swaps.api_error_count == 1


def test_market_coin():
    assert market_coin("SOL-PERP") == "SOL"
    with pytest.raises(ValueError):
        market_coin("SOL")
    with pytest.raises(ValueError):
        market_coin("-PERP")


def test_filled_parses_order_response():
    resp = {"status": "ok", "response": {"data": {"statuses": [{"filled": {"avgPx": "149.9", "totalSz": "0.2", "oid": 7}}]}}}
    assert _filled(resp)["oid"] == 7

    with pytest.raises(RuntimeError):
        _filled({"status": "ok", "response": {"data": {"statuses": [{"error": "margin"}]}}})
    with pytest.raises(RuntimeError):
        _filled({"status": "err", "response": "bad"})


@pytest.mark.asyncio
async def test_mark_price(perps):
    result = await perps.mark_price("SOL-PERP")
    assert result.is_ok
    assert result.value == 150.0

    assert (await perps.mark_price("DOGE-PERP")).status is FetchStatus.EMPTY
    assert (await perps.mark_price("SOL")).status is FetchStatus.FAILED


@pytest.mark.asyncio
async def test_dry_run_open_short_uses_mark(perps):
    assert perps.dry_run
    result = await perps.open_short("SOL-PERP", 30.0, 1)
    assert result.success
    assert result.simulated
    assert result.entry_price == 150.0
    assert result.base_amount == pytest.approx(0.2)
    assert result.position_id.startswith("perp-short-")


@pytest.mark.asyncio
async def test_open_short_unknown_market_fails(perps, alerts):
    result = await perps.open_short("NOPE", 30.0, 1)
    assert not result.success
    assert "Unknown perp market" in result.error
    assert "ERROR" in read_alert_types(alerts)


@pytest.mark.asyncio
async def test_dry_run_close_short(perps):
    result = await perps.close_short("SOL-PERP", 0.2)
    assert result.success
    assert result.base_amount == 0.2
