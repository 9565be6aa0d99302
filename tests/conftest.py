"""
Shared fixtures: isolated config, tmp-path state store, alert sink and a
loaded portfolio store.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sol_momentum.core.config import Config
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.portfolio.models import Position, Signal
from sol_momentum.portfolio.store import PortfolioStore
from sol_momentum.utils.state_store import StateStore

ENV_OVERRIDES = (
    "BOT_MODE",
    "SOLANA_RPC_URL",
    "SOLANA_PRIVATE_KEY",
    "HL_NETWORK",
    "HL_ADDRESS",
    "HL_SECRET_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Config reads overrides from the environment; keep tests hermetic."""
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    cfg = Config()
    cfg.execution.trade_delay_seconds = 0
    cfg.execution.review_delay_seconds = 0
    return cfg


@pytest.fixture
def state_store(tmp_path):
    return StateStore(str(tmp_path))


@pytest.fixture
def alerts(state_store):
    return AlertSink(state_store, "alerts.log")


@pytest.fixture
def store(config, state_store, alerts):
    s = PortfolioStore(config, state_store, alerts, "state.json")
    s.load()
    return s


def make_signal(score=80, price=1.0, mint="MintA", token="AAA", strategy="momentum"):
    return Signal(token=token, mint=mint, price=price, score=score, strategy=strategy, reasons=["test"])


def make_position(
    position_id="pos-1",
    mint="MintA",
    entry_price=1.0,
    usdc_spent=45.0,
    stop_loss=0.85,
    take_profit=1.3,
    hours_old=0.0,
    strategy="momentum",
):
    opened_at = datetime.now(timezone.utc) - timedelta(hours=hours_old)
    return Position(
        id=position_id,
        token="AAA",
        mint=mint,
        entry_price=entry_price,
        amount="45000000",
        usdc_spent=usdc_spent,
        opened_at=opened_at.isoformat(),
        stop_loss=stop_loss,
        take_profit=take_profit,
        strategy=strategy,
    )


def read_alert_types(alerts):
    return [a["type"] for a in alerts.recent(limit=1000)]
