"""
Tests for configuration loading, env overrides and validation.
"""

from sol_momentum.core.config import Config


def test_defaults():
    config = Config()
    assert config.mode == "dry-run"
    assert not config.is_live
    assert config.capital.starting == 100.0
    assert config.risk.max_position_size == 50.0
    assert config.risk.max_positions == 3
    assert config.risk.stop_loss_pct == -15.0
    assert config.risk.take_profit_pct == 30.0
    assert config.risk.kill_switch_pct == -20.0
    assert config.signal.min_score == 35
    assert config.grid.enabled is False
    assert config.shorts.markets == ["SOL-PERP"]
    assert config.validate() == []


def test_from_dict_nested_sections():
    config = Config.from_dict({
        "capital": {"starting": 250},
        "risk": {"max_positions": 5},
        "grid": {"enabled": True, "levels": 4},
        "hyperliquid": {"network": "testnet"},
    })
    assert config.capital.starting == 250
    assert config.risk.max_positions == 5
    # Untouched keys keep their defaults
    assert config.risk.max_position_size == 50.0
    assert config.grid.enabled is True
    assert config.grid.levels == 4
    assert "testnet" in config.hyperliquid.api_url


def test_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("mode: dry-run\nsignal:\n  min_score: 50\n")
    config = Config.from_yaml(str(path))
    assert config.signal.min_score == 50


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    config = Config.from_yaml(str(path))
    assert config.capital.starting == 100.0


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("BOT_MODE", "live")
    monkeypatch.setenv("SOLANA_RPC_URL", "https://rpc.example")
    monkeypatch.setenv("SOLANA_PRIVATE_KEY", "secret")
    config = Config.from_dict({"mode": "dry-run"})
    assert config.is_live
    assert config.api.rpc_url == "https://rpc.example"
    assert config.wallet_private_key == "secret"


def test_live_without_wallet_is_invalid():
    config = Config(mode="live")
    errors = config.validate()
    assert any("SOLANA_PRIVATE_KEY" in e for e in errors)


def test_live_shorts_require_hyperliquid_key():
    config = Config(mode="live", wallet_private_key="k")
    config.shorts.enabled = True
    errors = config.validate()
    assert any("HL_SECRET_KEY" in e for e in errors)


def test_invalid_risk_bounds():
    config = Config()
    config.risk.stop_loss_pct = 5
    config.risk.kill_switch_pct = 0
    config.signal.min_score = 120
    errors = config.validate()
    assert "risk.stop_loss_pct must be negative" in errors
    assert "risk.kill_switch_pct must be negative" in errors
    assert "signal.min_score must be in [0, 100]" in errors


def test_grid_that_cannot_be_funded_is_invalid():
    config = Config()
    config.grid.enabled = True
    config.grid.capital_per_level = 10
    config.grid.levels = 5
    config.grid.max_capital = 30
    assert "grid.max_capital cannot fund a single grid" in config.validate()
