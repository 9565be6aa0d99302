"""
Configuration management for the Solana momentum bot.

Every tunable lives in a nested dataclass section. Supports loading from
YAML/dict and environment variable overrides for mode and credentials.
"""

import os
from dataclasses import dataclass, field
from typing import Literal


@dataclass
class CapitalConfig:
    """Starting capital for the momentum / mean-reversion pool."""

    starting: float = 100.0  # USDC


@dataclass
class RiskConfig:
    """Position sizing and portfolio limits."""

    max_position_size: float = 50.0  # USDC per position
    max_positions: int = 3
    stop_loss_pct: float = -15.0  # Momentum SL (negative)
    take_profit_pct: float = 30.0  # Momentum TP
    kill_switch_pct: float = -20.0  # Halt new entries at this total PnL %
    min_capital_usdc: float = 5.0  # Dust floor for opening
    min_trade_usdc: float = 5.0  # Smaller sizes are uneconomical
    time_stop_hours: float = 24.0

    # Mean reversion uses fixed tighter bounds
    mean_reversion_sl_mult: float = 0.92
    mean_reversion_tp_mult: float = 1.10


@dataclass
class FilterConfig:
    """Candidate discovery filters."""

    min_liquidity_usd: float = 1_000_000.0
    min_volume_24h: float = 250_000.0
    min_age_hours: float = 24.0
    volume_spike_multiplier: float = 2.0
    max_trending: int = 60  # Trending addresses looked up per scan


@dataclass
class SignalConfig:
    """Signal scoring parameters."""

    min_score: int = 35
    max_signals_per_scan: int = 3
    history_window_hours: float = 24.0
    min_history_samples: int = 20  # Before mean-reversion indicators activate
    rsi_period: int = 14
    high_lookback_samples: int = 48


@dataclass
class GridConfig:
    """Grid sub-strategy (own capital pool)."""

    enabled: bool = False
    spread_pct: float = 2.0
    levels: int = 5  # Levels above AND below the center
    capital_per_level: float = 5.0
    max_capital: float = 30.0
    max_tokens: int = 3
    min_liquidity: float = 2_000_000.0
    max_volatility_24h: float = 8.0
    min_volume_24h: float = 500_000.0
    trigger_tolerance: float = 0.002  # Buy fires up to 0.2% above the level
    duplicate_tolerance: float = 0.005  # No second fill within 0.5% of a level


@dataclass
class ShortConfig:
    """Perpetual short hedge (Hyperliquid perps)."""

    enabled: bool = False
    markets: list[str] = field(default_factory=lambda: ["SOL-PERP"])
    leverage: int = 1
    max_shorts: int = 3
    position_size: float = 25.0
    max_short_size: float = 30.0
    stop_loss_pct: float = 8.0  # Price UP this much closes the short
    take_profit_pct: float = 10.0  # Price DOWN this much closes the short


@dataclass
class TrendConfig:
    """Market regime filter."""

    reference_coin: str = "SOL"  # Hyperliquid candle source
    reference_mint: str = "So11111111111111111111111111111111111111112"
    lookback_days: int = 7
    threshold_pct: float = 3.0
    cache_ttl_seconds: float = 300.0
    min_rolling_samples: int = 24
    max_rolling_samples: int = 7 * 24


@dataclass
class IntervalConfig:
    """Cycle periods (seconds)."""

    scan_seconds: float = 60.0
    position_check_seconds: float = 30.0
    grid_check_seconds: float = 15.0
    heartbeat_seconds: float = 900.0


@dataclass
class ExecutionConfig:
    """Swap execution parameters."""

    slippage_bps: int = 100
    trade_delay_seconds: float = 1.0  # Pause after each trade (rate limits)
    review_delay_seconds: float = 0.5  # Pause between position reviews
    priority_fee_lamports: int = 1_000_000
    confirm_timeout_seconds: float = 60.0
    max_attempts: int = 3


@dataclass
class ApiConfig:
    """External endpoints."""

    dexscreener: str = "https://api.dexscreener.com"
    jupiter: str = "https://lite-api.jup.ag/swap/v1"
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    request_timeout_seconds: float = 15.0
    usdc_mint: str = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@dataclass
class MonitoringConfig:
    """Logging, alerts and state files."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str = "logs"
    state_file: str = "data/state.json"
    alerts_file: str = "data/alerts.log"


@dataclass
class HyperliquidConfig:
    """Hyperliquid-specific settings (perp shorts, trend candles)."""

    network: Literal["testnet", "mainnet"] = "mainnet"
    address: str = ""  # Main wallet address (from env)
    secret_key: str = ""  # API wallet private key (from env)

    # API endpoint (auto-set by network)
    api_url: str = ""

    def __post_init__(self):
        """Set API URL based on network."""
        from hyperliquid.utils import constants

        if self.network == "testnet":
            self.api_url = constants.TESTNET_API_URL
        else:
            self.api_url = constants.MAINNET_API_URL


@dataclass
class Config:
    """
    Complete bot configuration.

    Load from YAML/environment variables.

    Environment variables (override config file):
    - BOT_MODE: "dry-run" or "live"
    - SOLANA_RPC_URL: RPC endpoint for swap submission
    - SOLANA_PRIVATE_KEY: base58 wallet key (live swaps only)
    - HL_NETWORK / HL_ADDRESS / HL_SECRET_KEY: Hyperliquid perps
    """

    mode: Literal["dry-run", "live"] = "dry-run"
    wallet_private_key: str = ""
    capital: CapitalConfig = field(default_factory=CapitalConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    signal: SignalConfig = field(default_factory=SignalConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    shorts: ShortConfig = field(default_factory=ShortConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    intervals: IntervalConfig = field(default_factory=IntervalConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    hyperliquid: HyperliquidConfig = field(default_factory=HyperliquidConfig)

    def __post_init__(self):
        """Load environment variable overrides."""
        if os.getenv("BOT_MODE"):
            self.mode = os.getenv("BOT_MODE", "dry-run")

        if os.getenv("SOLANA_RPC_URL"):
            self.api.rpc_url = os.getenv("SOLANA_RPC_URL", self.api.rpc_url)

        if os.getenv("SOLANA_PRIVATE_KEY"):
            self.wallet_private_key = os.getenv("SOLANA_PRIVATE_KEY", "")

        if os.getenv("HL_NETWORK"):
            self.hyperliquid.network = os.getenv("HL_NETWORK", "mainnet")

        if os.getenv("HL_ADDRESS"):
            self.hyperliquid.address = os.getenv("HL_ADDRESS", "")

        if os.getenv("HL_SECRET_KEY"):
            self.hyperliquid.secret_key = os.getenv("HL_SECRET_KEY", "")

        # Re-initialize to set API URL
        self.hyperliquid.__post_init__()

    @property
    def is_live(self) -> bool:
        return self.mode == "live"

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load config from YAML file."""
        import yaml

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Load config from dictionary."""
        from dataclasses import is_dataclass, fields

        def build(dc_type, data):
            if not is_dataclass(dc_type):
                return data
            kwargs = {}
            for f in fields(dc_type):
                if f.name in data:
                    val = data[f.name]
                    if hasattr(f.type, "__dataclass_fields__"):
                        kwargs[f.name] = build(f.type, val or {})
                    else:
                        kwargs[f.name] = val
            return dc_type(**kwargs)

        return build(cls, data)

    def validate(self) -> list[str]:
        """
        Validate configuration parameters.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.mode not in ("dry-run", "live"):
            errors.append("mode must be 'dry-run' or 'live'")

        if self.is_live and not self.wallet_private_key:
            errors.append("SOLANA_PRIVATE_KEY environment variable required in live mode")

        if self.is_live and self.shorts.enabled and not self.hyperliquid.secret_key:
            errors.append("HL_SECRET_KEY environment variable required for live shorts")

        if self.capital.starting <= 0:
            errors.append("capital.starting must be > 0")

        if self.risk.stop_loss_pct >= 0:
            errors.append("risk.stop_loss_pct must be negative")

        if self.risk.take_profit_pct <= 0:
            errors.append("risk.take_profit_pct must be positive")

        if self.risk.kill_switch_pct >= 0:
            errors.append("risk.kill_switch_pct must be negative")

        if self.risk.max_positions < 1:
            errors.append("risk.max_positions must be >= 1")

        if not (0 <= self.signal.min_score <= 100):
            errors.append("signal.min_score must be in [0, 100]")

        if self.grid.enabled:
            if self.grid.levels < 1:
                errors.append("grid.levels must be >= 1")
            if not (0 < self.grid.spread_pct * self.grid.levels < 100):
                errors.append("grid.spread_pct * grid.levels must be in (0, 100)")
            if self.grid.capital_per_level * self.grid.levels > self.grid.max_capital:
                errors.append("grid.max_capital cannot fund a single grid")

        if self.shorts.enabled and self.shorts.leverage < 1:
            errors.append("shorts.leverage must be >= 1")

        return errors
