"""
Solana Momentum Trading Bot

Trades Solana tokens against USDC on Jupiter using momentum and
mean-reversion signals, with a portfolio kill switch, an independent grid
sub-strategy and an optional perp-short hedge.

Components:
- Scheduler: Runs scan, position review, grid and heartbeat cycles
- Data Loader: DexScreener candidates/prices, Hyperliquid candles
- Signal Engine: Momentum + mean-reversion scoring
- Trend Filter: SOL regime (uptrend / downtrend / neutral)
- Risk Manager: Entry gate, sizing, SL/TP, time stop
- Grid Engine: Capital-bounded grid per token
- Execution: Jupiter swaps, Hyperliquid perp shorts
- Portfolio Store: Capital, positions, history, grid book (JSON document)
- Monitoring: Alerts (JSONL), kill switch, logging
"""

__version__ = "0.1.0"

from sol_momentum.core.config import Config
from sol_momentum.core.scheduler import Scheduler

__all__ = [
    "Config",
    "Scheduler",
]
