"""Market data: DexScreener and Hyperliquid."""
