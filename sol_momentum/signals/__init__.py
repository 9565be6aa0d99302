"""Signals: momentum / mean-reversion scoring and trend filter."""
