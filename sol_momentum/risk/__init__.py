"""Risk: entry gate, sizing, SL/TP, short PnL."""
