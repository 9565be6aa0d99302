"""Monitoring: alerts, logs, kill switch."""

from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.monitoring.kill_switch import KillSwitch
from sol_momentum.monitoring.logs import setup_logging

__all__ = ["AlertSink", "KillSwitch", "setup_logging"]
