"""
Alert Sink

Append-only JSONL event log. Every event carries
{timestamp, type, message, data}. Writing an alert never raises, and an alert
raised while another alert is being written is dropped.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from sol_momentum.utils.state_store import StateStore

logger = logging.getLogger(__name__)

ALERT_TYPES = (
    "TRADE_OPEN",
    "TRADE_CLOSE",
    "SIGNAL",
    "PORTFOLIO_UPDATE",
    "ERROR",
    "HEARTBEAT",
    "KILL_SWITCH",
    "GRID_SETUP",
    "GRID_BUY",
    "GRID_SELL",
    "GRID_STATUS",
    "TREND",
)


class AlertSink:
    """Monotonically appended alert log."""

    def __init__(self, state_store: StateStore, alerts_file: str = "alerts.log"):
        self.state_store = state_store
        self.alerts_file = alerts_file
        self._local = threading.local()
        self.dropped = 0

    def write(self, alert_type: str, message: str, data: Optional[dict] = None) -> bool:
        """
        Append an alert.

        Returns:
            True if the alert was written
        """
        if getattr(self._local, "active", False):
            self.dropped += 1
            return False

        if alert_type not in ALERT_TYPES:
            logger.warning(f"[AlertSink] Unknown alert type: {alert_type}")

        self._local.active = True
        try:
            record = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "type": alert_type,
                "message": message,
                "data": data or {},
            }
            self.state_store.append_jsonl(self.alerts_file, record)
            log = logger.error if alert_type in ("ERROR", "KILL_SWITCH") else logger.info
            log(f"[{alert_type}] {message}")
            return True
        except Exception as e:
            self.dropped += 1
            logger.warning(f"[AlertSink] Failed to write alert: {e}")
            return False
        finally:
            self._local.active = False

    def recent(self, limit: int = 50) -> list:
        """Most recent alerts, oldest first."""
        try:
            return self.state_store.read_jsonl(self.alerts_file, limit=limit)
        except (OSError, ValueError) as e:
            logger.warning(f"[AlertSink] Failed to read alerts: {e}")
            return []
