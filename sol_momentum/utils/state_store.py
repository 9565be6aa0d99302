"""
State Store

Durable storage for the portfolio document and append-only JSONL logs
(alerts). Document writes are synchronous and atomic so a process killed
mid-cycle always leaves the last complete state on disk.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class StateStore:
    """
    Persistent state management.

    Stores:
    - Portfolio document (positions, closed trades, capital, grid)
    - Alert log (JSONL)
    """

    def __init__(self, data_dir: str = "data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        path = Path(name)
        return path if path.is_absolute() else self.data_dir / path

    def save_document(self, name: str, data: dict):
        """
        Write a JSON document atomically (temp file + replace).

        Raises OSError/TypeError on failure; callers decide how to surface it.
        """
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)

    def load_document(self, name: str) -> Optional[dict]:
        """
        Load a JSON document.

        Returns:
            The document, or None if absent or unreadable (corrupt input is
            treated as absent).
        """
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"[StateStore] Could not read {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"[StateStore] {path} does not hold a JSON object")
            return None
        return data

    def append_jsonl(self, name: str, record: dict):
        """Append a record to a JSONL log file."""
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as f:
            f.write(json.dumps(record, default=str) + "\n")

    def read_jsonl(self, name: str, limit: int = 1000) -> list:
        """Read up to 'limit' records from end of a JSONL log file."""
        path = self._path(name)
        if not path.exists():
            return []
        with open(path, "r") as f:
            lines = f.readlines()
        return [json.loads(x) for x in lines[-limit:] if x.strip()]
