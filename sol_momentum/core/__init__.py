"""Core system components: config, typed results, scheduler."""

from sol_momentum.core.config import Config
from sol_momentum.core.results import FetchResult, FetchStatus
from sol_momentum.core.scheduler import Scheduler

__all__ = [
    "Config",
    "FetchResult",
    "FetchStatus",
    "Scheduler",
]
