"""Almacenamiento en archivos planos.

- timeseries_log.py: log JSON-lines con flock (append / read / prune / upsert)
- rollup_state.py: cursor de rollup por tier
"""

from .timeseries_log import (
    PruneResult,
    TimeSeriesLog,
    TimeSeriesWriteError,
    record_key,
)
from .rollup_state import RollupStateStore, TierCursor

__all__ = [
    "TimeSeriesLog",
    "TimeSeriesWriteError",
    "PruneResult",
    "record_key",
    "RollupStateStore",
    "TierCursor",
]
