"""Observabilidad (contadores Prometheus)."""

from .metrics import (
    TIMESERIES_WRITE_FAILURES,
    TIMESERIES_SKIPPED_LINES,
    ROLLUP_RECORDS_WRITTEN,
    ROLLUP_TIER_FAILURES,
    REMOTE_POLLS,
)

__all__ = [
    "TIMESERIES_WRITE_FAILURES",
    "TIMESERIES_SKIPPED_LINES",
    "ROLLUP_RECORDS_WRITTEN",
    "ROLLUP_TIER_FAILURES",
    "REMOTE_POLLS",
]
