"""Rollup multi-tier.

- tiers.py: RollupTier, tiers por defecto, selección de tier
- aggregation.py: helpers de agregación (latencias, percentiles, buckets, canales)
- engine.py: RollupEngine (cursor, buckets, escritura idempotente, poda)
"""

from .tiers import (
    DEFAULT_TIERS,
    RAW_QUERY_MAX_HOURS,
    RollupTier,
    cap_retention,
    format_duration,
    format_interval,
    get_best_tier,
    validate_tiers,
)
from .aggregation import aggregate_latencies, bucket_start, group_by, merge_channels, numeric_values, percentile
from .engine import AggregateFn, RollupEngine, TierResult

__all__ = [
    "DEFAULT_TIERS",
    "RAW_QUERY_MAX_HOURS",
    "RollupTier",
    "cap_retention",
    "format_duration",
    "format_interval",
    "get_best_tier",
    "validate_tiers",
    "aggregate_latencies",
    "bucket_start",
    "group_by",
    "merge_channels",
    "numeric_values",
    "percentile",
    "AggregateFn",
    "RollupEngine",
    "TierResult",
]
