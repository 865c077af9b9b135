"""Métricas Prometheus del motor de métricas del watcher."""

from __future__ import annotations

from prometheus_client import Counter

TIMESERIES_WRITE_FAILURES = Counter(
    'watcher_timeseries_write_failures_total',
    'Appends to a time-series log that were dropped',
    ['log']
)

TIMESERIES_SKIPPED_LINES = Counter(
    'watcher_timeseries_skipped_lines_total',
    'Malformed log lines skipped while reading',
    ['log']
)

ROLLUP_RECORDS_WRITTEN = Counter(
    'watcher_rollup_records_written_total',
    'Aggregated records written to rollup tiers',
    ['domain', 'tier']
)

ROLLUP_TIER_FAILURES = Counter(
    'watcher_rollup_tier_failures_total',
    'Rollup tier invocations that raised',
    ['domain', 'tier']
)

REMOTE_POLLS = Counter(
    'watcher_remote_polls_total',
    'Remote status polls by outcome',
    ['outcome']  # plugin, no_plugin, offline
)
