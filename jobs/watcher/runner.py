"""Una iteración del watcher: recolección y rollup de todos los dominios."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict

from watcher_metrics.service import WatcherService

from .config import RunnerConfig

logger = logging.getLogger(__name__)


def run_once(cfg: RunnerConfig, service: WatcherService) -> Dict[str, Any]:
    t0 = time.monotonic()
    summary: Dict[str, Any] = {}

    if not cfg.skip_collect:
        summary['collect'] = asyncio.run(service.collect_once())

    if not cfg.skip_rollup:
        results = service.run_rollups()
        records = sum(r.records for tiers in results.values() for r in tiers.values())
        failed = [
            f"{domain}/{tier}"
            for domain, tiers in results.items()
            for tier, r in tiers.items()
            if r.error
        ]
        summary['rollup'] = {'records': records, 'failed': failed}
        if failed:
            logger.warning("watcher_rollup_partial failed=%s", ",".join(failed))

    logger.info("watcher_iteration_done elapsed=%.2fs", time.monotonic() - t0)
    return summary
