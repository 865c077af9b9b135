"""CLI entry point for the watcher runner."""

from __future__ import annotations

import argparse
import logging
import time

from common.config import get_settings
from watcher_metrics.service import WatcherService

from .config import RunnerConfig
from .runner import run_once

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    settings = get_settings()

    p = argparse.ArgumentParser(description="FPP watcher runner (collection + rollups)")
    p.add_argument("--sleep-seconds", type=float, default=settings.poll_interval_seconds)
    p.add_argument("--once", action="store_true", help="run a single iteration and exit")
    p.add_argument("--skip-collect", action="store_true", help="only run rollups")
    p.add_argument("--skip-rollup", action="store_true", help="only collect samples")
    args = p.parse_args()

    cfg = RunnerConfig(
        sleep_seconds=args.sleep_seconds,
        once=bool(args.once),
        skip_collect=bool(args.skip_collect),
        skip_rollup=bool(args.skip_rollup),
    )

    service = WatcherService(settings)
    logger.info("Watcher Runner started")
    logger.info("Config: data_dir=%s fpp=%s sleep=%.1fs", settings.data_dir, settings.fpp_base_url, cfg.sleep_seconds)

    while True:
        try:
            run_once(cfg, service)
            if cfg.once:
                return
            logger.info("Iteración completada, esperando %.1fs...", cfg.sleep_seconds)
            time.sleep(cfg.sleep_seconds)
        except Exception as e:
            logger.error("Error en iteración: %s", e)
            if cfg.once:
                raise
            logger.info("Continuando con siguiente iteración...")
            time.sleep(cfg.sleep_seconds)


if __name__ == "__main__":
    main()
