"""Aplicación ASGI: ``uvicorn watcher_metrics.api.main:app``."""

from __future__ import annotations

import logging

from common.config import get_settings

from ..service import WatcherService
from .endpoints import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

app = create_app(WatcherService(get_settings()))
