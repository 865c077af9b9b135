"""Rutas de la API de FPP y del plugin watcher (host local y remotos)."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional
from urllib.parse import quote

from pydantic import ValidationError

from .http_client import FetchResult, FppHttpClient
from .schemas import SequenceMetaPayload

logger = logging.getLogger(__name__)

FPP_STATUS_PATH = "/api/fppd/status"
FLEET_PATH = "/api/fppd/multiSyncSystems"
LOCAL_PLUGIN_STATUS_PATH = "/api/plugin-apis/fpp-plugin-watcher/multisync/status"
REMOTE_FULL_STATUS_PATH = "/api/plugin/fpp-plugin-watcher/multisync/full-status"
CLOCK_PROBE_PATH = "/api/plugin/fpp-plugin-watcher/time"
SEQUENCE_META_PATH = "/api/sequence/{name}/meta"


def remote_url(address: str, path: str) -> str:
    return f"http://{address}{path}"


class FppApi:
    """Acceso al host FPP local.

    Cachea el step time por nombre de secuencia (también los fallos, para no
    repetir lookups que ya fallaron).
    """

    def __init__(self, client: FppHttpClient, base_url: str = "http://127.0.0.1", timeout: float = 5.0):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._step_time_cache: Dict[str, Optional[int]] = {}
        self._cache_lock = threading.Lock()

    def url(self, path: str) -> str:
        return self.base_url + path

    async def status(self, timeout: Optional[float] = None) -> FetchResult:
        return await self.client.get_json(self.url(FPP_STATUS_PATH), timeout or self.timeout)

    async def plugin_status(self, timeout: Optional[float] = None) -> FetchResult:
        return await self.client.get_json(self.url(LOCAL_PLUGIN_STATUS_PATH), timeout or self.timeout)

    async def fleet(self, timeout: Optional[float] = None) -> FetchResult:
        return await self.client.get_json(self.url(FLEET_PATH), timeout or self.timeout)

    async def sequence_step_time(self, sequence_name: str, timeout: float = 2.0) -> Optional[int]:
        """Step time (ms por frame) de una secuencia; None si no está disponible."""
        if not sequence_name:
            return None
        with self._cache_lock:
            if sequence_name in self._step_time_cache:
                return self._step_time_cache[sequence_name]

        path = SEQUENCE_META_PATH.format(name=quote(sequence_name, safe=""))
        result = await self.client.get_json(self.url(path), timeout)

        step_time = None
        if result.ok and isinstance(result.data, dict):
            try:
                step_time = SequenceMetaPayload.model_validate(result.data).step_time
            except ValidationError:
                logger.warning("Metadata inválida para secuencia %s", sequence_name)

        with self._cache_lock:
            self._step_time_cache[sequence_name] = step_time
        return step_time
