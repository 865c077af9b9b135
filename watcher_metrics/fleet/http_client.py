"""Cliente HTTP asíncrono para sondear hosts FPP.

Un remoto que no responde es un resultado normal del sondeo, no una
excepción: ``get_json`` y ``get_many`` nunca lanzan por errores de red,
timeout o JSON inválido; devuelven ``FetchResult(ok=False)``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx
import orjson

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Resultado de un GET."""
    url: str
    ok: bool
    status_code: Optional[int] = None
    data: Any = None
    elapsed_ms: Optional[float] = None
    error: Optional[str] = None
    sent_at: Optional[float] = None        # epoch ms justo antes de enviar
    received_at: Optional[float] = None    # epoch ms al recibir

    @property
    def connected(self) -> bool:
        return self.status_code is not None


class FppHttpClient:
    """Fan-out paralelo de GETs con timeout por request y join-all.

    Args:
        transport: Transporte httpx opcional (``httpx.MockTransport`` en tests)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def get_json(self, url: str, timeout: float) -> FetchResult:
        async with self._client(timeout) as client:
            return await self._fetch(client, url)

    async def get_many(self, urls: Mapping[str, str], timeout: float) -> Dict[str, FetchResult]:
        """GET en paralelo de ``{key: url}``; retorna ``{key: FetchResult}``."""
        if not urls:
            return {}
        keys = list(urls.keys())
        async with self._client(timeout) as client:
            results = await asyncio.gather(*(self._fetch(client, urls[k]) for k in keys))
        return dict(zip(keys, results))

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> FetchResult:
        sent_at = time.time() * 1000
        start = time.perf_counter()
        try:
            response = await client.get(url)
        except httpx.TimeoutException:
            logger.debug("HTTP_TIMEOUT url=%s", url)
            return FetchResult(url=url, ok=False, error="Timeout", sent_at=sent_at)
        except httpx.HTTPError as e:
            logger.debug("HTTP_CONNECT_FAILED url=%s err=%s", url, type(e).__name__)
            return FetchResult(url=url, ok=False, error="Connection failed", sent_at=sent_at)

        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        received_at = time.time() * 1000

        if response.status_code != 200:
            return FetchResult(
                url=url, ok=False, status_code=response.status_code,
                elapsed_ms=elapsed_ms, error=f"HTTP {response.status_code}",
                sent_at=sent_at, received_at=received_at,
            )

        try:
            data = orjson.loads(response.content)
        except orjson.JSONDecodeError:
            return FetchResult(
                url=url, ok=False, status_code=response.status_code,
                elapsed_ms=elapsed_ms, error="Invalid JSON",
                sent_at=sent_at, received_at=received_at,
            )

        return FetchResult(
            url=url, ok=True, status_code=response.status_code, data=data,
            elapsed_ms=elapsed_ms, sent_at=sent_at, received_at=received_at,
        )
