"""Medición de drift de reloj estilo NTP contra los remotos.

Varias rondas de GET paralelos a ``/time``; por host se conserva la
medición de menor RTT. El drift estima el offset del reloj remoto
suponiendo retardo simétrico::

    drift = remote_ms - (t_recv_local - rtt / 2)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from .fpp_api import CLOCK_PROBE_PATH, remote_url
from .http_client import FetchResult, FppHttpClient
from .models import RemoteSystem
from .schemas import ClockProbePayload

logger = logging.getLogger(__name__)

DRIFT_EXCELLENT_MS = 50
DRIFT_GOOD_MS = 100
DRIFT_FAIR_MS = 500


def drift_status(drift_ms: float) -> str:
    magnitude = abs(drift_ms)
    if magnitude <= DRIFT_EXCELLENT_MS:
        return "excellent"
    if magnitude <= DRIFT_GOOD_MS:
        return "good"
    if magnitude <= DRIFT_FAIR_MS:
        return "fair"
    return "poor"


def format_drift(drift_ms: float) -> str:
    """999 -> "999ms ahead", 1050 -> "1.1s ahead", -2500 -> "2.5s behind"."""
    direction = "ahead" if drift_ms >= 0 else "behind"
    magnitude = abs(drift_ms)
    if magnitude < 1000:
        return f"{int(magnitude)}ms {direction}"

    seconds = (Decimal(str(magnitude)) / Decimal(1000)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    if seconds == seconds.to_integral_value():
        text = str(int(seconds))
    else:
        text = str(seconds)
    return f"{text}s {direction}"


@dataclass
class HostDrift:
    """Mejor medición de un host."""
    address: str
    hostname: str
    online: bool = False
    has_plugin: bool = False
    drift_ms: Optional[int] = None
    rtt_ms: Optional[float] = None
    samples: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "address": self.address,
            "hostname": self.hostname,
            "online": self.online,
            "hasPlugin": self.has_plugin,
            "drift_ms": self.drift_ms,
            "rtt_ms": self.rtt_ms,
            "samples": self.samples,
        }
        if self.drift_ms is not None:
            data["status"] = drift_status(self.drift_ms)
            data["formatted"] = format_drift(self.drift_ms)
        return data


class ClockDriftEstimator:
    """Estimador one-shot del offset de reloj de cada remoto."""

    DEFAULT_SAMPLES = 3
    DEFAULT_TIMEOUT = 2.0
    ROUND_DELAY_SECONDS = 0.05

    def __init__(
        self,
        client: FppHttpClient,
        num_samples: int = DEFAULT_SAMPLES,
        timeout: float = DEFAULT_TIMEOUT,
        round_delay: float = ROUND_DELAY_SECONDS,
    ):
        if num_samples < 1:
            raise ValueError("num_samples must be >= 1")
        self.client = client
        self.num_samples = num_samples
        self.timeout = timeout
        self.round_delay = round_delay

    @staticmethod
    def estimate(result: FetchResult, remote_ms: float) -> Optional[float]:
        """Drift de una respuesta; None si faltan tiempos."""
        if result.received_at is None or result.elapsed_ms is None:
            return None
        midpoint = result.received_at - result.elapsed_ms / 2
        return remote_ms - midpoint

    async def measure(self, remotes: Sequence[RemoteSystem]) -> Dict[str, Any]:
        if not remotes:
            return {'success': True, 'hosts': [], 'message': 'No remote systems'}

        urls = {r.address: remote_url(r.address, CLOCK_PROBE_PATH) for r in remotes}
        best: Dict[str, HostDrift] = {
            r.address: HostDrift(address=r.address, hostname=r.hostname) for r in remotes
        }

        for round_index in range(self.num_samples):
            if round_index > 0:
                await asyncio.sleep(self.round_delay)

            results = await self.client.get_many(urls, self.timeout)
            for address, result in results.items():
                self._record(best[address], result)

        hosts = [h.to_dict() for h in best.values()]
        drifts = [h.drift_ms for h in best.values() if h.drift_ms is not None]
        summary = {
            'hostsChecked': len(hosts),
            'hostsWithPlugin': sum(1 for h in best.values() if h.has_plugin),
            'avgDrift': round(sum(drifts) / len(drifts)) if drifts else None,
            'maxDrift': max(abs(d) for d in drifts) if drifts else None,
        }
        logger.info(
            "CLOCK_DRIFT hosts=%d with_plugin=%d max_drift=%s",
            summary['hostsChecked'], summary['hostsWithPlugin'], summary['maxDrift'],
        )
        return {'success': True, 'hosts': hosts, 'summary': summary}

    async def measure_single_host(self, address: str, hostname: str = "") -> Dict[str, Any]:
        """Drift de un único host, con el mismo muestreo que ``measure``."""
        remote = RemoteSystem(hostname=hostname or address, address=address, mode="remote")
        result = await self.measure([remote])
        return {'success': True, 'host': result['hosts'][0]}

    def _record(self, host: HostDrift, result: FetchResult) -> None:
        if result.connected:
            host.online = True
        if not result.ok:
            return

        try:
            probe = ClockProbePayload.model_validate(result.data)
        except ValidationError:
            return

        drift = self.estimate(result, probe.time_ms)
        if drift is None:
            return

        host.has_plugin = True
        host.samples += 1
        rtt = round(result.elapsed_ms, 1)
        if host.rtt_ms is None or rtt < host.rtt_ms:
            host.rtt_ms = rtt
            host.drift_ms = int(round(drift))
