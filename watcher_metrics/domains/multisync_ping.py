"""Dominio ``multisync-ping``: ping ICMP a cada remoto del fleet.

Cada ciclo lanza un ping por remoto en paralelo (timeout corto, interfaz
opcional), mide la latencia y calcula jitter RFC 3550 por host. Es una
medición de red independiente de la latencia HTTP de ``network-quality``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..fleet.models import RemoteSystem
from ..quality.jitter import JitterEstimator
from ..rollup.aggregation import group_by, numeric_values
from ..storage.timeseries_log import Sample
from .base import MetricDomain
from .ping import ping_host

logger = logging.getLogger(__name__)


class MultiSyncPingDomain(MetricDomain):
    """Latencia/jitter por remoto: un registro por host por bucket."""

    name = "multisync-ping"

    def __init__(self, data_dir, jitter: Optional[JitterEstimator] = None, **kwargs):
        super().__init__(data_dir, **kwargs)
        self.jitter = jitter or JitterEstimator()

    def aggregate(self, samples: List[Sample], bucket_start: int, interval: int) -> List[Dict[str, Any]]:
        records = []
        for hostname, host_samples in group_by(samples, lambda s: s.get("hostname") or "unknown").items():
            latencies = numeric_values(host_samples, "latency")
            jitters = numeric_values(host_samples, "jitter")
            success = sum(1 for s in host_samples if s.get("status") == "success")

            records.append({
                'timestamp': bucket_start,
                'hostname': hostname,
                'address': host_samples[-1].get("address", ""),
                'sample_count': len(host_samples),
                'success_count': success,
                'failure_count': len(host_samples) - success,
                'min_latency': round(min(latencies), 3) if latencies else None,
                'max_latency': round(max(latencies), 3) if latencies else None,
                'avg_latency': round(sum(latencies) / len(latencies), 3) if latencies else None,
                'avg_jitter': round(sum(jitters) / len(jitters), 2) if jitters else None,
                'max_jitter': round(max(jitters), 2) if jitters else None,
            })
        return records

    async def collect(
        self,
        remotes: Sequence[RemoteSystem],
        timeout: float = 2.0,
        interface: Optional[str] = None,
    ) -> List[Sample]:
        """Hace ping a todos los remotos en paralelo y escribe una muestra por remoto."""
        targets = [r for r in remotes if r.address]
        if not targets:
            return []

        latencies = await asyncio.gather(
            *(ping_host(r.address, timeout=timeout, interface=interface) for r in targets)
        )
        timestamp = int(self.clock())

        samples = []
        for remote, latency in zip(targets, latencies):
            jitter = self.jitter.update(remote.hostname, latency) if latency is not None else None
            samples.append({
                'timestamp': timestamp,
                'hostname': remote.hostname,
                'address': remote.address,
                'latency': latency,
                'jitter': jitter,
                'status': 'success' if latency is not None else 'failure',
            })

        failed = sum(1 for s in samples if s['status'] == 'failure')
        if failed:
            logger.debug("MULTISYNC_PING_FAILURES failed=%d total=%d", failed, len(samples))

        self.write_samples(samples)
        return samples
