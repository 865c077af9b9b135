"""Dominio ``ping``: latencia ICMP del host local hacia un destino configurado."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from ..rollup.aggregation import numeric_values
from ..storage.timeseries_log import Sample
from .base import MetricDomain

logger = logging.getLogger(__name__)

_PING_TIME = re.compile(r"time[=<]\s*([\d.]+)\s*ms")


async def ping_host(address: str, timeout: float = 2.0, interface: Optional[str] = None) -> Optional[float]:
    """Un ping ICMP; retorna la latencia en ms o None si no hubo respuesta."""
    cmd = ["ping", "-c", "1", "-W", str(max(1, int(timeout)))]
    if interface:
        cmd += ["-I", interface]
    cmd.append(address)

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.error("No se pudo ejecutar ping: %s", e)
        return None

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout + 1)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return None

    if proc.returncode != 0:
        return None
    match = _PING_TIME.search(stdout.decode(errors="replace"))
    return float(match.group(1)) if match else None


class PingDomain(MetricDomain):
    """Latencia de ping: un registro por bucket."""

    name = "ping"

    def aggregate(self, samples: List[Sample], bucket_start: int, interval: int) -> Optional[Dict[str, Any]]:
        if not samples:
            return None

        latencies = numeric_values(samples, "latency")
        hosts: Dict[str, int] = {}
        success = 0
        failure = 0
        for sample in samples:
            host = sample.get("host")
            if host:
                hosts[host] = hosts.get(host, 0) + 1
            if sample.get("status") == "success":
                success += 1
            elif sample.get("status") == "failure":
                failure += 1

        return {
            'timestamp': bucket_start,
            'min_latency': round(min(latencies), 3) if latencies else None,
            'max_latency': round(max(latencies), 3) if latencies else None,
            'avg_latency': round(sum(latencies) / len(latencies), 3) if latencies else None,
            'sample_count': len(samples),
            'success_count': success,
            'failure_count': failure,
            'hosts': hosts,
        }

    async def collect(self, address: str, timeout: float = 2.0, interface: Optional[str] = None) -> Sample:
        latency = await ping_host(address, timeout=timeout, interface=interface)
        sample = {
            'timestamp': int(self.clock()),
            'host': address,
            'latency': latency,
            'status': 'success' if latency is not None else 'failure',
        }
        self.write_samples([sample])
        return sample
