"""Servicio del watcher: construye y conecta los componentes.

Se construye una vez al inicio del proceso y se pasa a quien lo necesite
(API, job de rollup). El estado por host (jitter, fallos consecutivos)
vive en las instancias que crea este servicio.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from common.config import Settings

from .domains.base import MetricDomain, UnknownDomainError
from .domains.efuse import EfuseDomain
from .domains.multisync_ping import MultiSyncPingDomain
from .domains.network_quality import NetworkQualityDomain
from .domains.ping import PingDomain
from .domains.voltage import VoltageDomain
from .fleet.clock_drift import ClockDriftEstimator
from .fleet.comparator import FleetComparator
from .fleet.directory import fetch_remote_systems
from .fleet.fpp_api import FppApi
from .fleet.http_client import FppHttpClient
from .fleet.models import RemoteSystem
from .fleet.stability import StabilityFilter
from .rollup.engine import TierResult

logger = logging.getLogger(__name__)


class WatcherService:
    """Punto de entrada a las consultas y ciclos de recolección."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[FppHttpClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.clock = clock
        self.client = client or FppHttpClient()
        self.api = FppApi(self.client, settings.fpp_base_url, timeout=settings.timeout_data)

        self.stability = StabilityFilter(settings.failure_threshold)
        self.comparator = FleetComparator(
            self.api,
            stability=self.stability,
            timeout_standard=settings.timeout_data,
            timeout_status=settings.timeout_status,
        )
        self.clock_drift = ClockDriftEstimator(self.client, timeout=settings.timeout_liveness)

        raw_retention = settings.raw_retention_hours * 3600
        self.ping = PingDomain(settings.data_dir, raw_retention_seconds=raw_retention, clock=clock)
        self.multisync_ping = MultiSyncPingDomain(
            settings.data_dir, raw_retention_seconds=raw_retention, clock=clock
        )
        self.network_quality = NetworkQualityDomain(
            settings.data_dir, raw_retention_seconds=raw_retention, clock=clock
        )
        self.efuse = EfuseDomain(
            settings.data_dir, retention_days=settings.efuse_retention_days, clock=clock
        )
        self.voltage = VoltageDomain(
            settings.data_dir, retention_days=settings.voltage_retention_days, clock=clock
        )

        self.domains: Dict[str, MetricDomain] = {
            d.name: d
            for d in (self.ping, self.multisync_ping, self.network_quality, self.efuse, self.voltage)
        }

    def domain(self, name: str) -> MetricDomain:
        try:
            return self.domains[name]
        except KeyError:
            raise UnknownDomainError(name) from None

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def get_metrics(self, domain: str, hours_back: float = 24, host: Optional[str] = None) -> Dict[str, Any]:
        return self.domain(domain).get_metrics(hours_back, host)

    def get_current_quality(self) -> Dict[str, Any]:
        return self.network_quality.get_status()

    def get_voltage_status(self) -> Dict[str, Any]:
        return self.voltage.get_current_status()

    def get_rollup_tiers_info(self, domain: str) -> Dict[str, Dict[str, Any]]:
        return self.domain(domain).get_rollup_tiers_info()

    async def get_remote_systems(self) -> List[RemoteSystem]:
        return await fetch_remote_systems(self.api)

    async def get_comparison(self) -> Dict[str, Any]:
        remotes = await self.get_remote_systems()
        return await self.comparator.get_comparison(remotes)

    async def measure_clock_drift(self) -> Dict[str, Any]:
        remotes = await self.get_remote_systems()
        return await self.clock_drift.measure(remotes)

    async def get_comparison_for_host(self, address: str) -> Dict[str, Any]:
        """Comparación de un solo remoto; el hostname sale del listado del fleet."""
        remotes = await self.get_remote_systems()
        hostname = next((r.hostname for r in remotes if r.address == address), address)
        return await self.comparator.get_comparison_for_host(address, hostname)

    async def measure_single_host(self, address: str, hostname: Optional[str] = None) -> Dict[str, Any]:
        return await self.clock_drift.measure_single_host(address, hostname or "")

    # ------------------------------------------------------------------
    # Ciclos periódicos
    # ------------------------------------------------------------------

    async def collect_once(self) -> Dict[str, Any]:
        """Un ciclo de recolección: liveness, comparación, calidad de red y ping."""
        remotes = await self.get_remote_systems()

        interface = self.settings.network_interface or None
        liveness = await self.multisync_ping.collect(
            remotes, timeout=self.settings.timeout_liveness, interface=interface
        )
        comparison = await self.comparator.get_comparison(remotes)
        quality = await self.network_quality.collect(comparison, self.api)

        ping_sample = None
        if self.settings.ping_target:
            ping_sample = await self.ping.collect(
                self.settings.ping_target, timeout=self.settings.timeout_liveness, interface=interface
            )

        summary = {
            'remotes': len(remotes),
            'liveness_samples': len(liveness),
            'quality_samples': len(quality),
            'ping': ping_sample,
            'health': comparison['summary']['healthStatus'],
        }
        logger.info(
            "COLLECT_DONE remotes=%d liveness=%d quality=%d health=%s",
            summary['remotes'], summary['liveness_samples'], summary['quality_samples'], summary['health'],
        )
        return summary

    def run_rollups(self, now: Optional[float] = None) -> Dict[str, Dict[str, TierResult]]:
        """Rollup de todos los dominios; un dominio que falla no detiene a los demás."""
        now = self.clock() if now is None else now
        results: Dict[str, Dict[str, TierResult]] = {}
        for name, domain in self.domains.items():
            try:
                results[name] = domain.run_rollups(now=now)
            except Exception:
                logger.exception("ROLLUP_DOMAIN_FAILED domain=%s", name)
                results[name] = {}
        return results
