"""Dominios de métricas (cada uno con raw log, tiers y cursor propios).

- base.py: MetricDomain
- ping.py: latencia ICMP del host local
- multisync_ping.py: ping ICMP a cada remoto del fleet
- network_quality.py: calidad de red por remoto (latencia, jitter, pérdida)
- efuse.py: corriente por puerto con tiers en cascada
- voltage.py: voltaje por riel con tiers según la retención
"""

from .base import MetricDomain, UnknownDomainError, host_predicate
from .ping import PingDomain, ping_host
from .multisync_ping import MultiSyncPingDomain
from .network_quality import NetworkQualityDomain, aggregate_hosts
from .efuse import EfuseDomain
from .voltage import VoltageDomain, voltage_tiers

__all__ = [
    "MetricDomain",
    "UnknownDomainError",
    "host_predicate",
    "PingDomain",
    "ping_host",
    "MultiSyncPingDomain",
    "NetworkQualityDomain",
    "aggregate_hosts",
    "EfuseDomain",
    "VoltageDomain",
    "voltage_tiers",
]
