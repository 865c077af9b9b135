"""Dominio ``efuse``: corriente por puerto (mA) de las placas con eFuse.

Los tiers se limitan a la retención configurada (días) y los superiores
agregan desde el tier anterior en vez del raw. La lectura del hardware
queda fuera; el dominio recibe ``{puerto: mA}`` ya leído.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..rollup.aggregation import merge_channels
from ..rollup.tiers import DEFAULT_TIERS, cap_retention
from ..storage.timeseries_log import Sample
from .base import MetricDomain

logger = logging.getLogger(__name__)

TOTAL_PORT = "_total"
DEFAULT_RETENTION_DAYS = 7
EFUSE_RAW_RETENTION_SECONDS = 6 * 3600


class EfuseDomain(MetricDomain):
    name = "efuse"
    cascade = True

    def __init__(self, data_dir, retention_days: int = DEFAULT_RETENTION_DAYS, **kwargs):
        kwargs.setdefault("raw_retention_seconds", EFUSE_RAW_RETENTION_SECONDS)
        tiers = cap_retention(DEFAULT_TIERS, retention_days * 86400)
        super().__init__(data_dir, tiers=tiers, **kwargs)
        self.retention_days = retention_days

    def write_reading(self, ports: Dict[str, float]) -> int:
        """Escribe una lectura cruda; agrega el total de todos los puertos."""
        if not ports:
            return 0
        values = dict(ports)
        values[TOTAL_PORT] = sum(v for k, v in ports.items() if k != TOTAL_PORT)
        return self.write_samples([{'timestamp': int(self.clock()), 'ports': values}])

    def aggregate(self, samples: List[Sample], bucket_start: int, interval: int) -> Optional[Dict[str, Any]]:
        # Las entradas raw traen mA por puerto; las de tiers traen {avg, min, max, samples}
        port_data = merge_channels(sample.get("ports") or {} for sample in samples)

        ports = {}
        for port, data in port_data.items():
            ports[port] = {
                'avg': int(round(sum(data['values']) / len(data['values']))),
                'min': min(data['mins']),
                'max': max(data['maxs']),
                'peak': max(data['maxs']),
                'samples': data['samples'],
            }

        if not ports:
            return None
        # Lecturas crudas cubiertas por el bucket, igual en todos los tiers
        sample_count = max(p['samples'] for p in ports.values())
        return {
            'timestamp': bucket_start,
            'interval': interval,
            'sample_count': sample_count,
            'ports': ports,
        }

    def get_port_history(self, port: str, hours_back: float = 24) -> Dict[str, Any]:
        """Serie de un puerto desde el mejor tier disponible."""
        result = self.get_metrics(hours_back)
        points = []
        for entry in result.get('data', []):
            values = (entry.get('ports') or {}).get(port)
            if values is None:
                continue
            points.append({
                'timestamp': entry['timestamp'],
                'avg': values.get('avg'),
                'min': values.get('min'),
                'max': values.get('max'),
            })
        return {
            'success': result.get('success', False),
            'port': port,
            'data': points,
            'tier_info': result.get('tier_info'),
        }
