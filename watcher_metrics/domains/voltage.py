"""Dominio ``voltage``: voltaje por riel de la placa (core, sdram, ...).

La lectura del hardware queda fuera; el dominio recibe ``{riel: V}`` ya
leído. Los tiers dependen de la retención configurada:

- 1min siempre (máx. 6 h)
- 5min si la retención supera 1 día (máx. 48 h)
- 30min si supera 3 días (máx. 7 días)
- 2hour si supera 7 días (retención completa)

Los tiers superiores agregan desde el tier anterior.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..rollup.aggregation import merge_channels
from ..rollup.tiers import RollupTier
from ..storage.timeseries_log import Sample
from .base import MetricDomain

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 1
VOLTAGE_RAW_RETENTION_SECONDS = 6 * 3600
RAW_METRICS_MAX_HOURS = 1
CURRENT_STATUS_MAX_AGE_SECONDS = 300
LEGACY_RAIL = "core"


def voltage_tiers(retention_days: int) -> Tuple[RollupTier, ...]:
    """Tiers de voltaje para la retención configurada."""
    if retention_days < 1:
        raise ValueError("voltage retention must be at least 1 day")

    retention = retention_days * 86400
    tiers = [RollupTier("1min", 60, min(6 * 3600, retention), "1-minute averages")]
    if retention_days > 1:
        tiers.append(RollupTier("5min", 300, min(48 * 3600, retention), "5-minute averages"))
    if retention_days > 3:
        tiers.append(RollupTier("30min", 1800, min(7 * 86400, retention), "30-minute averages"))
    if retention_days > 7:
        tiers.append(RollupTier("2hour", 7200, retention, "2-hour averages"))
    return tuple(tiers)


def _rails(entry: Sample) -> Dict[str, Any]:
    # Formato legacy: {"voltage": X} era siempre el riel core
    rails = entry.get("voltages")
    if isinstance(rails, dict):
        return rails
    if "voltage" in entry:
        return {LEGACY_RAIL: entry["voltage"]}
    return {}


class VoltageDomain(MetricDomain):
    name = "voltage"
    cascade = True

    def __init__(self, data_dir, retention_days: int = DEFAULT_RETENTION_DAYS, **kwargs):
        kwargs.setdefault("raw_retention_seconds", VOLTAGE_RAW_RETENTION_SECONDS)
        super().__init__(data_dir, tiers=voltage_tiers(retention_days), **kwargs)
        self.retention_days = retention_days

    def write_reading(self, voltages: Dict[str, float]) -> int:
        """Escribe una lectura cruda de todos los rieles."""
        if not voltages:
            return 0
        return self.write_samples([{'timestamp': int(self.clock()), 'voltages': dict(voltages)}])

    def aggregate(self, samples: List[Sample], bucket_start: int, interval: int) -> Optional[Dict[str, Any]]:
        rail_data = merge_channels(_rails(sample) for sample in samples)
        if not rail_data:
            return None

        voltages = {
            rail: {
                'avg': round(sum(data['values']) / len(data['values']), 4),
                'min': round(min(data['mins']), 4),
                'max': round(max(data['maxs']), 4),
                'samples': data['samples'],
            }
            for rail, data in rail_data.items()
        }
        return {
            'timestamp': bucket_start,
            'interval': interval,
            'sample_count': max(v['samples'] for v in voltages.values()),
            'voltages': voltages,
        }

    def get_metrics(self, hours_back: float = 24, host: Optional[str] = None) -> Dict[str, Any]:
        """Serie de voltajes; hasta una hora se sirve desde raw.

        La ventana se limita a la retención configurada.
        """
        hours_back = min(hours_back, self.retention_days * 24)
        if hours_back <= RAW_METRICS_MAX_HOURS:
            raw = self.get_raw_metrics(hours_back)
            if raw:
                data = [
                    {'timestamp': entry['timestamp'], 'voltages': _rails(entry)}
                    for entry in raw
                ]
                return {
                    'success': True,
                    'count': len(data),
                    'data': data,
                    'tier_info': {'tier': 'raw', 'interval': None, 'label': 'Raw readings'},
                }
        return super().get_metrics(hours_back, host)

    def get_current_status(self) -> Dict[str, Any]:
        """Última lectura reciente de todos los rieles."""
        now = self.clock()
        recent = self.raw_log.read_since(now - CURRENT_STATUS_MAX_AGE_SECONDS)
        if not recent:
            return {'success': False, 'error': 'No recent voltage readings'}

        latest = recent[-1]
        rails = _rails(latest)
        return {
            'success': True,
            'timestamp': latest['timestamp'],
            'voltage': rails.get(LEGACY_RAIL, next(iter(rails.values()), None)),
            'voltages': rails,
            'rails': sorted(rails),
        }
