"""Dominio ``network-quality``: calidad de red por remoto.

Muestra por remoto online en cada comparación del fleet:
- latencia = tiempo de respuesta del sondeo de estado
- jitter RFC 3550 sobre esa latencia
- contadores de paquetes (enviados por el player, recibidos por el remoto)
- si el player estaba reproduciendo y el step time de la secuencia

Agregados por host: latencia min/max/avg/p95, jitter avg/max, tasa de
recepción, pérdida de paquetes y bandas de calidad.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..fleet.fpp_api import FppApi
from ..quality.classifier import QualityRating, combine, rate_jitter, rate_latency, rate_packet_loss
from ..quality.jitter import JitterEstimator, jitter_from_latencies
from ..quality.packet_loss import estimate_packet_loss, pairwise_packet_loss
from ..rollup.aggregation import aggregate_latencies, bucket_start, group_by, numeric_values
from ..rollup.tiers import RAW_QUERY_MAX_HOURS
from ..storage.timeseries_log import Sample
from .base import MetricDomain, host_predicate

logger = logging.getLogger(__name__)

STATUS_WINDOW_SECONDS = 3600
RAW_HISTORY_BUCKET_SECONDS = 60


def _quality_value(rating: Optional[QualityRating]) -> Optional[str]:
    return rating.value if rating is not None else None


def _mean(values: List[float], precision: int) -> Optional[float]:
    return round(sum(values) / len(values), precision) if values else None


def aggregate_hosts(samples: List[Sample]) -> List[Dict[str, Any]]:
    """Agrega muestras crudas por hostname (usado por rollup y por el estado actual)."""
    ordered = sorted(samples, key=lambda s: s["timestamp"])
    results = []

    for hostname, host_samples in group_by(ordered, lambda s: s.get("hostname") or "unknown").items():
        record: Dict[str, Any] = {
            'hostname': hostname,
            'address': host_samples[-1].get("address", ""),
            'sample_count': len(host_samples),
        }

        latencies = numeric_values(host_samples, "latency")
        stored_jitters = numeric_values(host_samples, "jitter")
        record.update(aggregate_latencies(latencies, precision=1))

        # Jitter recalculado de latencias ordenadas; si no alcanza, los valores guardados
        summary = jitter_from_latencies(latencies)
        if summary is not None:
            record['jitter_avg'] = summary.avg
            record['jitter_max'] = summary.max
        elif stored_jitters:
            record['jitter_avg'] = round(sum(stored_jitters) / len(stored_jitters), 2)
            record['jitter_max'] = round(max(stored_jitters), 2)
        else:
            record['jitter_avg'] = None
            record['jitter_max'] = None

        latency_quality = rate_latency(record['latency_avg'])
        jitter_quality = rate_jitter(record['jitter_avg'])

        loss = estimate_packet_loss(host_samples)
        loss_quality = rate_packet_loss(loss.loss_pct)

        record['latency_quality'] = _quality_value(latency_quality)
        record['jitter_quality'] = _quality_value(jitter_quality)
        record['receive_rate'] = loss.receive_rate
        record['packet_loss_pct'] = loss.loss_pct
        record['packet_loss_quality'] = _quality_value(loss_quality)
        record['overall_quality'] = combine(latency_quality, jitter_quality, loss_quality).value
        results.append(record)

    return results


class NetworkQualityDomain(MetricDomain):
    name = "network-quality"

    def __init__(self, data_dir, jitter: Optional[JitterEstimator] = None, **kwargs):
        super().__init__(data_dir, **kwargs)
        self.jitter = jitter or JitterEstimator()

    def aggregate(self, samples: List[Sample], bucket_start: int, interval: int) -> List[Dict[str, Any]]:
        return aggregate_hosts(samples)

    async def collect(self, comparison: Dict[str, Any], api: Optional[FppApi] = None) -> List[Sample]:
        """Construye y escribe muestras a partir del resultado de una comparación."""
        if not comparison.get('success'):
            return []

        player = comparison.get('player') or {}
        player_metrics = player.get('metrics') or {}
        player_status = player.get('fppStatus') or {}
        is_playing = player_status.get('status') == 'playing'

        step_time = None
        if is_playing and api is not None:
            step_time = await api.sequence_step_time(player_status.get('sequence') or '')

        timestamp = int(self.clock())
        samples = []
        for remote in comparison.get('remotes', []):
            # Un snapshot en caché del StabilityFilter no es una medición nueva
            if not remote.get('online') or remote.get('staleSinceFailure') is not None:
                continue
            hostname = remote.get('hostname') or remote.get('address')
            latency = remote.get('responseTime')
            jitter = self.jitter.update(hostname, latency) if latency is not None else None

            samples.append({
                'timestamp': timestamp,
                'hostname': hostname,
                'address': remote.get('address'),
                'latency': latency,
                'jitter': jitter,
                'player_packets_sent': player_metrics.get('totalPacketsSent'),
                'packets_received': (remote.get('metrics') or {}).get('totalPacketsReceived'),
                'is_playing': is_playing,
                'step_time': step_time,
                'plugin_installed': remote.get('pluginInstalled', False),
                'latency_quality': _quality_value(rate_latency(latency)),
                'jitter_quality': _quality_value(rate_jitter(jitter)),
            })

        self.write_samples(samples)
        return samples

    def get_status(self) -> Dict[str, Any]:
        """Calidad actual (última hora) por host más un resumen."""
        now = self.clock()
        raw = self.raw_log.read_since(now - STATUS_WINDOW_SECONDS)
        if not raw:
            return {
                'success': True,
                'timestamp': int(now),
                'hosts': [],
                'summary': {
                    'avgLatency': None,
                    'avgJitter': None,
                    'avgPacketLoss': None,
                    'overallQuality': 'unknown',
                },
            }

        hosts = aggregate_hosts(raw)
        latency = [h['latency_avg'] for h in hosts if h['latency_avg'] is not None]
        jitter = [h['jitter_avg'] for h in hosts if h['jitter_avg'] is not None]
        loss = [h['packet_loss_pct'] for h in hosts if h['packet_loss_pct'] is not None]
        overall = combine(*(QualityRating(h['overall_quality']) for h in hosts))

        return {
            'success': True,
            'timestamp': int(now),
            'hosts': hosts,
            'summary': {
                'avgLatency': _mean(latency, 1),
                'avgJitter': _mean(jitter, 2),
                'avgPacketLoss': _mean(loss, 2),
                'overallQuality': overall.value,
            },
        }

    def get_history(self, hours_back: float = 6, host: Optional[str] = None) -> Dict[str, Any]:
        """Series para gráficos. Ventanas cortas se calculan desde raw."""
        if hours_back <= RAW_QUERY_MAX_HOURS:
            return self._history_from_raw(hours_back, host)

        result = self.get_metrics(hours_back, host)
        if not result.get('success'):
            return result

        chart = {'labels': [], 'latency': [], 'jitter': [], 'packetLoss': []}
        by_timestamp = group_by(result['data'], lambda e: e["timestamp"])
        for ts in sorted(by_timestamp):
            entries = by_timestamp[ts]
            chart['labels'].append(int(ts * 1000))
            chart['latency'].append(_mean(numeric_values(entries, 'latency_avg'), 1))
            chart['jitter'].append(_mean(numeric_values(entries, 'jitter_avg'), 2))
            chart['packetLoss'].append(_mean(numeric_values(entries, 'packet_loss_pct'), 2))

        return {'success': True, 'chartData': chart, 'tier_info': result.get('tier_info')}

    def _history_from_raw(self, hours_back: float, host: Optional[str]) -> Dict[str, Any]:
        tier_info = {'tier': 'raw', 'interval': RAW_HISTORY_BUCKET_SECONDS, 'label': '1 minute (raw)'}
        start = self.clock() - hours_back * 3600
        raw = self.raw_log.read_since(start, predicate=host_predicate(host))
        chart = {'labels': [], 'latency': [], 'jitter': [], 'packetLoss': []}
        if not raw:
            return {'success': True, 'chartData': chart, 'tier_info': tier_info}

        # Pérdida entre muestras consecutivas con el player reproduciendo
        loss_by_sample: Dict[tuple, float] = {}
        for hostname, samples in group_by(raw, lambda s: s.get("hostname") or "unknown").items():
            prev = None
            for sample in samples:
                if not sample.get("is_playing") or sample.get("packets_received") is None:
                    continue
                if prev is not None:
                    loss = pairwise_packet_loss(prev, sample)
                    if loss is not None:
                        loss_by_sample[(hostname, sample["timestamp"])] = loss
                prev = sample

        buckets = group_by(raw, lambda s: bucket_start(s["timestamp"], RAW_HISTORY_BUCKET_SECONDS))
        for ts in sorted(buckets):
            entries = buckets[ts]
            losses = [
                loss_by_sample[(e.get("hostname") or "unknown", e["timestamp"])]
                for e in entries
                if (e.get("hostname") or "unknown", e["timestamp"]) in loss_by_sample
            ]
            chart['labels'].append(ts * 1000)
            chart['latency'].append(_mean(numeric_values(entries, 'latency'), 1))
            chart['jitter'].append(_mean(numeric_values(entries, 'jitter'), 2))
            chart['packetLoss'].append(_mean(losses, 1))

        return {'success': True, 'chartData': chart, 'tier_info': tier_info}
