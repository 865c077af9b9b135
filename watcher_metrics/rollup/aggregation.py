"""Helpers de agregación compartidos por las funciones de rollup de cada dominio."""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence


def bucket_start(timestamp: float, interval: int) -> int:
    """Inicio del bucket alineado al múltiplo del intervalo (125, 60 -> 120)."""
    return int(math.floor(timestamp / interval) * interval)


def percentile(sorted_values: Sequence[float], pct: float) -> Optional[float]:
    """Percentil por rango más cercano: índice ``ceil(n * pct) - 1``."""
    if not sorted_values:
        return None
    index = int(math.ceil(len(sorted_values) * pct)) - 1
    return sorted_values[max(0, min(index, len(sorted_values) - 1))]


def aggregate_latencies(
    latencies: Iterable[float],
    precision: int = 1,
    include_p95: bool = True,
) -> Dict[str, Optional[float]]:
    """min/max/avg (y p95) de latencias con nombres de campo consistentes."""
    values = sorted(latencies)
    if not values:
        result: Dict[str, Optional[float]] = {
            'latency_min': None,
            'latency_max': None,
            'latency_avg': None,
        }
        if include_p95:
            result['latency_p95'] = None
        return result

    result = {
        'latency_min': round(values[0], precision),
        'latency_max': round(values[-1], precision),
        'latency_avg': round(sum(values) / len(values), precision),
    }
    if include_p95:
        result['latency_p95'] = round(percentile(values, 0.95), precision)
    return result


def group_by(samples: Iterable[Dict[str, Any]], key: Callable[[Dict[str, Any]], Any]) -> Dict[Any, List[Dict[str, Any]]]:
    """Agrupa conservando el orden de llegada; claves ``None`` se descartan."""
    groups: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
    for sample in samples:
        k = key(sample)
        if k is None:
            continue
        groups[k].append(sample)
    return dict(groups)


def numeric_values(samples: Iterable[Dict[str, Any]], field_name: str) -> List[float]:
    """Valores numéricos de un campo, ignorando ausentes y no numéricos."""
    values = []
    for sample in samples:
        value = sample.get(field_name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        values.append(float(value))
    return values


def merge_channels(readings: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Junta lecturas por canal (puerto eFuse, riel de voltaje).

    Cada lectura es ``{canal: valor}`` (raw) o ``{canal: {avg, min, max,
    samples}}`` (registro de un tier inferior). Retorna por canal las listas
    ``values``/``mins``/``maxs`` y el total de lecturas crudas ``samples``.
    """
    channels: Dict[str, Dict[str, Any]] = {}
    for reading in readings:
        for name, value in reading.items():
            data = channels.setdefault(name, {'values': [], 'mins': [], 'maxs': [], 'samples': 0})
            if isinstance(value, dict):
                data['values'].append(value.get('avg', 0))
                data['mins'].append(value.get('min', 0))
                data['maxs'].append(value.get('max', 0))
                data['samples'] += value.get('samples', 1)
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                data['values'].append(value)
                data['mins'].append(value)
                data['maxs'].append(value)
                data['samples'] += 1
    return {name: data for name, data in channels.items() if data['values']}
