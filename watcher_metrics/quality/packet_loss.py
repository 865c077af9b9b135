"""Estimación de pérdida de paquetes de sync.

Los contadores enviados/recibidos cuentan clases de paquetes distintas y no
son comparables. En su lugar se deriva una tasa esperada desde el step time
de la secuencia (``fps / 10``, el player envía un sync cada 10 frames) y se
compara con la tasa observada en el remoto, medida solo en muestras con el
player reproduciendo.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_RATE = 2.0     # pkt/s con step time desconocido (~20 fps)
SYNC_DECIMATION = 10            # un paquete de sync cada N frames
MIN_PLAYING_SAMPLES = 2


@dataclass(frozen=True)
class PacketLossResult:
    """Resultado de la estimación. ``loss_pct=None`` significa "sin dato", nunca 0."""
    loss_pct: Optional[float]
    receive_rate: Optional[float]
    expected_rate: Optional[float]
    playing_samples: int
    counter_reset: bool = False


def expected_sync_rate(step_time_ms: Optional[float]) -> float:
    """Paquetes de sync por segundo esperados para un step time dado."""
    if step_time_ms is None or step_time_ms <= 0:
        return DEFAULT_EXPECTED_RATE
    fps = 1000.0 / step_time_ms
    return fps / SYNC_DECIMATION


def _median(values: List[float]) -> float:
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def estimate_packet_loss(
    samples: Iterable[Dict[str, Any]],
    packets_field: str = "packets_received",
    playing_field: str = "is_playing",
    step_time_field: str = "step_time",
) -> PacketLossResult:
    """Pérdida de paquetes de un host en una ventana de muestras.

    Reglas:
    - Solo cuentan muestras con el player reproduciendo y contador presente
    - Menos de 2 de esas muestras, o ventana de 0s: sin dato (None)
    - Contador que retrocede (reinicio del proceso remoto): sin dato
    - Tasa observada >= esperada: exactamente 0.0
    - Si no, ``(1 - observada/esperada) * 100`` acotado a [0, 100]
    """
    playing = [
        s for s in samples
        if s.get(playing_field) and s.get(packets_field) is not None
    ]
    playing.sort(key=lambda s: s["timestamp"])

    if len(playing) < MIN_PLAYING_SAMPLES:
        return PacketLossResult(None, None, None, playing_samples=len(playing))

    for prev, cur in zip(playing, playing[1:]):
        if cur[packets_field] < prev[packets_field]:
            logger.debug(
                "Counter reset detectado: %s -> %s", prev[packets_field], cur[packets_field]
            )
            return PacketLossResult(None, None, None, playing_samples=len(playing), counter_reset=True)

    window = playing[-1]["timestamp"] - playing[0]["timestamp"]
    if window <= 0:
        return PacketLossResult(None, None, None, playing_samples=len(playing))

    receive_rate = (playing[-1][packets_field] - playing[0][packets_field]) / window

    step_times = [s[step_time_field] for s in playing if s.get(step_time_field) is not None]
    expected = expected_sync_rate(_median(step_times) if step_times else None)

    if receive_rate >= expected:
        loss = 0.0
    else:
        loss = round(min(100.0, max(0.0, (1 - receive_rate / expected) * 100)), 1)

    return PacketLossResult(
        loss_pct=loss,
        receive_rate=round(receive_rate, 1),
        expected_rate=round(expected, 2),
        playing_samples=len(playing),
    )


def pairwise_packet_loss(prev: Dict[str, Any], cur: Dict[str, Any], **fields) -> Optional[float]:
    """Pérdida entre dos muestras consecutivas (historial de alta resolución)."""
    return estimate_packet_loss([prev, cur], **fields).loss_pct
