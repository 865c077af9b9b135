"""Jitter RFC 3550 por host.

``J_new = J_prev + (|L - L_prev| - J_prev) / 16``

La primera muestra de un host no produce jitter: solo se guarda como previa.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

JITTER_GAIN = 16.0


@dataclass
class JitterState:
    """Estado de jitter de un host."""
    prev_latency: float
    jitter: float = 0.0


@dataclass(frozen=True)
class JitterSummary:
    avg: float
    max: float


class JitterEstimator:
    """Estimador de jitter en streaming, con estado por host key.

    El estado vive en la instancia; ``reset()`` lo limpia (ej. entre tests o
    al reiniciar una sesión de monitoreo).
    """

    def __init__(self):
        self._states: Dict[str, JitterState] = {}
        self._lock = threading.Lock()

    def update(self, host_key: str, latency: float) -> Optional[float]:
        """Incorpora una latencia y retorna el jitter actual redondeado a 2 decimales.

        Returns:
            None en la primera muestra del host.
        """
        with self._lock:
            state = self._states.get(host_key)
            if state is None:
                self._states[host_key] = JitterState(prev_latency=latency)
                return None

            delta = abs(latency - state.prev_latency)
            state.jitter = state.jitter + (delta - state.jitter) / JITTER_GAIN
            state.prev_latency = latency
            return round(state.jitter, 2)

    def get(self, host_key: str) -> Optional[float]:
        with self._lock:
            state = self._states.get(host_key)
            return round(state.jitter, 2) if state else None

    def reset(self, host_key: Optional[str] = None) -> None:
        with self._lock:
            if host_key is None:
                self._states.clear()
            else:
                self._states.pop(host_key, None)


def jitter_from_latencies(latencies: Iterable[float]) -> Optional[JitterSummary]:
    """Jitter en batch sobre latencias ya recolectadas.

    Aplica la misma recurrencia sembrada desde el primer par y retorna el
    promedio y máximo de los valores de jitter corrientes.
    """
    values = list(latencies)
    if len(values) < 2:
        return None

    jitter = 0.0
    max_jitter = 0.0
    total = 0.0
    for prev, cur in zip(values, values[1:]):
        jitter = jitter + (abs(cur - prev) - jitter) / JITTER_GAIN
        total += jitter
        max_jitter = max(max_jitter, jitter)

    return JitterSummary(
        avg=round(total / (len(values) - 1), 2),
        max=round(max_jitter, 2),
    )
