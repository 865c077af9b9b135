"""Suavizado por umbral de fallos consecutivos.

Evita que un sondeo perdido haga parpadear el estado online/offline de un
remoto entre ciclos.

Reglas:
- Responde: fallos = 0, snapshot = copia profunda del estado actual, se
  muestra el estado fresco
- No responde: fallos += 1; si fallos < umbral y hay snapshot, se muestra
  el snapshot marcado con ``stale_since_failure``; si no, el offline real
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from .models import RemoteState

DEFAULT_FAILURE_THRESHOLD = 3


@dataclass(frozen=True)
class StabilityResult:
    displayed: RemoteState
    failures: int
    snapshot: Optional[RemoteState]


@dataclass
class FailureState:
    """Estado de fallos de un host."""
    consecutive_failures: int = 0
    last_good: Optional[RemoteState] = None


def apply_failure_threshold(
    current: RemoteState,
    prior_failures: int,
    prior_snapshot: Optional[RemoteState],
    threshold: int = DEFAULT_FAILURE_THRESHOLD,
) -> StabilityResult:
    """Función pura: ``(actual, fallos, snapshot) -> (mostrado, fallos, snapshot)``."""
    if current.online:
        snapshot = current.snapshot()
        return StabilityResult(displayed=current, failures=0, snapshot=snapshot)

    failures = prior_failures + 1
    if failures < threshold and prior_snapshot is not None:
        displayed = prior_snapshot.snapshot()
        displayed.stale_since_failure = failures
        return StabilityResult(displayed=displayed, failures=failures, snapshot=prior_snapshot)

    return StabilityResult(displayed=current, failures=failures, snapshot=prior_snapshot)


class StabilityFilter:
    """Aplica el umbral por host, con el mapa de estado en la instancia."""

    def __init__(self, threshold: int = DEFAULT_FAILURE_THRESHOLD):
        if threshold < 1:
            raise ValueError("failure threshold must be >= 1")
        self.threshold = threshold
        self._states: Dict[str, FailureState] = {}
        self._lock = threading.Lock()

    def apply(self, host_key: str, current: RemoteState) -> RemoteState:
        with self._lock:
            state = self._states.get(host_key, FailureState())
            result = apply_failure_threshold(
                current, state.consecutive_failures, state.last_good, self.threshold
            )
            self._states[host_key] = FailureState(
                consecutive_failures=result.failures, last_good=result.snapshot
            )
            return result.displayed

    def get_failures(self, host_key: str) -> int:
        with self._lock:
            state = self._states.get(host_key)
            return state.consecutive_failures if state else 0

    def reset(self, host_key: Optional[str] = None) -> None:
        with self._lock:
            if host_key is None:
                self._states.clear()
            else:
                self._states.pop(host_key, None)
