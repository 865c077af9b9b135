"""Fleet multisync: directorio, sondeo, comparación, suavizado y drift de reloj.

- models.py: RemoteSystem, RemoteState, PlayerState, ComparisonIssue
- schemas.py: Esquemas Pydantic de las respuestas de FPP/plugin
- http_client.py: Fan-out httpx paralelo (nunca lanza por errores de red)
- fpp_api.py: Rutas de la API local/remota
- directory.py: Directorio del fleet (dedupe + orden por IP)
- comparator.py: FleetComparator
- stability.py: StabilityFilter (umbral de fallos consecutivos)
- clock_drift.py: ClockDriftEstimator
"""

from .models import (
    ComparisonIssue,
    HealthStatus,
    IssueType,
    PlayerState,
    RemoteComparison,
    RemoteState,
    RemoteSystem,
    Severity,
)
from .http_client import FetchResult, FppHttpClient
from .fpp_api import FppApi
from .directory import build_remote_systems, fetch_remote_systems
from .comparator import FleetComparator
from .stability import StabilityFilter, StabilityResult, apply_failure_threshold
from .clock_drift import ClockDriftEstimator, drift_status, format_drift

__all__ = [
    "ComparisonIssue",
    "HealthStatus",
    "IssueType",
    "PlayerState",
    "RemoteComparison",
    "RemoteState",
    "RemoteSystem",
    "Severity",
    "FetchResult",
    "FppHttpClient",
    "FppApi",
    "build_remote_systems",
    "fetch_remote_systems",
    "FleetComparator",
    "StabilityFilter",
    "StabilityResult",
    "apply_failure_threshold",
    "ClockDriftEstimator",
    "drift_status",
    "format_drift",
]
