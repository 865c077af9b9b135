"""Modelos del fleet: sistemas remotos, estados sondeados e issues de comparación."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


class Severity(IntEnum):
    INFO = 1
    WARNING = 2
    CRITICAL = 3


class IssueType(str, Enum):
    OFFLINE = "offline"
    NO_PLUGIN = "no_plugin"
    MISSING_SEQUENCE = "missing_sequence"
    SEQUENCE_MISMATCH = "sequence_mismatch"
    SYNC_DRIFT = "sync_drift"
    NO_SYNC_PACKETS = "no_sync_packets"
    STATE_MISMATCH = "state_mismatch"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


def ip_sort_key(address: Optional[str]):
    """Orden numérico de IPv4; direcciones no numéricas van al final."""
    try:
        parts = [int(p) for p in (address or "").split(".")]
    except ValueError:
        return (1, 0, 0, 0, 0, address or "")
    if len(parts) != 4:
        return (1, 0, 0, 0, 0, address or "")
    return (0, parts[0], parts[1], parts[2], parts[3], "")


@dataclass(frozen=True)
class RemoteSystem:
    """Miembro del fleet."""
    hostname: str
    address: str
    mode: str
    uuid: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "address": self.address,
            "mode": self.mode,
            "uuid": self.uuid,
        }


@dataclass
class ComparisonIssue:
    """Issue detectado al comparar un remoto contra el player. Nunca se persiste."""
    type: IssueType
    severity: Severity
    host: str
    description: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "severity": int(self.severity),
            "host": self.host,
            "description": self.description,
        }
        data.update(self.context)
        return data


@dataclass
class PlayerState:
    """Estado de referencia (el host local)."""
    hostname: str
    mode: str
    plugin_installed: bool
    metrics: Dict[str, Any] = field(default_factory=dict)
    fpp_status: Dict[str, Any] = field(default_factory=dict)
    online: bool = True

    @property
    def is_playing(self) -> bool:
        # Sin plugin local no hay métricas de sync: se usa el estado de FPP
        if "sequencePlaying" in self.metrics:
            return bool(self.metrics["sequencePlaying"])
        return self.fpp_status.get("status") == "playing"

    @property
    def sequence(self) -> str:
        return self.fpp_status.get("sequence") or self.metrics.get("currentMasterSequence") or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "mode": self.mode,
            "online": self.online,
            "pluginInstalled": self.plugin_installed,
            "metrics": self.metrics,
            "fppStatus": self.fpp_status,
        }


@dataclass
class RemoteState:
    """Vista sondeada de un remoto en un ciclo."""
    address: str
    hostname: str
    online: bool = False
    plugin_installed: bool = False
    response_time_ms: Optional[float] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    fpp_status: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    # Fallos consecutivos desde que el snapshot mostrado quedó viejo
    stale_since_failure: Optional[int] = None

    def snapshot(self) -> "RemoteState":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "address": self.address,
            "hostname": self.hostname,
            "responseTime": self.response_time_ms,
            "pluginInstalled": self.plugin_installed,
            "online": self.online,
            "metrics": self.metrics,
            "fppStatus": self.fpp_status,
            "error": self.error,
        }
        if self.stale_since_failure is not None:
            data["staleSinceFailure"] = self.stale_since_failure
        return data


@dataclass
class RemoteComparison:
    """Un remoto con sus issues del ciclo."""
    state: RemoteState
    issues: List[ComparisonIssue] = field(default_factory=list)

    @property
    def max_severity(self) -> int:
        return max((int(i.severity) for i in self.issues), default=0)

    def to_dict(self) -> Dict[str, Any]:
        data = self.state.to_dict()
        data["issues"] = [i.to_dict() for i in self.issues]
        data["issueCount"] = len(self.issues)
        data["hasIssues"] = bool(self.issues)
        data["maxSeverity"] = self.max_severity
        return data
