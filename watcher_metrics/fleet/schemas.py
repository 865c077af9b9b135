"""Esquemas Pydantic de las respuestas de FPP y del plugin remoto.

Todos toleran campos extra y ausentes: un remoto con versión distinta no
debe romper el sondeo.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator


class FppStatusPayload(BaseModel):
    """``GET /api/fppd/status``."""

    mode_name: str = "unknown"
    status_name: str = "unknown"
    current_sequence: str = ""
    current_frame: int = 0
    seconds_played: float = 0.0
    seconds_remaining: float = 0.0
    host_name: Optional[str] = None

    class Config:
        extra = "ignore"

    @validator("current_sequence", pre=True)
    def none_sequence(cls, v):
        return v or ""

    @validator("mode_name", "status_name", pre=True)
    def none_to_unknown(cls, v):
        return v or "unknown"

    @validator("current_frame", "seconds_played", "seconds_remaining", pre=True)
    def blank_to_zero(cls, v):
        if v is None or v == "":
            return 0
        return v

    def to_status(self) -> Dict[str, Any]:
        """Subconjunto normalizado usado por el comparador."""
        return {
            "status": self.status_name,
            "sequence": self.current_sequence,
            "currentFrame": self.current_frame,
            "secondsPlayed": self.seconds_played,
            "secondsRemaining": self.seconds_remaining,
        }


class PluginStatusPayload(BaseModel):
    """Estado del componente nativo de multisync (``localPluginStatus``).

    Se conservan los campos extra: el dict completo viaja como ``metrics``.
    """

    total_packets_sent: Optional[int] = Field(default=None, alias="totalPacketsSent")
    total_packets_received: Optional[int] = Field(default=None, alias="totalPacketsReceived")
    sequence_playing: bool = Field(default=False, alias="sequencePlaying")
    current_master_sequence: str = Field(default="", alias="currentMasterSequence")
    avg_frame_drift: float = Field(default=0.0, alias="avgFrameDrift")
    max_frame_drift: float = Field(default=0.0, alias="maxFrameDrift")
    seconds_since_last_sync: float = Field(default=-1, alias="secondsSinceLastSync")
    avg_sync_interval_ms: Optional[float] = Field(default=None, alias="avgSyncIntervalMs")
    sync_interval_jitter_ms: Optional[float] = Field(default=None, alias="syncIntervalJitterMs")

    class Config:
        populate_by_name = True
        extra = "allow"

    @validator("current_master_sequence", pre=True)
    def none_sequence(cls, v):
        return v or ""

    @validator("sequence_playing", pre=True)
    def none_playing(cls, v):
        return bool(v)

    @validator("avg_frame_drift", "max_frame_drift", pre=True)
    def none_drift(cls, v):
        return 0.0 if v is None else v

    @validator("seconds_since_last_sync", pre=True)
    def none_since_sync(cls, v):
        return -1 if v is None else v

    def to_metrics(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class FullStatusPayload(BaseModel):
    """Endpoint combinado del plugin remoto (``multisync/full-status``)."""

    success: bool = False
    watcher_loaded: bool = Field(default=False, alias="watcherLoaded")
    watcher: Optional[Dict[str, Any]] = None
    fpp: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "ignore"


class FleetSystemPayload(BaseModel):
    """Entrada de ``/api/fppd/multiSyncSystems``."""

    hostname: str = ""
    address: str = ""
    fpp_mode_string: str = Field(default="", alias="fppModeString")
    uuid: Optional[str] = None
    local: bool = False

    class Config:
        populate_by_name = True
        extra = "ignore"

    @validator("hostname", "address", "fpp_mode_string", pre=True)
    def none_to_empty(cls, v):
        return "" if v is None else str(v)

    @validator("uuid", pre=True)
    def blank_uuid(cls, v):
        return v or None


class FleetPayload(BaseModel):
    systems: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        extra = "ignore"


class ClockProbePayload(BaseModel):
    """``GET /api/plugin/fpp-plugin-watcher/time``."""

    time_ms: float

    class Config:
        extra = "ignore"


class SequenceMetaPayload(BaseModel):
    step_time: Optional[int] = Field(default=None, alias="StepTime")

    class Config:
        populate_by_name = True
        extra = "ignore"
