"""Watcher runner configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RunnerConfig:
    """Configuración del ciclo de recolección + rollup."""
    sleep_seconds: float
    once: bool
    skip_collect: bool = False
    skip_rollup: bool = False
