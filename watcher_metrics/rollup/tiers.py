"""Definición de tiers de rollup y selección de tier para consultas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple


@dataclass(frozen=True)
class RollupTier:
    """Granularidad de bucket + retención de un nivel de rollup."""
    name: str
    interval_seconds: int
    retention_seconds: int
    label: str
    compressed: bool = False

    @property
    def filename(self) -> str:
        return f"{self.name}.log.gz" if self.compressed else f"{self.name}.log"


DEFAULT_TIERS: Tuple[RollupTier, ...] = (
    RollupTier("1min", 60, 6 * 3600, "1-minute averages"),
    RollupTier("5min", 300, 48 * 3600, "5-minute averages"),
    RollupTier("30min", 1800, 14 * 86400, "30-minute averages", compressed=True),
    RollupTier("2hour", 7200, 90 * 86400, "2-hour averages", compressed=True),
)

# Ventanas cortas se calculan desde raw: los tiers tienen pocas muestras por bucket para jitter
RAW_QUERY_MAX_HOURS = 6


def validate_tiers(tiers: Sequence[RollupTier]) -> None:
    """Verifica que intervalo y retención sean estrictamente crecientes.

    Raises:
        ValueError: lista vacía, nombres duplicados o tiers no crecientes.
    """
    if not tiers:
        raise ValueError("at least one rollup tier is required")

    names = [t.name for t in tiers]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate tier names: {names}")

    for prev, cur in zip(tiers, tiers[1:]):
        if cur.interval_seconds <= prev.interval_seconds:
            raise ValueError(
                f"tier {cur.name} interval {cur.interval_seconds}s must exceed {prev.name} ({prev.interval_seconds}s)"
            )
        if cur.retention_seconds <= prev.retention_seconds:
            raise ValueError(
                f"tier {cur.name} retention {cur.retention_seconds}s must exceed {prev.name} ({prev.retention_seconds}s)"
            )
    for tier in tiers:
        if tier.interval_seconds <= 0 or tier.retention_seconds < tier.interval_seconds:
            raise ValueError(f"tier {tier.name} has invalid interval/retention")


def get_best_tier(tiers: Sequence[RollupTier], hours_back: float) -> RollupTier:
    """Tier más fino cuya retención cubre ``hours_back``; si ninguno, el más grueso."""
    window = hours_back * 3600
    for tier in tiers:
        if tier.retention_seconds >= window:
            return tier
    return tiers[-1]


def cap_retention(
    tiers: Sequence[RollupTier],
    max_retention_seconds: int,
    compressed: bool = False,
) -> Tuple[RollupTier, ...]:
    """Limita la retención de cada tier (ej. eFuse configura días de retención).

    El tier más grueso se estira hasta el tope. Un tier que tras el tope no
    retiene más que el anterior no aporta nada y se descarta.
    """
    capped = []
    for index, tier in enumerate(tiers):
        if index == len(tiers) - 1:
            retention = max_retention_seconds
        else:
            retention = min(tier.retention_seconds, max_retention_seconds)
        if capped and retention <= capped[-1].retention_seconds:
            continue
        if retention < tier.interval_seconds:
            continue
        capped.append(
            RollupTier(
                name=tier.name,
                interval_seconds=tier.interval_seconds,
                retention_seconds=retention,
                label=tier.label,
                compressed=compressed,
            )
        )
    return tuple(capped)


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _plural(value: float, unit: str) -> str:
    text = _number(value)
    return f"{text} {unit}" if text == "1" else f"{text} {unit}s"


def format_interval(seconds: int) -> str:
    if seconds < 60:
        return _plural(seconds, "second")
    if seconds < 3600:
        return _plural(seconds / 60, "minute")
    return _plural(seconds / 3600, "hour")


def format_duration(seconds: int) -> str:
    if seconds < 3600:
        return _plural(seconds / 60, "minute")
    if seconds < 86400:
        return _plural(seconds / 3600, "hour")
    return _plural(seconds / 86400, "day")
