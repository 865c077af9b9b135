"""Clasificación de calidad por bandas ordinales."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class QualityRating(str, Enum):
    """Bandas de calidad, de mejor a peor."""
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {
    QualityRating.GOOD: 0,
    QualityRating.FAIR: 1,
    QualityRating.POOR: 2,
    QualityRating.CRITICAL: 3,
}


@dataclass(frozen=True)
class QualityThresholds:
    """Umbrales ascendentes; cada banda es inclusiva (valor <= umbral)."""
    good: float
    fair: float
    poor: float

    def __post_init__(self):
        if not (self.good <= self.fair <= self.poor):
            raise ValueError(
                f"thresholds must be ascending: good={self.good} fair={self.fair} poor={self.poor}"
            )


LATENCY_THRESHOLDS = QualityThresholds(good=50, fair=100, poor=250)        # ms
JITTER_THRESHOLDS = QualityThresholds(good=10, fair=20, poor=50)           # ms
PACKET_LOSS_THRESHOLDS = QualityThresholds(good=1, fair=2, poor=5)         # %


def rate(value: Optional[float], thresholds: QualityThresholds) -> Optional[QualityRating]:
    """Banda de un valor. ``None`` (sin dato) no tiene banda."""
    if value is None:
        return None
    if value <= thresholds.good:
        return QualityRating.GOOD
    if value <= thresholds.fair:
        return QualityRating.FAIR
    if value <= thresholds.poor:
        return QualityRating.POOR
    return QualityRating.CRITICAL


def combine(*ratings: Optional[QualityRating]) -> QualityRating:
    """La peor de las bandas; las ausentes cuentan como ``good``."""
    worst = QualityRating.GOOD
    for rating in ratings:
        if rating is None:
            continue
        rating = QualityRating(rating)
        if rating.rank > worst.rank:
            worst = rating
    return worst


def rate_latency(value: Optional[float]) -> Optional[QualityRating]:
    return rate(value, LATENCY_THRESHOLDS)


def rate_jitter(value: Optional[float]) -> Optional[QualityRating]:
    return rate(value, JITTER_THRESHOLDS)


def rate_packet_loss(value: Optional[float]) -> Optional[QualityRating]:
    return rate(value, PACKET_LOSS_THRESHOLDS)
