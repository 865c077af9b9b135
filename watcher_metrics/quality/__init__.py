"""Señales de calidad: jitter, bandas de calidad y pérdida de paquetes."""

from .jitter import JitterEstimator, JitterState, JitterSummary, jitter_from_latencies
from .classifier import (
    JITTER_THRESHOLDS,
    LATENCY_THRESHOLDS,
    PACKET_LOSS_THRESHOLDS,
    QualityRating,
    QualityThresholds,
    combine,
    rate,
    rate_jitter,
    rate_latency,
    rate_packet_loss,
)
from .packet_loss import (
    PacketLossResult,
    estimate_packet_loss,
    expected_sync_rate,
    pairwise_packet_loss,
)

__all__ = [
    "JitterEstimator",
    "JitterState",
    "JitterSummary",
    "jitter_from_latencies",
    "JITTER_THRESHOLDS",
    "LATENCY_THRESHOLDS",
    "PACKET_LOSS_THRESHOLDS",
    "QualityRating",
    "QualityThresholds",
    "combine",
    "rate",
    "rate_jitter",
    "rate_latency",
    "rate_packet_loss",
    "PacketLossResult",
    "estimate_packet_loss",
    "expected_sync_rate",
    "pairwise_packet_loss",
]
