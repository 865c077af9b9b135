"""Base de los dominios de métricas.

Cada dominio tiene su directorio aislado ``<data_dir>/<name>/`` con
``raw.log``, un log por tier y ``rollup-state.json``. Las subclases
definen ``name`` y la función de agregación por bucket.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..rollup.engine import RollupEngine, TierResult
from ..rollup.tiers import DEFAULT_TIERS, RollupTier
from ..storage.timeseries_log import PruneResult, Sample, TimeSeriesLog, TimeSeriesWriteError

logger = logging.getLogger(__name__)

DEFAULT_RAW_RETENTION_SECONDS = 25 * 3600


class UnknownDomainError(KeyError):
    """Dominio de métricas no registrado."""


def host_predicate(host: Optional[str]) -> Optional[Callable[[Sample], bool]]:
    if host is None:
        return None
    return lambda entry: entry.get("hostname") == host or entry.get("host") == host


class MetricDomain:
    """Dominio de métricas con raw log, tiers y cursor propios."""

    name: str = ""
    cascade: bool = False

    def __init__(
        self,
        data_dir,
        tiers: Sequence[RollupTier] = DEFAULT_TIERS,
        raw_retention_seconds: float = DEFAULT_RAW_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if not self.name:
            raise ValueError(f"{type(self).__name__} must define a domain name")

        self.data_dir = Path(data_dir) / self.name
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.critical("DATA_DIR_UNAVAILABLE domain=%s path=%s", self.name, self.data_dir)
            raise

        self.clock = clock
        self.engine = RollupEngine(
            self.name,
            self.data_dir,
            self.aggregate,
            tiers=tiers,
            cascade=self.cascade,
            clock=clock,
        )
        coarsest = self.engine.tiers[-1].interval_seconds
        if raw_retention_seconds < coarsest:
            raise ValueError(
                f"{self.name}: raw retention {raw_retention_seconds}s shorter than coarsest tier interval {coarsest}s"
            )
        self.raw_retention_seconds = raw_retention_seconds

    @property
    def raw_log(self) -> TimeSeriesLog:
        return self.engine.raw_log

    def aggregate(self, samples: List[Sample], bucket_start: int, interval: int):
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    def write_samples(self, entries: Iterable[Sample]) -> int:
        """Agrega muestras al raw log. Un fallo de escritura se registra y la muestra se pierde."""
        entries = list(entries)
        if not entries:
            return 0
        try:
            return self.raw_log.append(entries)
        except TimeSeriesWriteError as e:
            logger.error("RAW_WRITE_DROPPED domain=%s samples=%d err=%s", self.name, len(entries), e)
            return 0

    # ------------------------------------------------------------------
    # Rollup
    # ------------------------------------------------------------------

    def run_rollups(self, now: Optional[float] = None) -> Dict[str, TierResult]:
        now = self.clock() if now is None else now
        results = self.engine.process_all(now=now)
        self.prune_raw(now=now)
        return results

    def prune_raw(self, now: Optional[float] = None) -> Optional[PruneResult]:
        try:
            return self.engine.prune_raw(self.raw_retention_seconds, now=now)
        except TimeSeriesWriteError as e:
            logger.error("RAW_PRUNE_FAILED domain=%s err=%s", self.name, e)
            return None

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def get_raw_metrics(self, hours_back: float = 24, host: Optional[str] = None) -> List[Sample]:
        since = self.clock() - hours_back * 3600
        return self.raw_log.read_since(since, predicate=host_predicate(host))

    def get_metrics(self, hours_back: float = 24, host: Optional[str] = None) -> Dict[str, Any]:
        """Serie agregada con selección automática de tier.

        Si el log del tier preferido no existe todavía se cae al tier más
        fino disponible.
        """
        now = self.clock()
        best = self.engine.get_best_tier(hours_back)
        candidates = list(self.engine.tiers[: self.engine.tiers.index(best) + 1])

        selected = best
        for tier in reversed(candidates):
            if self.engine.tier_log(tier.name).exists():
                selected = tier
                break

        result = self.engine.read_tier(
            selected.name,
            start=now - hours_back * 3600,
            end=now,
            predicate=host_predicate(host),
        )
        result['tier_info'] = {
            'tier': selected.name,
            'interval': selected.interval_seconds,
            'label': selected.label,
        }
        return result

    def get_rollup_tiers_info(self) -> Dict[str, Dict[str, Any]]:
        return self.engine.get_tiers_info()
