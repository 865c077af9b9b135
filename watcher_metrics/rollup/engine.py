"""Motor genérico de rollup multi-tier.

Por tier y por invocación:
1. Carga el cursor (0 si no existe).
2. Lee muestras de la fuente con timestamp > cursor.
3. Agrupa en buckets alineados al intervalo.
4. Para cada bucket completamente transcurrido y no volcado todavía, llama
   a la función de agregación del dominio (None, un registro o una lista).
5. Escribe los registros con upsert por (timestamp, host key).
6. Avanza y persiste el cursor solo después de escribir.
7. Poda el log del tier según su retención.

La poda del raw es independiente de los cursores (``prune_raw``).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..monitoring.metrics import ROLLUP_RECORDS_WRITTEN, ROLLUP_TIER_FAILURES
from ..storage.rollup_state import RollupStateStore, TierCursor
from ..storage.timeseries_log import PruneResult, Sample, TimeSeriesLog
from .aggregation import bucket_start, group_by
from .tiers import (
    DEFAULT_TIERS,
    RollupTier,
    format_duration,
    format_interval,
    get_best_tier,
    validate_tiers,
)

logger = logging.getLogger(__name__)

AggregateResult = Union[None, Sample, List[Sample]]
AggregateFn = Callable[[List[Sample], int, int], AggregateResult]


@dataclass
class TierResult:
    """Resultado de procesar un tier."""
    tier: str
    buckets: int = 0
    records: int = 0
    cursor: float = 0
    error: Optional[str] = None


class RollupEngine:
    """Agregador multi-tier de un dominio de métricas.

    Cada dominio tiene su propio directorio con ``raw.log``, un log por tier
    y ``rollup-state.json``; los dominios nunca comparten archivos.

    Args:
        domain: Nombre del dominio (para logs y métricas)
        data_dir: Directorio del dominio
        aggregate_fn: ``(samples, bucket_start, interval) -> None | record | [records]``
        tiers: Tiers ordenados de más fino a más grueso
        cascade: Si True, los tiers superiores agregan desde el tier anterior
        source_predicate: Filtro opcional aplicado a las muestras fuente
        clock: Fuente de tiempo (epoch seconds)
    """

    def __init__(
        self,
        domain: str,
        data_dir,
        aggregate_fn: AggregateFn,
        tiers: Sequence[RollupTier] = DEFAULT_TIERS,
        cascade: bool = False,
        source_predicate: Optional[Callable[[Sample], bool]] = None,
        clock: Callable[[], float] = time.time,
    ):
        validate_tiers(tiers)
        self.domain = domain
        self.data_dir = Path(data_dir)
        self.aggregate_fn = aggregate_fn
        self.tiers = tuple(tiers)
        self.cascade = cascade
        self.source_predicate = source_predicate
        self.clock = clock

        self.raw_log = TimeSeriesLog(self.data_dir / "raw.log")
        self.state_store = RollupStateStore(self.data_dir / "rollup-state.json")
        self._tier_logs: Dict[str, TimeSeriesLog] = {
            t.name: TimeSeriesLog(self.data_dir / t.filename, compressed=t.compressed)
            for t in self.tiers
        }

    # ------------------------------------------------------------------
    # Acceso a tiers
    # ------------------------------------------------------------------

    def get_tier(self, name: str) -> RollupTier:
        for tier in self.tiers:
            if tier.name == name:
                return tier
        raise KeyError(f"unknown tier {name!r} for domain {self.domain}")

    def tier_log(self, name: str) -> TimeSeriesLog:
        return self._tier_logs[name]

    def source_log(self, tier: RollupTier) -> TimeSeriesLog:
        index = self.tiers.index(tier)
        if self.cascade and index > 0:
            return self._tier_logs[self.tiers[index - 1].name]
        return self.raw_log

    def get_best_tier(self, hours_back: float) -> RollupTier:
        return get_best_tier(self.tiers, hours_back)

    # ------------------------------------------------------------------
    # Procesamiento
    # ------------------------------------------------------------------

    def process_tier(self, tier: RollupTier, now: Optional[float] = None) -> TierResult:
        """Procesa un tier. Las excepciones se propagan al llamador."""
        now = self.clock() if now is None else now
        interval = tier.interval_seconds
        cursor = self.state_store.get(tier.name)

        samples = self.source_log(tier).read_since(
            cursor.last_processed, predicate=self.source_predicate, sort=True
        )
        if not samples:
            return TierResult(tier=tier.name, cursor=cursor.last_processed)

        buckets = group_by(samples, lambda s: bucket_start(s["timestamp"], interval))

        records: List[Sample] = []
        flushed = 0
        last_bucket_end = cursor.last_bucket_end
        for start in sorted(buckets):
            end = start + interval
            if end <= cursor.last_bucket_end:
                continue
            if end > now:
                # Bucket todavía llenándose; los siguientes también
                break
            produced = self.aggregate_fn(buckets[start], start, interval)
            for record in _as_records(produced):
                record.setdefault("timestamp", start)
                record.setdefault("period_start", start)
                record.setdefault("period_end", end)
                records.append(record)
            last_bucket_end = end
            flushed += 1

        if flushed == 0:
            return TierResult(tier=tier.name, cursor=cursor.last_processed)

        if records:
            self._tier_logs[tier.name].upsert(records)
            ROLLUP_RECORDS_WRITTEN.labels(domain=self.domain, tier=tier.name).inc(len(records))

        new_cursor = TierCursor(
            last_processed=max(cursor.last_processed, last_bucket_end - 1),
            last_bucket_end=last_bucket_end,
            last_rollup=now,
        )
        self.state_store.save_tier(tier.name, new_cursor)

        self._tier_logs[tier.name].prune(tier.retention_seconds, now=now)

        logger.info(
            "ROLLUP_TIER_DONE domain=%s tier=%s buckets=%d records=%d cursor=%s",
            self.domain, tier.name, flushed, len(records), new_cursor.last_processed,
        )
        return TierResult(
            tier=tier.name, buckets=flushed, records=len(records), cursor=new_cursor.last_processed
        )

    def process_all(self, now: Optional[float] = None) -> Dict[str, TierResult]:
        """Procesa todos los tiers; un fallo en uno no detiene a los demás."""
        now = self.clock() if now is None else now
        results: Dict[str, TierResult] = {}
        for tier in self.tiers:
            try:
                results[tier.name] = self.process_tier(tier, now=now)
            except Exception as e:
                ROLLUP_TIER_FAILURES.labels(domain=self.domain, tier=tier.name).inc()
                logger.exception("ROLLUP_TIER_FAILED domain=%s tier=%s", self.domain, tier.name)
                results[tier.name] = TierResult(tier=tier.name, error=str(e))
        return results

    def prune_raw(self, retention_seconds: float, now: Optional[float] = None) -> PruneResult:
        """Poda el raw log a su propia ventana de retención.

        Raises:
            ValueError: si la retención es menor que el intervalo del tier más grueso
                (se perderían muestras antes de agregarlas).
        """
        coarsest = self.tiers[-1].interval_seconds
        if retention_seconds < coarsest:
            raise ValueError(
                f"raw retention {retention_seconds}s is shorter than coarsest tier interval {coarsest}s"
            )
        return self.raw_log.prune(retention_seconds, now=self.clock() if now is None else now)

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def read_tier(
        self,
        tier_name: str,
        start: Optional[float] = None,
        end: Optional[float] = None,
        predicate: Optional[Callable[[Sample], bool]] = None,
    ) -> Dict[str, Any]:
        """Lee registros de un tier en ``[start, end]``.

        Returns:
            ``{success, count, data, tier, period}``; ``success=False`` si el
            archivo del tier no existe.
        """
        tier = self.get_tier(tier_name)
        log = self._tier_logs[tier_name]
        if not log.exists():
            return {'success': False, 'error': 'Rollup file not found', 'data': []}

        end = self.clock() if end is None else end
        start = end - tier.retention_seconds if start is None else start

        data = log.read_range(start, end, predicate=predicate)
        return {
            'success': True,
            'count': len(data),
            'data': data,
            'tier': tier_name,
            'period': {'start': start, 'end': end},
        }

    def get_tiers_info(self) -> Dict[str, Dict[str, Any]]:
        info = {}
        for tier in self.tiers:
            log = self._tier_logs[tier.name]
            info[tier.name] = {
                'interval': tier.interval_seconds,
                'interval_label': format_interval(tier.interval_seconds),
                'retention': tier.retention_seconds,
                'retention_label': format_duration(tier.retention_seconds),
                'label': tier.label,
                'file_exists': log.exists(),
                'file_size': log.size(),
                'compressed': tier.compressed,
            }
        return info


def _as_records(produced: AggregateResult) -> List[Sample]:
    if produced is None:
        return []
    if isinstance(produced, dict):
        return [produced]
    return [r for r in produced if r]
