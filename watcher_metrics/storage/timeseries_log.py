"""Log de series temporales append-only (una línea JSON por muestra).

Concurrencia mediante ``fcntl.flock``:
- Escritores: lock exclusivo, escriben líneas completas, flush, liberan.
- Lectores: lock compartido, nunca se bloquean entre sí.

Las reescrituras (``prune`` / ``upsert``) escriben un archivo temporal y lo
intercambian con ``os.replace`` manteniendo el lock del inodo viejo. Un
escritor que estaba esperando ese lock detecta el cambio de inodo y reabre.

Los tiers comprimidos usan gzip multi-miembro: cada append agrega un
miembro nuevo y al leer se descomprimen uno por uno. Un miembro truncado
por un append interrumpido se descarta y la siguiente escritura lo limpia.
"""

from __future__ import annotations

import fcntl
import gzip
import logging
import os
import re
import tempfile
import time
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import orjson

from ..monitoring.metrics import TIMESERIES_SKIPPED_LINES, TIMESERIES_WRITE_FAILURES

logger = logging.getLogger(__name__)

Sample = Dict[str, Any]
Predicate = Callable[[Sample], bool]

# Pre-filtro barato: evita decodificar JSON de líneas fuera de ventana.
_TIMESTAMP_PATTERN = re.compile(rb'"timestamp"\s*:\s*(\d+)')

HOST_KEY_FIELDS = ("hostname", "host")


class TimeSeriesWriteError(Exception):
    """No se pudo abrir/bloquear/escribir el log. La escritura se descarta."""


@dataclass(frozen=True)
class PruneResult:
    purged: int
    kept: int


def record_key(entry: Sample) -> Tuple[Any, Optional[str]]:
    """Clave de idempotencia de un registro: (timestamp, host key)."""
    host = None
    for field_name in HOST_KEY_FIELDS:
        if entry.get(field_name) is not None:
            host = str(entry[field_name])
            break
    return entry.get("timestamp"), host


class TimeSeriesLog:
    """Log persistente de muestras con timestamp para un dominio/tier."""

    MAX_LOCK_ATTEMPTS = 5

    def __init__(self, path, compressed: bool = False):
        self.path = Path(path)
        self.compressed = compressed
        self.last_skipped = 0

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    def append(self, entries: Iterable[Sample]) -> int:
        """Agrega una línea por muestra bajo lock exclusivo.

        Returns:
            Número de líneas escritas.

        Raises:
            TimeSeriesWriteError: si el archivo no se puede abrir o bloquear.
        """
        payload = self._encode(entries)
        if not payload:
            return 0

        try:
            with self._open_exclusive() as fh:
                try:
                    damaged = False
                    if self.compressed:
                        existing, damaged = self._read_locked(fh)
                    if damaged:
                        # Un miembro nuevo detrás de uno truncado sería ilegible
                        self._replace_contents(b"".join(line + b"\n" for line in existing) + payload)
                    else:
                        self._write_payload(fh, payload)
                finally:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            TIMESERIES_WRITE_FAILURES.labels(log=self.path.name).inc()
            raise TimeSeriesWriteError(f"cannot append to {self.path}: {e}") from e

        return payload.count(b"\n")

    def upsert(self, entries: Iterable[Sample], key: Callable[[Sample], Any] = record_key) -> int:
        """Escritura idempotente: reemplaza registros existentes con la misma clave.

        Si ninguna clave existe todavía se comporta como ``append``; si hay
        coincidencias reescribe el archivo completo de forma atómica.
        """
        new_entries = list(entries)
        if not new_entries:
            return 0

        new_keys = {key(e) for e in new_entries}
        payload = self._encode(new_entries)

        try:
            with self._open_exclusive() as fh:
                try:
                    existing, damaged = self._read_locked(fh)
                    kept: List[bytes] = []
                    replaced = 0
                    for line in existing:
                        entry = self._decode(line)
                        if entry is not None and key(entry) in new_keys:
                            replaced += 1
                            continue
                        kept.append(line + b"\n")

                    if replaced == 0 and not damaged:
                        self._write_payload(fh, payload)
                    else:
                        logger.info(
                            "TIMESERIES_UPSERT_REPLACED log=%s replaced=%d", self.path, replaced
                        )
                        self._replace_contents(b"".join(kept) + payload)
                finally:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            TIMESERIES_WRITE_FAILURES.labels(log=self.path.name).inc()
            raise TimeSeriesWriteError(f"cannot upsert into {self.path}: {e}") from e

        return len(new_entries)

    def prune(self, retention_seconds: float, now: Optional[float] = None) -> PruneResult:
        """Elimina registros con timestamp < now - retention.

        Solo reescribe el archivo si algo se purgó. Las líneas corruptas se
        eliminan junto con los registros viejos.
        """
        if not self.path.exists():
            return PruneResult(purged=0, kept=0)

        cutoff = (time.time() if now is None else now) - retention_seconds

        try:
            with self._open_exclusive() as fh:
                try:
                    lines, damaged = self._read_locked(fh)
                    kept: List[bytes] = []
                    for line in lines:
                        ts = self._line_timestamp(line)
                        if ts is not None and ts >= cutoff:
                            kept.append(line + b"\n")

                    purged = len(lines) - len(kept)
                    if purged > 0 or damaged:
                        self._replace_contents(b"".join(kept))
                        logger.info(
                            "TIMESERIES_PRUNED log=%s purged=%d kept=%d", self.path, purged, len(kept)
                        )
                finally:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            TIMESERIES_WRITE_FAILURES.labels(log=self.path.name).inc()
            raise TimeSeriesWriteError(f"cannot prune {self.path}: {e}") from e

        return PruneResult(purged=purged, kept=len(kept))

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------

    def read_since(
        self,
        cutoff: float,
        predicate: Optional[Predicate] = None,
        sort: bool = True,
    ) -> List[Sample]:
        """Retorna muestras con ``timestamp > cutoff`` que pasan el predicado."""
        return self._read_filtered(
            lower=cutoff, lower_inclusive=False, upper=None, predicate=predicate, sort=sort
        )

    def read_range(
        self,
        start: float,
        end: float,
        predicate: Optional[Predicate] = None,
        sort: bool = True,
    ) -> List[Sample]:
        """Retorna muestras con ``start <= timestamp <= end``."""
        return self._read_filtered(
            lower=start, lower_inclusive=True, upper=end, predicate=predicate, sort=sort
        )

    def read_all(self, sort: bool = True) -> List[Sample]:
        return self._read_filtered(
            lower=None, lower_inclusive=True, upper=None, predicate=None, sort=sort
        )

    def exists(self) -> bool:
        return self.path.exists()

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def _read_filtered(
        self,
        lower: Optional[float],
        lower_inclusive: bool,
        upper: Optional[float],
        predicate: Optional[Predicate],
        sort: bool,
    ) -> List[Sample]:
        try:
            fh = open(self.path, "rb")
        except FileNotFoundError:
            self.last_skipped = 0
            return []

        with fh:
            fcntl.flock(fh.fileno(), fcntl.LOCK_SH)
            try:
                lines, damaged = self._read_locked(fh)
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

        results: List[Sample] = []
        skipped = 1 if damaged else 0
        for line in lines:
            match = _TIMESTAMP_PATTERN.search(line)
            if match is not None:
                ts_floor = int(match.group(1))
                # El valor real está en [ts_floor, ts_floor + 1)
                if lower is not None and ts_floor + 1 <= lower:
                    continue
                if upper is not None and ts_floor > upper:
                    continue

            entry = self._decode(line)
            if entry is None:
                skipped += 1
                continue

            ts = entry["timestamp"]
            if lower is not None:
                if lower_inclusive and ts < lower:
                    continue
                if not lower_inclusive and ts <= lower:
                    continue
            if upper is not None and ts > upper:
                continue
            if predicate is not None and not predicate(entry):
                continue
            results.append(entry)

        self.last_skipped = skipped
        if skipped:
            TIMESERIES_SKIPPED_LINES.labels(log=self.path.name).inc(skipped)
            logger.debug("TIMESERIES_SKIPPED log=%s lines=%d", self.path, skipped)

        if sort:
            results.sort(key=lambda e: e["timestamp"])
        return results

    # ------------------------------------------------------------------
    # Helpers internos
    # ------------------------------------------------------------------

    def _open_exclusive(self):
        """Abre el log con lock exclusivo sobre el inodo vigente del path."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(1, self.MAX_LOCK_ATTEMPTS + 1):
            fh = open(self.path, "a+b")
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            if self._is_current(fh):
                return fh
            # Otro proceso reemplazó el archivo mientras esperábamos el lock
            logger.debug("TIMESERIES_INODE_CHANGED log=%s attempt=%d", self.path, attempt)
            fh.close()
        raise OSError(f"log file kept changing under lock: {self.path}")

    def _is_current(self, fh) -> bool:
        try:
            return os.fstat(fh.fileno()).st_ino == os.stat(self.path).st_ino
        except FileNotFoundError:
            return False

    def _read_locked(self, fh) -> Tuple[List[bytes], bool]:
        """Líneas del archivo ya bloqueado y si había una cola gzip dañada."""
        fh.seek(0)
        raw = fh.read()
        damaged = False
        if self.compressed and raw:
            raw, damaged = self._decompress_members(raw)
        return [line for line in raw.splitlines() if line.strip()], damaged

    def _decompress_members(self, raw: bytes) -> Tuple[bytes, bool]:
        """Descomprime miembro por miembro; conserva solo los miembros completos.

        Un append interrumpido deja el último miembro truncado. Lo que sigue
        al primer miembro dañado se descarta y se cuenta como una línea omitida.
        """
        chunks: List[bytes] = []
        data = raw
        while data:
            decompressor = zlib.decompressobj(wbits=31)
            try:
                chunk = decompressor.decompress(data)
            except zlib.error as e:
                logger.warning("TIMESERIES_GZIP_CORRUPT log=%s err=%s", self.path, e)
                return b"".join(chunks), True
            if not decompressor.eof:
                logger.warning(
                    "TIMESERIES_GZIP_TRUNCATED log=%s dropped_bytes=%d", self.path, len(data)
                )
                return b"".join(chunks), True
            chunks.append(chunk)
            data = decompressor.unused_data
        return b"".join(chunks), False

    def _write_payload(self, fh, payload: bytes) -> None:
        data = gzip.compress(payload) if self.compressed else payload
        fh.write(data)
        fh.flush()

    def _replace_contents(self, payload: bytes) -> None:
        data = gzip.compress(payload) if (self.compressed and payload) else payload
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=self.path.name + ".")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    @staticmethod
    def _encode(entries: Iterable[Sample]) -> bytes:
        return b"".join(orjson.dumps(e) + b"\n" for e in entries)

    @staticmethod
    def _decode(line: bytes) -> Optional[Sample]:
        # Tolera el prefijo legacy "[Y-m-d H:i:s] " antes del JSON
        start = line.find(b"{")
        if start < 0:
            return None
        try:
            entry = orjson.loads(line[start:])
        except orjson.JSONDecodeError:
            return None
        if not isinstance(entry, dict):
            return None
        ts = entry.get("timestamp")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            return None
        return entry

    def _line_timestamp(self, line: bytes) -> Optional[float]:
        match = _TIMESTAMP_PATTERN.search(line)
        if match is not None:
            entry = self._decode(line)
            return entry["timestamp"] if entry is not None else None
        return None
