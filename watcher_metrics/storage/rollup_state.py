"""Persistencia del cursor de rollup por tier (``rollup-state.json``).

Formato::

    {"1min": {"last_processed": 1700000039, "last_bucket_end": 1700000040,
              "last_rollup": 1700000100}, ...}

Un archivo ausente o corrupto equivale a estado fresco (cursor 0).
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict

import orjson

logger = logging.getLogger(__name__)


@dataclass
class TierCursor:
    """Cursor persistido de un tier."""
    last_processed: float = 0
    last_bucket_end: float = 0
    last_rollup: float = 0


class RollupStateStore:
    """Lee/escribe el estado de rollup de un dominio."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> Dict[str, TierCursor]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("ROLLUP_STATE_UNREADABLE path=%s err=%s", self.path, e)
            return {}

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("ROLLUP_STATE_CORRUPT path=%s, starting fresh", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("ROLLUP_STATE_CORRUPT path=%s, starting fresh", self.path)
            return {}

        state: Dict[str, TierCursor] = {}
        for tier_name, values in data.items():
            if not isinstance(values, dict):
                continue
            state[tier_name] = TierCursor(
                last_processed=values.get("last_processed", 0) or 0,
                last_bucket_end=values.get("last_bucket_end", 0) or 0,
                last_rollup=values.get("last_rollup", 0) or 0,
            )
        return state

    def get(self, tier_name: str) -> TierCursor:
        return self.load().get(tier_name, TierCursor())

    def save_tier(self, tier_name: str, cursor: TierCursor) -> None:
        """Persiste el cursor de un tier sin tocar los demás (escritura atómica)."""
        state = self.load()
        state[tier_name] = cursor
        payload = orjson.dumps(
            {name: asdict(c) for name, c in state.items()}, option=orjson.OPT_INDENT_2
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=self.path.name + ".")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(payload)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
