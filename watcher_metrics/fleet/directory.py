"""Directorio del fleet a partir de ``/api/fppd/multiSyncSystems``.

Reglas:
- Se omiten las entradas locales
- Solo modos ``player`` y ``remote`` (bridge y otros se ignoran)
- Hostname obligatorio
- Deduplicado por hostname, prefiriendo la entrada con UUID
- Orden numérico por dirección IPv4
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError

from .fpp_api import FppApi
from .models import RemoteSystem, ip_sort_key
from .schemas import FleetPayload, FleetSystemPayload

logger = logging.getLogger(__name__)

FLEET_MODES = ("player", "remote")


def build_remote_systems(systems: Iterable[Dict[str, Any]]) -> List[RemoteSystem]:
    by_hostname: Dict[str, FleetSystemPayload] = {}

    for raw in systems:
        if not isinstance(raw, dict):
            continue
        try:
            system = FleetSystemPayload.model_validate(raw)
        except ValidationError:
            logger.debug("Entrada de fleet inválida omitida: %s", raw)
            continue

        if system.local:
            continue
        if system.fpp_mode_string not in FLEET_MODES:
            continue
        if not system.hostname:
            continue

        current = by_hostname.get(system.hostname)
        if current is None or (system.uuid and not current.uuid):
            by_hostname[system.hostname] = system

    remotes = [
        RemoteSystem(
            hostname=s.hostname,
            address=s.address,
            mode=s.fpp_mode_string,
            uuid=s.uuid,
        )
        for s in by_hostname.values()
    ]
    remotes.sort(key=lambda r: ip_sort_key(r.address))
    return remotes


async def fetch_remote_systems(api: FppApi) -> List[RemoteSystem]:
    """Consulta el directorio del host local. Vacío si no responde."""
    result = await api.fleet()
    if not result.ok or not isinstance(result.data, dict):
        logger.warning("FLEET_UNAVAILABLE error=%s", result.error)
        return []
    try:
        payload = FleetPayload.model_validate(result.data)
    except ValidationError:
        logger.warning("FLEET_INVALID_PAYLOAD")
        return []
    return build_remote_systems(payload.systems)
