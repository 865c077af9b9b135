"""Comparación del player contra cada remoto del fleet.

Chequeos por remoto, en orden de prioridad:
1. offline           CRITICAL  terminal
2. no_plugin         INFO      terminal
3. missing_sequence  CRITICAL  terminal; el plugin sigue el sync pero FPP no reproduce
4. sequence_mismatch CRITICAL  player reproduciendo y secuencias distintas
5. sync_drift        WARNING/CRITICAL según drift promedio en frames
6. no_sync_packets   WARNING/CRITICAL, solo con el player reproduciendo
7. state_mismatch    WARNING   player y remoto no coinciden en reproducir/detenido

Los chequeos 4-7 se acumulan.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..monitoring.metrics import REMOTE_POLLS
from .fpp_api import FPP_STATUS_PATH, REMOTE_FULL_STATUS_PATH, FppApi, remote_url
from .http_client import FetchResult
from .models import (
    ComparisonIssue,
    HealthStatus,
    IssueType,
    PlayerState,
    RemoteComparison,
    RemoteState,
    RemoteSystem,
    Severity,
    ip_sort_key,
)
from .schemas import FppStatusPayload, FullStatusPayload, PluginStatusPayload
from .stability import StabilityFilter

logger = logging.getLogger(__name__)


class FleetComparator:
    """Sondea los remotos en paralelo y compara su estado con el player."""

    DRIFT_WARNING_THRESHOLD = 5        # frames
    DRIFT_CRITICAL_THRESHOLD = 10      # frames
    STALE_SYNC_WARNING_SECONDS = 30
    # Segundo umbral configurable; pendiente de confirmar con producto
    STALE_SYNC_CRITICAL_SECONDS = 120

    TIMEOUT_STANDARD = 5
    TIMEOUT_STATUS = 3

    def __init__(
        self,
        api: FppApi,
        stability: Optional[StabilityFilter] = None,
        timeout_standard: float = TIMEOUT_STANDARD,
        timeout_status: float = TIMEOUT_STATUS,
    ):
        self.api = api
        self.stability = stability
        self.timeout_standard = timeout_standard
        self.timeout_status = timeout_status

    # ------------------------------------------------------------------
    # Comparación (pura)
    # ------------------------------------------------------------------

    def compare(self, player: PlayerState, remote: RemoteState) -> List[ComparisonIssue]:
        host = remote.hostname or remote.address

        if not remote.online:
            return [ComparisonIssue(
                type=IssueType.OFFLINE,
                severity=Severity.CRITICAL,
                host=host,
                description="Remote is offline or unreachable",
            )]

        if not remote.plugin_installed:
            return [ComparisonIssue(
                type=IssueType.NO_PLUGIN,
                severity=Severity.INFO,
                host=host,
                description="Watcher plugin not installed on remote",
            )]

        issues: List[ComparisonIssue] = []
        metrics = remote.metrics or {}
        fpp_status = remote.fpp_status
        player_playing = player.is_playing
        player_seq = player.sequence

        if fpp_status is not None:
            remote_seq = fpp_status.get("sequence") or ""
            remote_playing = fpp_status.get("status") == "playing"
        else:
            remote_seq = metrics.get("currentMasterSequence") or ""
            remote_playing = bool(metrics.get("sequencePlaying"))

        # El plugin dice que sigue el sync pero FPP en el remoto no reproduce nada:
        # típicamente falta el archivo de secuencia en el remoto
        if player_playing and metrics.get("sequencePlaying") and fpp_status is not None and not remote_playing:
            sync_seq = metrics.get("currentMasterSequence") or ""
            return [ComparisonIssue(
                type=IssueType.MISSING_SEQUENCE,
                severity=Severity.CRITICAL,
                host=host,
                description=f"Missing sequence file: {sync_seq}",
                context={"expected": player_seq, "actual": remote_seq or "(not playing)"},
            )]

        if player_playing and player_seq and remote_seq and player_seq != remote_seq:
            issues.append(ComparisonIssue(
                type=IssueType.SEQUENCE_MISMATCH,
                severity=Severity.CRITICAL,
                host=host,
                description="Playing different sequence",
                context={"expected": player_seq, "actual": remote_seq},
            ))

        avg_drift = abs(metrics.get("avgFrameDrift") or 0)
        max_drift = abs(metrics.get("maxFrameDrift") or 0)
        avg_rounded = round(avg_drift, 1)
        if avg_drift > self.DRIFT_CRITICAL_THRESHOLD:
            issues.append(ComparisonIssue(
                type=IssueType.SYNC_DRIFT,
                severity=Severity.CRITICAL,
                host=host,
                description=f"High average frame drift: {avg_rounded} frames",
                context={"maxDrift": max_drift, "avgDrift": avg_rounded},
            ))
        elif avg_drift > self.DRIFT_WARNING_THRESHOLD:
            issues.append(ComparisonIssue(
                type=IssueType.SYNC_DRIFT,
                severity=Severity.WARNING,
                host=host,
                description=f"Average frame drift: {avg_rounded} frames",
                context={"maxDrift": max_drift, "avgDrift": avg_rounded},
            ))

        since_sync = metrics.get("secondsSinceLastSync")
        if since_sync is None:
            since_sync = -1
        if player_playing and since_sync > self.STALE_SYNC_WARNING_SECONDS:
            severity = (
                Severity.CRITICAL if since_sync > self.STALE_SYNC_CRITICAL_SECONDS else Severity.WARNING
            )
            issues.append(ComparisonIssue(
                type=IssueType.NO_SYNC_PACKETS,
                severity=severity,
                host=host,
                description=f"No sync packets received for {since_sync}s",
                context={"secondsSinceSync": since_sync},
            ))

        if player_playing != remote_playing:
            issues.append(ComparisonIssue(
                type=IssueType.STATE_MISMATCH,
                severity=Severity.WARNING,
                host=host,
                description="Remote not playing" if player_playing else "Remote playing but player idle",
                context={
                    "expected": "playing" if player_playing else "stopped",
                    "actual": "playing" if remote_playing else "stopped",
                },
            ))

        return issues

    # ------------------------------------------------------------------
    # Sondeo
    # ------------------------------------------------------------------

    async def get_player_state(self) -> PlayerState:
        status_result, plugin_result = await asyncio.gather(
            self.api.status(self.timeout_status),
            self.api.plugin_status(self.timeout_standard),
        )

        fpp = _parse_fpp_status(status_result)
        plugin_installed = False
        metrics: Dict[str, Any] = {}
        if plugin_result.ok and isinstance(plugin_result.data, dict) and "error" not in plugin_result.data:
            try:
                metrics = PluginStatusPayload.model_validate(plugin_result.data).to_metrics()
                plugin_installed = True
            except ValidationError:
                logger.warning("Estado del plugin local inválido")

        return PlayerState(
            hostname=(fpp.host_name if fpp and fpp.host_name else "Local"),
            mode=fpp.mode_name if fpp else "unknown",
            plugin_installed=plugin_installed,
            metrics=metrics,
            fpp_status=fpp.to_status() if fpp else {"status": "unknown", "sequence": ""},
        )

    async def collect_remote_states(self, remotes: Sequence[RemoteSystem]) -> Dict[str, RemoteState]:
        """Sondea todos los remotos y aplica el filtro de estabilidad."""
        states = await self._poll_states(remotes)
        if self.stability is not None:
            states = {address: self.stability.apply(address, state) for address, state in states.items()}
        return states

    async def _poll_states(self, remotes: Sequence[RemoteSystem]) -> Dict[str, RemoteState]:
        """Sondea el endpoint combinado de cada remoto en paralelo.

        Los remotos que responden 404 o no responden reciben un segundo
        sondeo paralelo al status plano de FPP (online sin plugin).
        """
        if not remotes:
            return {}

        hostnames = {r.address: r.hostname for r in remotes}
        primary = await self.api.client.get_many(
            {addr: remote_url(addr, REMOTE_FULL_STATUS_PATH) for addr in hostnames},
            self.timeout_standard,
        )

        needs_fallback = [
            addr for addr, res in primary.items()
            if res.status_code == 404 or not res.connected
        ]
        fallback: Dict[str, FetchResult] = {}
        if needs_fallback:
            fallback = await self.api.client.get_many(
                {addr: remote_url(addr, FPP_STATUS_PATH) for addr in needs_fallback},
                self.timeout_standard,
            )

        states: Dict[str, RemoteState] = {}
        for address, result in primary.items():
            state = _build_remote_state(address, hostnames[address], result, fallback.get(address))
            if state.plugin_installed:
                REMOTE_POLLS.labels(outcome="plugin").inc()
            elif state.online:
                REMOTE_POLLS.labels(outcome="no_plugin").inc()
            else:
                REMOTE_POLLS.labels(outcome="offline").inc()
            states[address] = state
        return states

    async def get_comparison_for_host(self, address: str, hostname: Optional[str] = None) -> Dict[str, Any]:
        """Compara un único remoto contra el player.

        Consulta directa: no pasa por el filtro de estabilidad ni altera su
        estado.
        """
        remote = RemoteSystem(hostname=hostname or address, address=address, mode="remote")
        player, states = await asyncio.gather(
            self.get_player_state(),
            self._poll_states([remote]),
        )
        state = states[address]
        issues = self.compare(player, state)

        return {
            'success': True,
            'timestamp': int(time.time()),
            'player': player.to_dict(),
            'remote': state.to_dict(),
            'issues': [i.to_dict() for i in issues],
            'issueCount': len(issues),
        }

    async def get_comparison(self, remotes: Sequence[RemoteSystem]) -> Dict[str, Any]:
        start = time.perf_counter()

        player, states = await asyncio.gather(
            self.get_player_state(),
            self.collect_remote_states(remotes),
        )

        comparisons = [
            RemoteComparison(state=state, issues=self.compare(player, state))
            for state in states.values()
        ]
        comparisons.sort(key=lambda c: ip_sort_key(c.state.address))

        all_issues = [issue for c in comparisons for issue in c.issues]
        max_severity = max((int(i.severity) for i in all_issues), default=0)
        if max_severity >= Severity.CRITICAL:
            health = HealthStatus.CRITICAL
        elif max_severity >= Severity.WARNING:
            health = HealthStatus.WARNING
        else:
            health = HealthStatus.HEALTHY

        elapsed_ms = round((time.perf_counter() - start) * 1000, 1)
        if health != HealthStatus.HEALTHY:
            logger.info(
                "FLEET_COMPARISON health=%s issues=%d remotes=%d elapsed_ms=%.1f",
                health.value, len(all_issues), len(comparisons), elapsed_ms,
            )

        return {
            'success': True,
            'timestamp': int(time.time()),
            'elapsed_ms': elapsed_ms,
            'player': player.to_dict(),
            'remotes': [c.to_dict() for c in comparisons],
            'issues': [i.to_dict() for i in all_issues],
            'summary': {
                'healthStatus': health.value,
                'totalRemotes': len(comparisons),
                'onlineCount': sum(1 for c in comparisons if c.state.online),
                'pluginInstalledCount': sum(1 for c in comparisons if c.state.plugin_installed),
                'issueCount': len(all_issues),
                'criticalCount': sum(1 for i in all_issues if i.severity == Severity.CRITICAL),
                'warningCount': sum(1 for i in all_issues if i.severity == Severity.WARNING),
                'infoCount': sum(1 for i in all_issues if i.severity == Severity.INFO),
            },
        }


def _parse_fpp_status(result: FetchResult) -> Optional[FppStatusPayload]:
    if not result.ok or not isinstance(result.data, dict):
        return None
    try:
        return FppStatusPayload.model_validate(result.data)
    except ValidationError:
        logger.debug("Status FPP inválido de %s", result.url)
        return None


def _build_remote_state(
    address: str,
    hostname: str,
    primary: FetchResult,
    fallback: Optional[FetchResult],
) -> RemoteState:
    state = RemoteState(address=address, hostname=hostname, response_time_ms=primary.elapsed_ms)

    if primary.ok:
        try:
            combined = FullStatusPayload.model_validate(primary.data)
        except ValidationError:
            combined = None
        if combined is None or not combined.success:
            state.error = (combined.error if combined else None) or "Invalid response"
            return state

        state.online = True
        state.plugin_installed = combined.watcher_loaded
        if combined.watcher and "error" not in combined.watcher:
            try:
                state.metrics = PluginStatusPayload.model_validate(combined.watcher).to_metrics()
            except ValidationError:
                logger.debug("Métricas inválidas del remoto %s", address)
        if combined.fpp is not None:
            state.fpp_status = combined.fpp
        return state

    if primary.status_code == 404:
        state.error = "Watcher plugin not installed"
    elif primary.connected:
        state.error = primary.error
        return state

    fpp = _parse_fpp_status(fallback) if fallback is not None else None
    if fpp is not None:
        state.online = True
        state.fpp_status = fpp.to_status()
        if state.response_time_ms is None:
            state.response_time_ms = fallback.elapsed_ms
    elif not primary.connected:
        state.error = "Connection failed"
    return state
