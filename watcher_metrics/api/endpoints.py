"""Endpoints HTTP de consulta (JSON)."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request

from ..domains.base import UnknownDomainError
from ..service import WatcherService

router = APIRouter(tags=["watcher"])


def get_service(request: Request) -> WatcherService:
    return request.app.state.watcher


@router.get("/health")
def health():
    """Liveness probe: ok mientras el proceso esté vivo."""
    return {"status": "ok"}


@router.get("/metrics/{domain}")
def metrics(
    domain: str,
    hours: float = Query(24, gt=0, le=24 * 90),
    host: Optional[str] = None,
    service: WatcherService = Depends(get_service),
):
    try:
        return service.get_metrics(domain, hours, host)
    except UnknownDomainError:
        raise HTTPException(status_code=404, detail=f"unknown domain {domain}")


@router.get("/tiers/{domain}")
def tiers(domain: str, service: WatcherService = Depends(get_service)):
    try:
        return service.get_rollup_tiers_info(domain)
    except UnknownDomainError:
        raise HTTPException(status_code=404, detail=f"unknown domain {domain}")


@router.get("/quality")
def quality(service: WatcherService = Depends(get_service)):
    return service.get_current_quality()


@router.get("/quality/history")
def quality_history(
    hours: float = Query(6, gt=0, le=24 * 90),
    host: Optional[str] = None,
    service: WatcherService = Depends(get_service),
):
    return service.network_quality.get_history(hours, host)


@router.get("/comparison")
async def comparison(service: WatcherService = Depends(get_service)):
    return await service.get_comparison()


@router.get("/comparison/{address}")
async def comparison_for_host(address: str, service: WatcherService = Depends(get_service)):
    return await service.get_comparison_for_host(address)


@router.get("/clock-drift")
async def clock_drift(service: WatcherService = Depends(get_service)):
    return await service.measure_clock_drift()


@router.get("/clock-drift/{address}")
async def clock_drift_for_host(
    address: str,
    hostname: Optional[str] = None,
    service: WatcherService = Depends(get_service),
):
    return await service.measure_single_host(address, hostname)


@router.get("/voltage")
def voltage(service: WatcherService = Depends(get_service)):
    return service.get_voltage_status()


@router.get("/efuse/{port}")
def efuse_port(
    port: str,
    hours: float = Query(24, gt=0, le=24 * 90),
    service: WatcherService = Depends(get_service),
):
    return service.efuse.get_port_history(port, hours)


def create_app(service: WatcherService) -> FastAPI:
    app = FastAPI(title="FPP Watcher Metrics", version="0.1.0")
    app.state.watcher = service
    app.include_router(router)
    return app
