"""Fixtures compartidos: reloj controlable y fleet FPP simulado con httpx.MockTransport."""

from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import pytest

from watcher_metrics.fleet.http_client import FppHttpClient


# 1_699_999_200 es múltiplo de 60, 300 y 1800
BASE_TS = 1_699_999_200


class FakeClock:
    """Reloj manual para dominios y motor de rollup."""

    def __init__(self, now: float = BASE_TS):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Route = Callable[[httpx.Request], httpx.Response]


class FakeFleet:
    """Responde por (host, path). Un host sin rutas simula un remoto caído."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.down: set = set()
        self.requests = []

    def json(self, host: str, path: str, payload: Any, status_code: int = 200) -> None:
        self.routes[(host, path)] = (status_code, payload)

    def route(self, host: str, path: str, fn: Route) -> None:
        self.routes[(host, path)] = fn

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.down:
            raise httpx.ConnectError("connection refused", request=request)

        route = self.routes.get((host, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        status_code, payload = route
        return httpx.Response(status_code, json=payload)

    def client(self) -> FppHttpClient:
        return FppHttpClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fleet() -> FakeFleet:
    return FakeFleet()


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "watcher-data"
    path.mkdir()
    return path


def player_status(status: str = "playing", sequence: Optional[str] = "show.fseq") -> Dict[str, Any]:
    return {
        "mode_name": "player",
        "status_name": status,
        "current_sequence": sequence,
        "current_frame": 120,
        "seconds_played": 6,
        "seconds_remaining": 54,
        "host_name": "fpp-player",
    }


def plugin_metrics(**overrides) -> Dict[str, Any]:
    data = {
        "totalPacketsSent": 1000,
        "totalPacketsReceived": 990,
        "sequencePlaying": True,
        "currentMasterSequence": "show.fseq",
        "avgFrameDrift": 0.5,
        "maxFrameDrift": 1,
        "secondsSinceLastSync": 1,
    }
    data.update(overrides)
    return data
