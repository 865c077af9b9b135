from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env junto al repo; las variables reales del entorno siempre ganan.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    data_dir: str
    fpp_base_url: str
    ping_target: str

    # Timeouts de sondeo (segundos)
    timeout_liveness: float
    timeout_status: float
    timeout_data: float

    failure_threshold: int
    raw_retention_hours: int
    efuse_retention_days: int
    poll_interval_seconds: float

    # Interfaz para los pings ICMP; vacío = la que elija la tabla de rutas
    network_interface: str = ""
    voltage_retention_days: int = 1


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("WATCHER_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    data_dir = os.getenv("WATCHER_DATA_DIR", "/home/fpp/media/logs/watcher-data")
    fpp_base_url = os.getenv("WATCHER_FPP_BASE_URL", "http://127.0.0.1").rstrip("/")
    # Vacío = sin ping ICMP local
    ping_target = os.getenv("WATCHER_PING_TARGET", "")

    timeout_liveness = float(os.getenv("WATCHER_TIMEOUT_LIVENESS", "2"))
    timeout_status = float(os.getenv("WATCHER_TIMEOUT_STATUS", "3"))
    timeout_data = float(os.getenv("WATCHER_TIMEOUT_DATA", "5"))

    failure_threshold = int(os.getenv("WATCHER_FAILURE_THRESHOLD", "3"))
    # 25h: una hora de margen sobre la ventana de 24h que leen los dashboards.
    raw_retention_hours = int(os.getenv("WATCHER_RAW_RETENTION_HOURS", "25"))
    efuse_retention_days = int(os.getenv("WATCHER_EFUSE_RETENTION_DAYS", "7"))
    poll_interval_seconds = float(os.getenv("WATCHER_POLL_INTERVAL_SECONDS", "60"))
    network_interface = os.getenv("WATCHER_NETWORK_INTERFACE", "").strip()
    voltage_retention_days = int(os.getenv("WATCHER_VOLTAGE_RETENTION_DAYS", "1"))

    return Settings(
        data_dir=data_dir,
        fpp_base_url=fpp_base_url,
        ping_target=ping_target,
        timeout_liveness=timeout_liveness,
        timeout_status=timeout_status,
        timeout_data=timeout_data,
        failure_threshold=failure_threshold,
        raw_retention_hours=raw_retention_hours,
        efuse_retention_days=efuse_retention_days,
        poll_interval_seconds=poll_interval_seconds,
        network_interface=network_interface,
        voltage_retention_days=voltage_retention_days,
    )
