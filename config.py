"""Environment-driven configuration for the session gateway."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_MAX_SESSIONS = 50
DEFAULT_IDLE_TIMEOUT_MS = 300_000
DEFAULT_PORT = 3000
DEFAULT_AUTH_DATA_PATH = "./.wwebjs_auth"
DEFAULT_BRIDGE_URL = "http://127.0.0.1:3100"
ADAPTER_KINDS = ("bridge", "loopback")


def _coerce_int(value: str | None, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(str(value).strip() or default)
    except ValueError:
        return default


def _parse_duration(raw: str | None, *, default: float) -> float:
    """Parse ``30``, ``30s`` or ``500ms`` into seconds."""

    if not raw:
        return default
    cleaned = raw.strip().lower()
    if not cleaned:
        return default
    scale = 1.0
    if cleaned.endswith("ms"):
        cleaned = cleaned[:-2]
        scale = 0.001
    elif cleaned.endswith("s"):
        cleaned = cleaned[:-1]
    try:
        value = float(cleaned) * scale
    except ValueError:
        return default
    if value <= 0:
        return default
    return value


def _normalize_url(raw: str | None, default: str) -> str:
    if not raw:
        return default
    cleaned = raw.strip()
    if not cleaned:
        return default
    return cleaned.rstrip("/") or default


@dataclass(frozen=True, slots=True)
class GatewayConfig:
    max_sessions: int
    idle_timeout: float
    idle_sweep_interval: float
    host: str
    port: int
    auth_data_path: Path
    adapter: str
    bridge_url: str
    bridge_token: str | None
    signoff_timeout: float
    send_timeout: float
    shutdown_timeout: float
    resume_backoff_base: float
    resume_backoff_max: float
    log_level: str

    @property
    def idle_timeout_ms(self) -> int:
        return int(self.idle_timeout * 1000)


def gateway_config() -> GatewayConfig:
    max_sessions = _coerce_int(os.getenv("MAX_SESSIONS"), DEFAULT_MAX_SESSIONS)
    if max_sessions < 1:
        max_sessions = DEFAULT_MAX_SESSIONS

    idle_timeout_ms = _coerce_int(
        os.getenv("SESSION_IDLE_TIMEOUT_MS"), DEFAULT_IDLE_TIMEOUT_MS
    )
    if idle_timeout_ms <= 0:
        idle_timeout_ms = DEFAULT_IDLE_TIMEOUT_MS

    port = _coerce_int(os.getenv("PORT"), DEFAULT_PORT)
    if not 0 < port < 65536:
        port = DEFAULT_PORT

    adapter = (os.getenv("GATEWAY_ADAPTER") or "bridge").strip().lower()
    if adapter not in ADAPTER_KINDS:
        adapter = "bridge"

    return GatewayConfig(
        max_sessions=max_sessions,
        idle_timeout=idle_timeout_ms / 1000.0,
        idle_sweep_interval=_parse_duration(
            os.getenv("IDLE_SWEEP_INTERVAL"), default=60.0
        ),
        host=(os.getenv("HOST") or "0.0.0.0").strip() or "0.0.0.0",
        port=port,
        auth_data_path=Path(
            (os.getenv("AUTH_DATA_PATH") or DEFAULT_AUTH_DATA_PATH).strip()
            or DEFAULT_AUTH_DATA_PATH
        ),
        adapter=adapter,
        bridge_url=_normalize_url(os.getenv("BRIDGE_URL"), DEFAULT_BRIDGE_URL),
        bridge_token=(os.getenv("BRIDGE_TOKEN") or "").strip() or None,
        signoff_timeout=_parse_duration(os.getenv("SIGNOFF_TIMEOUT"), default=10.0),
        send_timeout=_parse_duration(os.getenv("SEND_TIMEOUT"), default=30.0),
        shutdown_timeout=_parse_duration(os.getenv("SHUTDOWN_TIMEOUT"), default=30.0),
        resume_backoff_base=_parse_duration(
            os.getenv("RESUME_BACKOFF_BASE"), default=5.0
        ),
        resume_backoff_max=_parse_duration(
            os.getenv("RESUME_BACKOFF_MAX"), default=300.0
        ),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
    )


__all__ = [
    "ADAPTER_KINDS",
    "DEFAULT_MAX_SESSIONS",
    "DEFAULT_IDLE_TIMEOUT_MS",
    "GatewayConfig",
    "gateway_config",
]
