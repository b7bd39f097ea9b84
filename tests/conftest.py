from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:  # pragma: no cover - path setup
    sys.path.insert(0, str(ROOT_DIR))

from wagateway.api import create_app
from wagateway.manager import SessionLifecycleManager


class GatewayHarness:
    def __init__(self, client: TestClient) -> None:
        self.client = client

    @property
    def manager(self) -> SessionLifecycleManager:
        return self.client.app.state.session_manager

    def adapter(self, tenant_id: str):
        entry = self.manager.registry.get(tenant_id)
        assert entry is not None and entry.adapter is not None, tenant_id
        return entry.adapter

    def status(self, tenant_id: str) -> str:
        response = self.client.get(f"/session/{tenant_id}/status")
        assert response.status_code == 200
        return response.json()["status"]

    def wait_status(self, tenant_id: str, expected: str, timeout: float = 5.0) -> None:
        deadline = time.monotonic() + timeout
        current = self.status(tenant_id)
        while current != expected:
            if time.monotonic() > deadline:
                raise AssertionError(f"{tenant_id} stuck in {current}, expected {expected}")
            time.sleep(0.02)
            current = self.status(tenant_id)

    def make_ready(self, tenant_id: str) -> Any:
        response = self.client.get(f"/session/{tenant_id}/qr")
        assert response.status_code in (200, 202)
        self.wait_status(tenant_id, "qr")
        adapter = self.adapter(tenant_id)
        adapter.pair()
        self.wait_status(tenant_id, "ready")
        return adapter


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def gateway(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("GATEWAY_ADAPTER", "loopback")
    monkeypatch.setenv("AUTH_DATA_PATH", str(tmp_path / "auth"))
    monkeypatch.setenv("MAX_SESSIONS", "5")
    monkeypatch.setenv("IDLE_SWEEP_INTERVAL", "3600")
    monkeypatch.setenv("SIGNOFF_TIMEOUT", "1")
    monkeypatch.setenv("SEND_TIMEOUT", "1")
    monkeypatch.setenv("SHUTDOWN_TIMEOUT", "5")
    clients: list[TestClient] = []

    def _start(*, raise_server_exceptions: bool = True, **env: Any) -> GatewayHarness:
        for key, value in env.items():
            monkeypatch.setenv(key, str(value))
        client = TestClient(create_app(), raise_server_exceptions=raise_server_exceptions)
        client.__enter__()
        clients.append(client)
        return GatewayHarness(client)

    yield _start

    for client in reversed(clients):
        client.__exit__(None, None, None)
