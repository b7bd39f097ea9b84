from __future__ import annotations

import asyncio
import dataclasses
import sys
from pathlib import Path
from typing import Callable

import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:  # pragma: no cover - path setup
    sys.path.insert(0, str(ROOT_DIR))

from config import GatewayConfig
from wagateway.adapters.base import EventSink
from wagateway.adapters.loopback import PAIRED_MARKER, LoopbackAdapter
from wagateway.credentials import FileCredentialStore
from wagateway.manager import SessionLifecycleManager
from wagateway.registry import STATUS_DISCONNECTED, SessionRecord


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingCredentialStore(FileCredentialStore):
    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.deletions: list[str] = []

    def delete(self, tenant_id: str) -> bool:
        self.deletions.append(tenant_id)
        return super().delete(tenant_id)

    def seed(self, tenant_id: str) -> Path:
        path = self.path_for(tenant_id)
        path.mkdir(parents=True, exist_ok=True)
        (path / PAIRED_MARKER).write_text(tenant_id, encoding="utf-8")
        return path


def fake_qr_renderer(payload: str) -> str:
    return f"rendered:{payload}"


class Harness:
    """Lifecycle manager wired to loopback adapters, a fake clock and tmp storage."""

    def __init__(self, cfg: GatewayConfig, *, qr_renderer: Callable[[str], str]) -> None:
        self.cfg = cfg
        self.clock = FakeClock()
        self.credentials = CountingCredentialStore(cfg.auth_data_path)
        self.adapters: dict[str, list[LoopbackAdapter]] = {}
        self.manager = SessionLifecycleManager(
            cfg,
            self._build_adapter,
            self.credentials,
            clock=self.clock,
            qr_renderer=qr_renderer,
        )

    def _build_adapter(self, tenant_id: str, sink: EventSink) -> LoopbackAdapter:
        adapter = LoopbackAdapter(tenant_id, sink, self.credentials.path_for(tenant_id))
        self.adapters.setdefault(tenant_id, []).append(adapter)
        return adapter

    def adapter(self, tenant_id: str) -> LoopbackAdapter:
        return self.adapters[tenant_id][-1]

    async def wait_status(
        self, tenant_id: str, status: str, timeout: float = 3.0
    ) -> SessionRecord | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            record = self.manager.get_record(tenant_id)
            current = record.status if record is not None else STATUS_DISCONNECTED
            if current == status:
                return record
            if loop.time() > deadline:
                raise AssertionError(f"{tenant_id} stuck in {current}, expected {status}")
            await asyncio.sleep(0.01)

    async def ready(self, tenant_id: str) -> LoopbackAdapter:
        await self.manager.get_qr_or_initialize(tenant_id)
        await self.wait_status(tenant_id, "qr")
        adapter = self.adapter(tenant_id)
        adapter.pair()
        await self.wait_status(tenant_id, "ready")
        return adapter

    @staticmethod
    async def settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def __aenter__(self) -> "Harness":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.manager.shutdown()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def gateway_cfg(tmp_path: Path) -> GatewayConfig:
    return GatewayConfig(
        max_sessions=5,
        idle_timeout=300.0,
        idle_sweep_interval=3600.0,
        host="127.0.0.1",
        port=3000,
        auth_data_path=tmp_path / "auth",
        adapter="loopback",
        bridge_url="http://bridge.test",
        bridge_token=None,
        signoff_timeout=0.5,
        send_timeout=0.5,
        shutdown_timeout=2.0,
        resume_backoff_base=5.0,
        resume_backoff_max=300.0,
        log_level="INFO",
    )


@pytest.fixture
def make_harness(gateway_cfg: GatewayConfig):
    def _make(*, qr_renderer: Callable[[str], str] = fake_qr_renderer, **overrides) -> Harness:
        cfg = dataclasses.replace(gateway_cfg, **overrides)
        return Harness(cfg, qr_renderer=qr_renderer)

    return _make
