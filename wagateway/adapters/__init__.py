from __future__ import annotations

from config import GatewayConfig

from ..credentials import FileCredentialStore
from .base import (
    AccountInfo,
    AdapterError,
    AdapterEvent,
    AdapterFactory,
    EventSink,
    MessagingAdapter,
)
from .bridge import BridgeAdapter
from .loopback import LoopbackAdapter


def build_adapter_factory(
    cfg: GatewayConfig, credentials: FileCredentialStore
) -> AdapterFactory:
    """Return the per-tenant adapter constructor selected by ``GATEWAY_ADAPTER``."""

    if cfg.adapter == "loopback":

        def _loopback(tenant_id: str, sink: EventSink) -> MessagingAdapter:
            return LoopbackAdapter(tenant_id, sink, credentials.path_for(tenant_id))

        return _loopback

    def _bridge(tenant_id: str, sink: EventSink) -> MessagingAdapter:
        return BridgeAdapter(
            tenant_id,
            sink,
            credentials.path_for(tenant_id),
            base_url=cfg.bridge_url,
            token=cfg.bridge_token,
            timeout=cfg.signoff_timeout,
        )

    return _bridge


__all__ = [
    "AccountInfo",
    "AdapterError",
    "AdapterEvent",
    "AdapterFactory",
    "BridgeAdapter",
    "EventSink",
    "LoopbackAdapter",
    "MessagingAdapter",
    "build_adapter_factory",
]
