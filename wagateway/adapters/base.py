from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional


LOGGER = logging.getLogger("wagateway.adapter")


EVENT_QR = "qr"
EVENT_AUTHENTICATED = "authenticated"
EVENT_READY = "ready"
EVENT_AUTH_FAILURE = "auth_failure"
EVENT_DISCONNECTED = "disconnected"
# Emitted by the lifecycle manager itself when ``connect()`` raises.
EVENT_CONNECT_FAILED = "connect_failed"

EVENT_KINDS = frozenset(
    {
        EVENT_QR,
        EVENT_AUTHENTICATED,
        EVENT_READY,
        EVENT_AUTH_FAILURE,
        EVENT_DISCONNECTED,
        EVENT_CONNECT_FAILED,
    }
)


class AdapterError(Exception):
    """Raised when the messaging client rejects or fails a command."""


@dataclass(frozen=True, slots=True)
class AdapterEvent:
    kind: str
    payload: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AccountInfo:
    name: Optional[str]
    number: str
    serialized: str

    def to_payload(self) -> dict[str, Optional[str]]:
        return {"name": self.name, "number": self.number}


EventSink = Callable[[AdapterEvent], None]
AdapterFactory = Callable[[str, EventSink], "MessagingAdapter"]


class MessagingAdapter(abc.ABC):
    """One tenant's handle on the external messaging client.

    Adapters never touch session state. Everything they observe is pushed
    through ``sink`` as an :class:`AdapterEvent`; the sink is safe to call
    from any thread. ``logout``, ``close`` and ``force_release`` all leave
    the adapter fully released when they return without raising.
    """

    def __init__(self, tenant_id: str, sink: EventSink, credentials_path: Path) -> None:
        self.tenant_id = tenant_id
        self.credentials_path = credentials_path
        self._sink = sink
        self._info: Optional[AccountInfo] = None

    @property
    def info(self) -> Optional[AccountInfo]:
        return self._info

    def emit(
        self,
        kind: str,
        *,
        payload: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        if kind not in EVENT_KINDS:
            raise ValueError(f"unknown_event_kind:{kind}")
        LOGGER.debug("stage=adapter_event tenant_id=%s kind=%s", self.tenant_id, kind)
        self._sink(AdapterEvent(kind=kind, payload=payload, reason=reason))

    @abc.abstractmethod
    async def connect(self) -> None:
        """Start the connect sequence; progress is reported through events."""

    @abc.abstractmethod
    async def send(self, destination: str, body: str) -> Optional[str]:
        """Send ``body`` to a normalized digits-only destination."""

    @abc.abstractmethod
    async def logout(self) -> None:
        """Sign the device out, invalidating stored credentials remotely."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Disconnect gracefully while keeping credentials usable."""

    @abc.abstractmethod
    async def force_release(self) -> None:
        """Release every local resource; remote cleanup is best effort. Idempotent."""

    @abc.abstractmethod
    async def profile_pic_url(self) -> Optional[str]:
        ...


__all__ = [
    "AccountInfo",
    "AdapterError",
    "AdapterEvent",
    "AdapterFactory",
    "EventSink",
    "MessagingAdapter",
    "EVENT_AUTHENTICATED",
    "EVENT_AUTH_FAILURE",
    "EVENT_CONNECT_FAILED",
    "EVENT_DISCONNECTED",
    "EVENT_KINDS",
    "EVENT_QR",
    "EVENT_READY",
]
