"""In-process messaging client used for local development and tests."""

from __future__ import annotations

import asyncio
import contextlib
import secrets
from pathlib import Path
from typing import Optional

from .base import (
    AccountInfo,
    AdapterError,
    EventSink,
    MessagingAdapter,
    EVENT_AUTHENTICATED,
    EVENT_AUTH_FAILURE,
    EVENT_DISCONNECTED,
    EVENT_QR,
    EVENT_READY,
    LOGGER,
)


PAIRED_MARKER = "paired"


class LoopbackAdapter(MessagingAdapter):
    """Simulated client that pairs on demand and resumes from its marker file.

    ``connect()`` emits an authentication code unless the credential
    directory already holds a paired marker, in which case it resumes
    silently (authenticated, then ready). ``pair()`` stands in for the user
    scanning the code.
    """

    def __init__(
        self,
        tenant_id: str,
        sink: EventSink,
        credentials_path: Path,
        *,
        signoff_delay: float = 0.0,
    ) -> None:
        super().__init__(tenant_id, sink, credentials_path)
        self.signoff_delay = signoff_delay
        self.fail_sends = False
        self.fail_signoff = False
        self.outbox: list[tuple[str, str]] = []
        self.connect_calls = 0
        self.releases = 0
        self.logouts = 0
        self.released = False
        self.qr_token: Optional[str] = None

    @property
    def _marker(self) -> Path:
        return self.credentials_path / PAIRED_MARKER

    def is_paired(self) -> bool:
        return self._marker.exists()

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.is_paired():
            self._go_ready()
            return
        self.rotate_qr()

    def rotate_qr(self) -> str:
        self.qr_token = f"loopback:{self.tenant_id}:{secrets.token_urlsafe(12)}"
        self.emit(EVENT_QR, payload=self.qr_token)
        return self.qr_token

    def pair(self) -> None:
        self.credentials_path.mkdir(parents=True, exist_ok=True)
        self._marker.write_text(self.tenant_id, encoding="utf-8")
        self._go_ready()

    def reject_pairing(self, message: str = "Authentication failed. Please try again.") -> None:
        self.emit(EVENT_AUTH_FAILURE, payload=message)

    def drop(self, reason: str = "NAVIGATION") -> None:
        self.emit(EVENT_DISCONNECTED, reason=reason)

    def _go_ready(self) -> None:
        self.qr_token = None
        self.emit(EVENT_AUTHENTICATED)
        self._info = AccountInfo(
            name=f"loopback {self.tenant_id}",
            number="10000000000",
            serialized="10000000000@c.us",
        )
        self.emit(EVENT_READY)

    async def send(self, destination: str, body: str) -> Optional[str]:
        if self.released:
            raise AdapterError("client_released")
        if self.fail_sends:
            raise AdapterError("send_failed")
        self.outbox.append((destination, body))
        return f"loopback-{len(self.outbox)}"

    async def _sign_off(self) -> None:
        if self.signoff_delay:
            await asyncio.sleep(self.signoff_delay)
        if self.fail_signoff:
            raise AdapterError("signoff_failed")

    async def logout(self) -> None:
        await self._sign_off()
        self.logouts += 1
        with contextlib.suppress(FileNotFoundError):
            self._marker.unlink()
        self._release()

    async def close(self) -> None:
        await self._sign_off()
        self._release()

    async def force_release(self) -> None:
        self._release()

    def _release(self) -> None:
        if self.released:
            return
        self.released = True
        self.releases += 1
        self._info = None
        LOGGER.info("stage=adapter_released tenant_id=%s adapter=loopback", self.tenant_id)

    async def profile_pic_url(self) -> Optional[str]:
        if self._info is None:
            return None
        return f"https://loopback.invalid/{self.tenant_id}.jpg"


__all__ = ["LoopbackAdapter", "PAIRED_MARKER"]
