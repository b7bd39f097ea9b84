"""Adapter for an external messaging bridge reachable over HTTP.

The bridge runs the actual web client per tenant and exposes it as a small
JSON API. Lifecycle events are pulled from a long-polling feed
(``GET /clients/<tenant>/events?after=<seq>``) and republished through the
adapter sink; commands map one-to-one onto bridge endpoints.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Any, Optional

import httpx

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


BRIDGE_EVENT_KINDS = frozenset(
    {EVENT_QR, EVENT_AUTHENTICATED, EVENT_READY, EVENT_AUTH_FAILURE, EVENT_DISCONNECTED}
)
CHAT_ID_SUFFIX = "@c.us"


def chat_id_for(destination: str) -> str:
    return f"{destination}{CHAT_ID_SUFFIX}"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            value = body.get(key)
            if value:
                return str(value)
    return (response.text or "").strip()[:200] or "unknown"


class BridgeAdapter(MessagingAdapter):
    def __init__(
        self,
        tenant_id: str,
        sink: EventSink,
        credentials_path: Path,
        *,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        poll_timeout: float = 25.0,
        max_poll_failures: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(tenant_id, sink, credentials_path)
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if token:
            headers["X-Auth-Token"] = token
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self._poll_timeout = poll_timeout
        self._max_poll_failures = max(1, max_poll_failures)
        self._retry_delay = retry_delay
        self._cursor = 0
        self._pump: Optional[asyncio.Task[Any]] = None
        self._released = False

    @property
    def _base_path(self) -> str:
        return f"/clients/{self.tenant_id}"

    @property
    def released(self) -> bool:
        return self._released

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._released:
            raise AdapterError("client_released")
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise AdapterError(f"bridge_unreachable:{exc.__class__.__name__}") from exc
        if response.status_code >= 400:
            raise AdapterError(
                f"bridge_error:{response.status_code}:{_error_detail(response)}"
            )
        return response

    async def connect(self) -> None:
        await self._request(
            "POST",
            self._base_path,
            json={"data_path": str(self.credentials_path)},
        )
        LOGGER.info("stage=bridge_client_started tenant_id=%s", self.tenant_id)
        if self._pump is None or self._pump.done():
            self._pump = asyncio.create_task(
                self._pump_events(), name=f"wagateway-bridge-{self.tenant_id}"
            )

    async def _pump_events(self) -> None:
        failures = 0
        while not self._released:
            try:
                response = await self._http.get(
                    f"{self._base_path}/events",
                    params={"after": self._cursor, "timeout": int(self._poll_timeout)},
                    timeout=httpx.Timeout(self._poll_timeout + 5.0),
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                if self._released:
                    return
                failures += 1
                LOGGER.warning(
                    "stage=bridge_poll_failed tenant_id=%s attempt=%s error=%s",
                    self.tenant_id,
                    failures,
                    exc,
                )
                if failures >= self._max_poll_failures:
                    self.emit(EVENT_DISCONNECTED, reason="bridge_unreachable")
                    return
                await asyncio.sleep(self._retry_delay * failures)
                continue
            failures = 0
            events = data.get("events") if isinstance(data, dict) else None
            for item in events or []:
                if isinstance(item, dict):
                    await self._dispatch(item)
            if isinstance(data, dict) and isinstance(data.get("cursor"), int):
                self._cursor = max(self._cursor, data["cursor"])

    async def _dispatch(self, item: dict[str, Any]) -> None:
        seq = item.get("seq")
        if isinstance(seq, int):
            if seq <= self._cursor:
                return
            self._cursor = seq
        kind = item.get("type")
        data = item.get("data") if isinstance(item.get("data"), dict) else {}
        if kind not in BRIDGE_EVENT_KINDS:
            LOGGER.info(
                "stage=bridge_event_skipped tenant_id=%s type=%s", self.tenant_id, kind
            )
            return
        if kind == EVENT_QR:
            self.emit(EVENT_QR, payload=data.get("qr"))
        elif kind == EVENT_READY:
            self._info = self._parse_info(data.get("info"))
            self.emit(EVENT_READY)
            if self._info is None:
                await self._load_info()
        elif kind == EVENT_AUTH_FAILURE:
            self.emit(EVENT_AUTH_FAILURE, payload=data.get("message"))
        elif kind == EVENT_DISCONNECTED:
            self.emit(EVENT_DISCONNECTED, reason=data.get("reason"))
        else:
            self.emit(kind)

    @staticmethod
    def _parse_info(raw: Any) -> Optional[AccountInfo]:
        if not isinstance(raw, dict):
            return None
        number = raw.get("number")
        if not number:
            return None
        number = str(number)
        return AccountInfo(
            name=raw.get("name"),
            number=number,
            serialized=str(raw.get("serialized") or chat_id_for(number)),
        )

    async def _load_info(self) -> None:
        try:
            response = await self._request("GET", f"{self._base_path}/me")
            self._info = self._parse_info(response.json())
        except (AdapterError, ValueError) as exc:
            LOGGER.warning(
                "stage=bridge_info_failed tenant_id=%s error=%s", self.tenant_id, exc
            )

    async def send(self, destination: str, body: str) -> Optional[str]:
        response = await self._request(
            "POST",
            f"{self._base_path}/messages",
            json={"chat_id": chat_id_for(destination), "body": body},
        )
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and payload.get("id") is not None:
            return str(payload["id"])
        return None

    async def profile_pic_url(self) -> Optional[str]:
        response = await self._request("GET", f"{self._base_path}/profile-pic")
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and payload.get("url"):
            return str(payload["url"])
        return None

    async def logout(self) -> None:
        await self._request("POST", f"{self._base_path}/logout")
        await self._release()

    async def close(self) -> None:
        await self._request("POST", f"{self._base_path}/close")
        await self._release()

    async def force_release(self) -> None:
        if self._released:
            return
        try:
            await self._http.delete(self._base_path, timeout=httpx.Timeout(3.0))
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "stage=bridge_force_release_failed tenant_id=%s error=%s",
                self.tenant_id,
                exc,
            )
        await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self._info = None
        pump = self._pump
        self._pump = None
        if pump is not None and pump is not asyncio.current_task() and not pump.done():
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
        await self._http.aclose()
        LOGGER.info("stage=adapter_released tenant_id=%s adapter=bridge", self.tenant_id)


__all__ = ["BRIDGE_EVENT_KINDS", "BridgeAdapter", "chat_id_for"]
