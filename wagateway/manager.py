from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from config import GatewayConfig

from .adapters.base import (
    AdapterError,
    AdapterEvent,
    AdapterFactory,
    EventSink,
    MessagingAdapter,
    EVENT_AUTHENTICATED,
    EVENT_AUTH_FAILURE,
    EVENT_CONNECT_FAILED,
    EVENT_DISCONNECTED,
    EVENT_QR,
    EVENT_READY,
)
from .credentials import FileCredentialStore
from .metrics import (
    ADAPTER_EVENTS_TOTAL,
    CAPACITY_REJECTIONS_TOTAL,
    IDLE_EVICTIONS_TOTAL,
    SENDS_TOTAL,
    SESSIONS,
    TEARDOWNS_TOTAL,
)
from .qr import render_qr_data_url
from .registry import (
    STATUSES,
    STATUS_AUTHENTICATED,
    STATUS_DISCONNECTED,
    STATUS_ERROR,
    STATUS_INITIALIZING,
    STATUS_QR,
    STATUS_READY,
    STATUS_UNINITIALIZED,
    SessionEntry,
    SessionRecord,
    SessionRegistry,
)


LOGGER = logging.getLogger("wagateway")


AUTH_FAILED_DETAIL = "Authentication failed. Please try again."
INIT_FAILED_DETAIL = "Initialization failed."
QR_RENDER_FAILED_DETAIL = "Failed to generate QR code."

OUTCOME_CONNECTED = "connected"
OUTCOME_QR = "qr"
OUTCOME_PENDING = "pending"
OUTCOME_BACKOFF = "backoff"

_BACKOFF_MAX_EXPONENT = 16


class CapacityError(Exception):
    """Raised when a session cannot be created because the registry is full."""

    def __init__(self, max_sessions: int) -> None:
        super().__init__("capacity_exhausted")
        self.max_sessions = max_sessions


class SessionConflictError(Exception):
    """Raised when an operation is not allowed in the session's current status."""

    def __init__(self, status: str) -> None:
        super().__init__(f"session_not_ready:{status}")
        self.status = status


class InfoPendingError(Exception):
    """Raised when the session is usable but account metadata has not arrived."""


class DispatchError(Exception):
    """Raised when the adapter fails a request-time command."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


@dataclass(slots=True)
class QrOutcome:
    kind: str
    status: str
    qr: Optional[str] = None
    retry_after: Optional[float] = None


class SessionLifecycleManager:
    """Own every session record and drive it from adapter events.

    Mutations of a tenant's record happen only while holding that tenant's
    lock from :meth:`SessionRegistry.tenant_lock`, either in the per-session
    event handler task or in one of the administrative operations below.
    """

    def __init__(
        self,
        cfg: GatewayConfig,
        adapter_factory: AdapterFactory,
        credentials: FileCredentialStore,
        *,
        clock: Callable[[], float] = time.time,
        qr_renderer: Callable[[str], str] = render_qr_data_url,
    ) -> None:
        self._cfg = cfg
        self._adapter_factory = adapter_factory
        self._credentials = credentials
        self._clock = clock
        self._qr_renderer = qr_renderer
        self._registry = SessionRegistry(cfg.max_sessions)
        self._failures: Dict[str, tuple[int, float]] = {}
        self._sweeper: Optional[asyncio.Task[Any]] = None
        self._stopping = asyncio.Event()
        self._started = False

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def credentials(self) -> FileCredentialStore:
        return self._credentials

    @property
    def config(self) -> GatewayConfig:
        return self._cfg

    # -- lifecycle -------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._stopping.clear()
        await self._reconnect_persisted_sessions()
        self._sweeper = asyncio.create_task(
            self._sweep_loop(), name="wagateway-idle-sweeper"
        )

    async def _reconnect_persisted_sessions(self) -> None:
        try:
            tenants = sorted(await asyncio.to_thread(self._credentials.enumerate))
        except OSError as exc:
            LOGGER.error("stage=startup_enumerate_failed error=%s", exc)
            return
        resumed = 0
        for tenant in tenants:
            try:
                async with self._registry.tenant_lock(tenant):
                    if self._registry.get(tenant) is not None:
                        continue
                    self._create_locked(tenant, source="startup")
                    resumed += 1
            except CapacityError:
                LOGGER.warning(
                    "stage=startup_reconnect_skipped tenant_id=%s reason=capacity max_sessions=%s",
                    tenant,
                    self._cfg.max_sessions,
                )
            except Exception:
                LOGGER.exception("stage=startup_reconnect_failed tenant_id=%s", tenant)
        LOGGER.info(
            "stage=startup_reconnect found=%s resumed=%s", len(tenants), resumed
        )

    async def shutdown(self) -> None:
        self._stopping.set()
        if self._sweeper is not None:
            sweeper, self._sweeper = self._sweeper, None
            # an eviction in flight finishes its sign-off, then the loop exits
            done, _ = await asyncio.wait({sweeper}, timeout=self._cfg.shutdown_timeout)
            if not done:
                LOGGER.warning(
                    "stage=sweeper_stop_timeout timeout=%s", self._cfg.shutdown_timeout
                )
                sweeper.cancel()
                await asyncio.wait({sweeper}, timeout=1.0)
            elif not sweeper.cancelled() and sweeper.exception() is not None:
                LOGGER.error("stage=sweeper_failed error=%s", sweeper.exception())

        tenants = self._registry.tenant_ids()
        if tenants:
            tasks = [
                asyncio.create_task(
                    self.teardown(tenant, delete_credentials=False, reason="shutdown")
                )
                for tenant in tenants
            ]
            done, pending = await asyncio.wait(tasks, timeout=self._cfg.shutdown_timeout)
            for task in pending:
                task.cancel()
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    LOGGER.error(
                        "stage=shutdown_teardown_failed error=%s", task.exception()
                    )
            if pending:
                LOGGER.warning(
                    "stage=shutdown_timeout pending=%s timeout=%s",
                    len(pending),
                    self._cfg.shutdown_timeout,
                )
                await asyncio.wait(pending, timeout=1.0)

        for tenant in self._registry.tenant_ids():
            entry = self._registry.remove(tenant)
            if entry is None:
                continue
            entry.closing = True
            adapter, entry.adapter = entry.adapter, None
            if adapter is not None:
                await self._force_release(tenant, adapter)
            self._cancel_tasks(entry)
            LOGGER.warning("stage=shutdown_forced_release tenant_id=%s", tenant)

        self._started = False
        self._update_metrics()

    # -- queries ---------------------------------------------------------

    def get_status(self, tenant: str) -> str:
        entry = self._registry.get(tenant)
        if entry is None or entry.closing:
            return STATUS_DISCONNECTED
        entry.record.last_activity = self._clock()
        return entry.record.status

    def get_record(self, tenant: str) -> Optional[SessionRecord]:
        entry = self._registry.get(tenant)
        if entry is None or entry.closing:
            return None
        return entry.record

    async def get_qr_or_initialize(self, tenant: str) -> QrOutcome:
        """Report the authentication code, creating the session when absent.

        This is the only admission path: polling the QR endpoint for an
        unknown, disconnected or failed tenant starts a new session.
        """

        async with self._registry.tenant_lock(tenant):
            now = self._clock()
            entry = self._registry.get(tenant)
            record: Optional[SessionRecord] = None
            if entry is not None and not entry.closing:
                record = entry.record
                record.last_activity = now
                if record.status in (STATUS_READY, STATUS_AUTHENTICATED):
                    return QrOutcome(OUTCOME_CONNECTED, record.status)
                if record.status == STATUS_QR and record.qr_payload:
                    return QrOutcome(OUTCOME_QR, STATUS_QR, qr=record.qr_payload)
                if record.status != STATUS_ERROR:
                    return QrOutcome(OUTCOME_PENDING, record.status)

            retry_after = self._backoff_remaining(tenant, now)
            if retry_after > 0:
                LOGGER.info(
                    "stage=create_backoff tenant_id=%s retry_after=%.1f",
                    tenant,
                    retry_after,
                )
                status = record.status if record is not None else STATUS_DISCONNECTED
                return QrOutcome(OUTCOME_BACKOFF, status, retry_after=retry_after)

            if entry is not None and record is not None:
                await self._teardown_locked(
                    tenant, entry, delete_credentials=False, reason="recreate"
                )
            record = self._create_locked(tenant, source="qr")
            return QrOutcome(OUTCOME_PENDING, record.status)

    async def get_info(self, tenant: str) -> Dict[str, Optional[str]]:
        adapter = self._usable_adapter(tenant)
        info = adapter.info
        if info is None:
            raise InfoPendingError(tenant)
        return info.to_payload()

    async def get_profile_pic(self, tenant: str) -> str:
        adapter = self._usable_adapter(tenant)
        if adapter.info is None:
            raise InfoPendingError(tenant)
        try:
            url = await asyncio.wait_for(
                adapter.profile_pic_url(), timeout=self._cfg.send_timeout
            )
        except asyncio.TimeoutError as exc:
            LOGGER.error("stage=profile_pic_fail tenant_id=%s error=timeout", tenant)
            raise DispatchError("profile_pic_timeout") from exc
        except Exception as exc:
            LOGGER.error("stage=profile_pic_fail tenant_id=%s error=%s", tenant, exc)
            raise DispatchError(str(exc) or exc.__class__.__name__) from exc
        if not url:
            raise InfoPendingError(tenant)
        return url

    def _usable_adapter(self, tenant: str) -> MessagingAdapter:
        entry = self._registry.get(tenant)
        if entry is None or entry.closing:
            raise SessionConflictError(STATUS_DISCONNECTED)
        record = entry.record
        record.last_activity = self._clock()
        if record.status not in (STATUS_READY, STATUS_AUTHENTICATED) or entry.adapter is None:
            raise SessionConflictError(record.status)
        return entry.adapter

    # -- commands --------------------------------------------------------

    async def send_message(self, tenant: str, destination: str, body: str) -> Optional[str]:
        entry = self._registry.get(tenant)
        status = STATUS_DISCONNECTED
        if entry is not None and not entry.closing:
            entry.record.last_activity = self._clock()
            status = entry.record.status
        adapter = entry.adapter if entry is not None else None
        if status != STATUS_READY or adapter is None:
            SENDS_TOTAL.labels("conflict").inc()
            raise SessionConflictError(status)

        try:
            message_id = await asyncio.wait_for(
                adapter.send(destination, body), timeout=self._cfg.send_timeout
            )
        except asyncio.TimeoutError as exc:
            SENDS_TOTAL.labels("timeout").inc()
            LOGGER.error(
                "stage=send_fail tenant_id=%s destination=%s error=timeout",
                tenant,
                destination,
            )
            raise DispatchError("send_timeout") from exc
        except AdapterError as exc:
            SENDS_TOTAL.labels("error").inc()
            LOGGER.error(
                "stage=send_fail tenant_id=%s destination=%s error=%s",
                tenant,
                destination,
                exc,
            )
            raise DispatchError(str(exc)) from exc
        except Exception as exc:
            SENDS_TOTAL.labels("error").inc()
            LOGGER.exception(
                "stage=send_fail tenant_id=%s destination=%s", tenant, destination
            )
            raise DispatchError(str(exc) or exc.__class__.__name__) from exc
        SENDS_TOTAL.labels("ok").inc()
        LOGGER.info(
            "stage=send_ok tenant_id=%s destination=%s message_id=%s",
            tenant,
            destination,
            message_id,
        )
        return message_id

    async def reconnect(self, tenant: str) -> SessionRecord:
        async with self._registry.tenant_lock(tenant):
            entry = self._registry.get(tenant)
            if entry is not None:
                await self._teardown_locked(
                    tenant, entry, delete_credentials=False, reason="reconnect"
                )
            self._failures.pop(tenant, None)
            return self._create_locked(tenant, source="reconnect")

    async def logout(self, tenant: str) -> bool:
        removed = await self.teardown(tenant, delete_credentials=True, reason="logout")
        self._failures.pop(tenant, None)
        LOGGER.info("stage=logout tenant_id=%s had_session=%s", tenant, removed)
        return removed

    async def teardown(self, tenant: str, *, delete_credentials: bool, reason: str) -> bool:
        """Release the tenant's session; ``False`` when there was none.

        Credentials are still wiped when asked even if no session is live,
        so a logout after an eviction signs the tenant out for good. A
        concurrent caller that lost the race finds nothing left to delete.
        """

        async with self._registry.tenant_lock(tenant):
            entry = self._registry.get(tenant)
            if entry is None:
                if delete_credentials and await asyncio.to_thread(
                    self._credentials.exists, tenant
                ):
                    await asyncio.to_thread(self._credentials.delete, tenant)
                return False
            return await self._teardown_locked(
                tenant, entry, delete_credentials=delete_credentials, reason=reason
            )

    async def evict_idle(self, now: Optional[float] = None) -> List[str]:
        now = self._clock() if now is None else now
        cutoff = now - self._cfg.idle_timeout
        evicted: List[str] = []
        self._prune_failures(now)
        for tenant in self._registry.idle_candidates(cutoff):
            if self._stopping.is_set():
                break
            async with self._registry.tenant_lock(tenant):
                entry = self._registry.get(tenant)
                if entry is None or entry.closing:
                    continue
                if entry.record.last_activity >= cutoff:
                    LOGGER.info("stage=idle_eviction_skipped tenant_id=%s", tenant)
                    continue
                if await self._teardown_locked(
                    tenant, entry, delete_credentials=False, reason="idle"
                ):
                    IDLE_EVICTIONS_TOTAL.inc()
                    evicted.append(tenant)
        if evicted:
            LOGGER.info("stage=idle_sweep evicted=%s", ",".join(evicted))
        return evicted

    async def _sweep_loop(self) -> None:
        interval = self._cfg.idle_sweep_interval
        while not self._stopping.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            if self._stopping.is_set():
                break
            try:
                await self.evict_idle()
            except Exception:
                LOGGER.exception("stage=idle_sweep_failed")

    # -- creation & teardown ---------------------------------------------

    def _create_locked(self, tenant: str, *, source: str) -> SessionRecord:
        if not self._registry.try_reserve():
            CAPACITY_REJECTIONS_TOTAL.inc()
            LOGGER.warning(
                "stage=capacity_rejected tenant_id=%s live=%s max_sessions=%s source=%s",
                tenant,
                self._registry.live_count,
                self._cfg.max_sessions,
                source,
            )
            raise CapacityError(self._cfg.max_sessions)

        now = self._clock()
        record = SessionRecord(
            tenant_id=tenant,
            created_at=now,
            last_activity=now,
            status_changed_at=now,
            status=STATUS_UNINITIALIZED,
            source=source,
        )
        entry = SessionEntry(record=record)
        try:
            self._credentials.prepare(tenant)
            entry.adapter = self._adapter_factory(tenant, self._make_sink(tenant, entry))
            self._registry.put(tenant, entry)
        except Exception:
            self._registry.cancel_reservation()
            LOGGER.exception("stage=create_failed tenant_id=%s", tenant)
            raise

        self._set_status(tenant, record, STATUS_INITIALIZING, reason=source)
        entry.handler_task = asyncio.create_task(
            self._run_handler(tenant, entry), name=f"wagateway-events-{tenant}"
        )
        entry.connect_task = asyncio.create_task(
            self._run_connect(tenant, entry), name=f"wagateway-connect-{tenant}"
        )
        LOGGER.info("stage=session_created tenant_id=%s source=%s", tenant, source)
        return record

    async def _teardown_locked(
        self,
        tenant: str,
        entry: SessionEntry,
        *,
        delete_credentials: bool,
        reason: str,
        graceful: bool = True,
    ) -> bool:
        if entry.closing:
            return False
        entry.closing = True

        adapter = entry.adapter
        if adapter is not None:
            if graceful:
                await self._sign_off(tenant, adapter, logout=delete_credentials)
            else:
                await self._force_release(tenant, adapter)
            entry.adapter = None

        self._registry.remove(tenant, entry)
        self._cancel_tasks(entry)
        self._set_status(tenant, entry.record, STATUS_DISCONNECTED, reason=reason)

        removed_credentials = False
        if delete_credentials:
            try:
                removed_credentials = await asyncio.to_thread(
                    self._credentials.delete, tenant
                )
            except OSError as exc:
                LOGGER.error(
                    "stage=credentials_delete_failed tenant_id=%s error=%s", tenant, exc
                )

        TEARDOWNS_TOTAL.labels(reason).inc()
        LOGGER.info(
            "stage=teardown tenant_id=%s reason=%s removed_credentials=%s",
            tenant,
            reason,
            removed_credentials,
        )
        return True

    async def _sign_off(self, tenant: str, adapter: MessagingAdapter, *, logout: bool) -> None:
        action = "logout" if logout else "close"
        try:
            signoff = adapter.logout() if logout else adapter.close()
            await asyncio.wait_for(signoff, timeout=self._cfg.signoff_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning(
                "stage=signoff_failed tenant_id=%s action=%s error=timeout", tenant, action
            )
        except Exception as exc:
            LOGGER.warning(
                "stage=signoff_failed tenant_id=%s action=%s error=%s", tenant, action, exc
            )
        else:
            return
        await self._force_release(tenant, adapter)

    async def _force_release(self, tenant: str, adapter: MessagingAdapter) -> None:
        try:
            await adapter.force_release()
        except Exception:
            LOGGER.exception("stage=force_release_failed tenant_id=%s", tenant)

    @staticmethod
    def _cancel_tasks(entry: SessionEntry) -> None:
        current = asyncio.current_task()
        for task in (entry.connect_task, entry.handler_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()

    # -- event path ------------------------------------------------------

    def _make_sink(self, tenant: str, entry: SessionEntry) -> EventSink:
        loop = asyncio.get_running_loop()

        def sink(event: AdapterEvent) -> None:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                entry.events.put_nowait(event)
                return
            try:
                loop.call_soon_threadsafe(entry.events.put_nowait, event)
            except RuntimeError:
                LOGGER.warning(
                    "stage=event_dropped tenant_id=%s kind=%s reason=loop_closed",
                    tenant,
                    event.kind,
                )

        return sink

    async def _run_connect(self, tenant: str, entry: SessionEntry) -> None:
        adapter = entry.adapter
        if adapter is None:
            return
        try:
            await adapter.connect()
        except Exception as exc:
            LOGGER.error("stage=connect_failed tenant_id=%s error=%s", tenant, exc)
            entry.events.put_nowait(
                AdapterEvent(kind=EVENT_CONNECT_FAILED, reason=str(exc) or None)
            )

    async def _run_handler(self, tenant: str, entry: SessionEntry) -> None:
        while not entry.closing:
            event = await entry.events.get()
            try:
                await self._handle_event(tenant, entry, event)
            except Exception:
                LOGGER.exception(
                    "stage=event_handler_failed tenant_id=%s kind=%s", tenant, event.kind
                )
            finally:
                entry.events.task_done()

    async def _handle_event(self, tenant: str, entry: SessionEntry, event: AdapterEvent) -> None:
        async with self._registry.tenant_lock(tenant):
            if entry.closing or self._registry.get(tenant) is not entry:
                LOGGER.debug(
                    "stage=event_dropped tenant_id=%s kind=%s reason=stale_session",
                    tenant,
                    event.kind,
                )
                return
            ADAPTER_EVENTS_TOTAL.labels(event.kind).inc()
            record = entry.record
            record.last_activity = self._clock()
            status = record.status
            kind = event.kind

            if kind == EVENT_QR:
                if status not in (STATUS_INITIALIZING, STATUS_QR):
                    self._ignore(tenant, record, event)
                    return
                try:
                    rendered = await asyncio.to_thread(self._qr_renderer, event.payload or "")
                except Exception as exc:
                    LOGGER.error("stage=qr_render_failed tenant_id=%s error=%s", tenant, exc)
                    await self._fail_locked(
                        tenant, entry, QR_RENDER_FAILED_DETAIL, reason="qr_render_failed"
                    )
                    return
                record.qr_payload = rendered
                if status == STATUS_QR:
                    record.status_changed_at = self._clock()
                self._set_status(
                    tenant,
                    record,
                    STATUS_QR,
                    reason="qr_rotated" if status == STATUS_QR else "qr_issued",
                )
            elif kind == EVENT_AUTHENTICATED:
                if status not in (STATUS_INITIALIZING, STATUS_QR):
                    self._ignore(tenant, record, event)
                    return
                self._set_status(tenant, record, STATUS_AUTHENTICATED)
            elif kind == EVENT_READY:
                if status not in (STATUS_INITIALIZING, STATUS_QR, STATUS_AUTHENTICATED):
                    self._ignore(tenant, record, event)
                    return
                self._failures.pop(tenant, None)
                self._set_status(tenant, record, STATUS_READY)
            elif kind == EVENT_AUTH_FAILURE:
                if status not in (STATUS_INITIALIZING, STATUS_QR, STATUS_AUTHENTICATED):
                    self._ignore(tenant, record, event)
                    return
                LOGGER.warning(
                    "stage=auth_failure tenant_id=%s detail=%s", tenant, event.payload
                )
                await self._fail_locked(tenant, entry, AUTH_FAILED_DETAIL, reason="auth_failure")
            elif kind == EVENT_CONNECT_FAILED:
                if status in (STATUS_READY, STATUS_ERROR):
                    self._ignore(tenant, record, event)
                    return
                await self._fail_locked(
                    tenant, entry, INIT_FAILED_DETAIL, reason="connect_failed"
                )
            elif kind == EVENT_DISCONNECTED:
                LOGGER.warning(
                    "stage=adapter_disconnected tenant_id=%s from=%s reason=%s",
                    tenant,
                    status,
                    event.reason,
                )
                await self._teardown_locked(
                    tenant,
                    entry,
                    delete_credentials=False,
                    reason="disconnected",
                    graceful=False,
                )
            else:
                self._ignore(tenant, record, event)

    async def _fail_locked(
        self, tenant: str, entry: SessionEntry, detail: str, *, reason: str
    ) -> None:
        """Move to ``error`` and release the adapter; the record keeps its slot."""

        record = entry.record
        record.error_detail = detail
        self._set_status(tenant, record, STATUS_ERROR, reason=reason)
        self._record_failure(tenant)
        adapter, entry.adapter = entry.adapter, None
        if adapter is not None:
            await self._force_release(tenant, adapter)
        task = entry.connect_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    @staticmethod
    def _ignore(tenant: str, record: SessionRecord, event: AdapterEvent) -> None:
        LOGGER.info(
            "stage=event_ignored tenant_id=%s kind=%s status=%s",
            tenant,
            event.kind,
            record.status,
        )

    def _set_status(
        self,
        tenant: str,
        record: SessionRecord,
        status: str,
        *,
        reason: str | None = None,
    ) -> None:
        previous = record.status
        if previous != status:
            if reason:
                LOGGER.info(
                    "stage=state_transition tenant_id=%s from=%s to=%s reason=%s",
                    tenant,
                    previous,
                    status,
                    reason,
                )
            else:
                LOGGER.info(
                    "stage=state_transition tenant_id=%s from=%s to=%s",
                    tenant,
                    previous,
                    status,
                )
            record.status_changed_at = self._clock()
        record.status = status
        if status != STATUS_QR:
            record.qr_payload = None
        if status != STATUS_ERROR:
            record.error_detail = None
        self._update_metrics()

    # -- backoff ---------------------------------------------------------

    def _record_failure(self, tenant: str) -> None:
        count, _ = self._failures.get(tenant, (0, 0.0))
        self._failures[tenant] = (count + 1, self._clock())

    def _backoff_remaining(self, tenant: str, now: float) -> float:
        failure = self._failures.get(tenant)
        if failure is None:
            return 0.0
        count, last_failure_at = failure
        exponent = min(max(count - 1, 0), _BACKOFF_MAX_EXPONENT)
        delay = min(
            self._cfg.resume_backoff_base * (2 ** exponent),
            self._cfg.resume_backoff_max,
        )
        return max(0.0, last_failure_at + delay - now)

    def _prune_failures(self, now: float) -> None:
        """Forget failures of tenants without a session once any backoff has lapsed."""

        horizon = now - self._cfg.resume_backoff_max
        for tenant, (_, last_failure_at) in list(self._failures.items()):
            if last_failure_at <= horizon and tenant not in self._registry:
                del self._failures[tenant]

    def failure_count(self, tenant: str) -> int:
        failure = self._failures.get(tenant)
        return failure[0] if failure else 0

    # -- observability ---------------------------------------------------

    def stats_snapshot(self) -> Dict[str, Any]:
        return {
            "sessions": self._registry.live_count,
            "max_sessions": self._cfg.max_sessions,
            "by_status": self._registry.counts_by_status(),
        }

    def _update_metrics(self) -> None:
        counts = self._registry.counts_by_status()
        for status in STATUSES:
            SESSIONS.labels(status).set(counts.get(status, 0))


__all__ = [
    "AUTH_FAILED_DETAIL",
    "CapacityError",
    "DispatchError",
    "INIT_FAILED_DETAIL",
    "InfoPendingError",
    "OUTCOME_BACKOFF",
    "OUTCOME_CONNECTED",
    "OUTCOME_PENDING",
    "OUTCOME_QR",
    "QR_RENDER_FAILED_DETAIL",
    "QrOutcome",
    "SessionConflictError",
    "SessionLifecycleManager",
]
