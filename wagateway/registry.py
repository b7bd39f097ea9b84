from __future__ import annotations

import asyncio
import threading
import weakref
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .adapters.base import AdapterEvent, MessagingAdapter


STATUS_UNINITIALIZED = "uninitialized"
STATUS_INITIALIZING = "initializing"
STATUS_QR = "qr"
STATUS_AUTHENTICATED = "authenticated"
STATUS_READY = "ready"
STATUS_DISCONNECTED = "disconnected"
STATUS_ERROR = "error"

STATUSES = (
    STATUS_UNINITIALIZED,
    STATUS_INITIALIZING,
    STATUS_QR,
    STATUS_AUTHENTICATED,
    STATUS_READY,
    STATUS_DISCONNECTED,
    STATUS_ERROR,
)


@dataclass(slots=True)
class SessionRecord:
    tenant_id: str
    created_at: float
    last_activity: float
    status_changed_at: float
    status: str = STATUS_INITIALIZING
    qr_payload: Optional[str] = None
    error_detail: Optional[str] = None
    source: str = "request"


@dataclass(slots=True)
class SessionEntry:
    """A live registry slot: the record plus everything driving it."""

    record: SessionRecord
    adapter: Optional[MessagingAdapter] = None
    events: "asyncio.Queue[AdapterEvent]" = field(default_factory=asyncio.Queue)
    handler_task: Optional[asyncio.Task[Any]] = None
    connect_task: Optional[asyncio.Task[Any]] = None
    closing: bool = False


class SessionRegistry:
    """Tenant id -> :class:`SessionEntry` with a hard capacity bound.

    ``_lock`` guards ``_entries`` and ``_reserved`` and is never held across
    an ``await``. Capacity counts live entries plus outstanding reservations,
    so a reservation taken by :meth:`try_reserve` is either turned into an
    entry by :meth:`put` or handed back with :meth:`cancel_reservation`.
    Per-tenant serialization is a separate concern served by
    :meth:`tenant_lock`.
    """

    def __init__(self, max_sessions: int) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be positive")
        self.max_sessions = max_sessions
        self._lock = threading.Lock()
        self._entries: Dict[str, SessionEntry] = {}
        self._reserved = 0
        self._tenant_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def try_reserve(self) -> bool:
        with self._lock:
            if len(self._entries) + self._reserved >= self.max_sessions:
                return False
            self._reserved += 1
            return True

    def cancel_reservation(self) -> None:
        with self._lock:
            if self._reserved > 0:
                self._reserved -= 1

    def put(self, tenant_id: str, entry: SessionEntry) -> None:
        """Consume one reservation and store ``entry``."""

        with self._lock:
            if tenant_id in self._entries:
                raise KeyError(f"session_exists:{tenant_id}")
            if self._reserved < 1:
                raise RuntimeError("no_reservation")
            self._reserved -= 1
            self._entries[tenant_id] = entry

    def get(self, tenant_id: str) -> Optional[SessionEntry]:
        with self._lock:
            return self._entries.get(tenant_id)

    def get_record(self, tenant_id: str) -> Optional[SessionRecord]:
        entry = self.get(tenant_id)
        return entry.record if entry else None

    def remove(
        self, tenant_id: str, entry: Optional[SessionEntry] = None
    ) -> Optional[SessionEntry]:
        """Drop the entry and free its slot.

        When ``entry`` is given the removal only happens if it is still the
        tenant's current entry; a stale caller gets ``None``.
        """

        with self._lock:
            current = self._entries.get(tenant_id)
            if current is None:
                return None
            if entry is not None and current is not entry:
                return None
            del self._entries[tenant_id]
            return current

    def for_each(self, visitor: Callable[[str, SessionEntry], None]) -> None:
        with self._lock:
            snapshot = list(self._entries.items())
        for tenant_id, entry in snapshot:
            visitor(tenant_id, entry)

    def idle_candidates(self, cutoff: float) -> List[str]:
        with self._lock:
            return [
                tenant_id
                for tenant_id, entry in self._entries.items()
                if not entry.closing and entry.record.last_activity < cutoff
            ]

    def tenant_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def tenant_lock(self, tenant_id: str) -> asyncio.Lock:
        """Return the tenant's lock, shared by every caller holding or awaiting it.

        Locks are weakly held: once nobody references one it is dropped, so
        tenants that never got a session do not accumulate.
        """

        with self._lock:
            lock = self._tenant_locks.get(tenant_id)
            if lock is None:
                lock = asyncio.Lock()
                self._tenant_locks[tenant_id] = lock
            return lock

    def counts_by_status(self) -> Dict[str, int]:
        with self._lock:
            counts = Counter(entry.record.status for entry in self._entries.values())
        return {status: counts.get(status, 0) for status in STATUSES}

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def tenant_lock_count(self) -> int:
        with self._lock:
            return len(self._tenant_locks)

    @property
    def reserved_count(self) -> int:
        with self._lock:
            return self._reserved

    def __len__(self) -> int:
        return self.live_count

    def __contains__(self, tenant_id: object) -> bool:
        with self._lock:
            return tenant_id in self._entries


__all__ = [
    "STATUSES",
    "STATUS_AUTHENTICATED",
    "STATUS_DISCONNECTED",
    "STATUS_ERROR",
    "STATUS_INITIALIZING",
    "STATUS_QR",
    "STATUS_READY",
    "STATUS_UNINITIALIZED",
    "SessionEntry",
    "SessionRecord",
    "SessionRegistry",
]
