from __future__ import annotations

from prometheus_client import Counter, Gauge


SESSIONS = Gauge(
    "wagateway_sessions",
    "Number of live sessions grouped by status",
    labelnames=("status",),
)
ADAPTER_EVENTS_TOTAL = Counter(
    "wagateway_adapter_events_total",
    "Adapter events handled by the lifecycle manager",
    labelnames=("kind",),
)
CAPACITY_REJECTIONS_TOTAL = Counter(
    "wagateway_capacity_rejections_total",
    "Session creations refused because the registry was full",
)
IDLE_EVICTIONS_TOTAL = Counter(
    "wagateway_idle_evictions_total",
    "Sessions torn down by the idle sweeper",
)
TEARDOWNS_TOTAL = Counter(
    "wagateway_teardowns_total",
    "Session teardowns grouped by reason",
    labelnames=("reason",),
)
SENDS_TOTAL = Counter(
    "wagateway_sends_total",
    "Outbound message attempts grouped by result",
    labelnames=("result",),
)

__all__ = [
    "ADAPTER_EVENTS_TOTAL",
    "CAPACITY_REJECTIONS_TOTAL",
    "IDLE_EVICTIONS_TOTAL",
    "SENDS_TOTAL",
    "SESSIONS",
    "TEARDOWNS_TOTAL",
]
