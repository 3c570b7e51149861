"""
릴레이 계층 Prometheus 카운터

HTTP 메트릭은 Instrumentator가 수집하고, 여기서는 WebSocket 릴레이에서
조용히 버려지는 이벤트와 저장소 실패를 집계합니다. /metrics 에서 함께 노출됩니다.
"""

from prometheus_client import Counter

RELAY_EVENTS_RECEIVED = Counter(
    "chat_relay_events_received_total",
    "Inbound relay events by name",
    ["event"],
)

RELAY_EVENTS_EMITTED = Counter(
    "chat_relay_events_emitted_total",
    "Outbound relay frames successfully written to a connection",
    ["event"],
)

RELAY_EVENTS_DROPPED = Counter(
    "chat_relay_events_dropped_total",
    "Inbound relay events dropped without effect",
    ["event", "reason"],
)

RELAY_STORE_FAILURES = Counter(
    "chat_relay_store_failures_total",
    "Store operations issued by the relay that failed or found nothing",
    ["operation"],
)


def record_dropped(event: str, reason: str):
    RELAY_EVENTS_DROPPED.labels(event=event, reason=reason).inc()


def record_store_failure(operation: str):
    RELAY_STORE_FAILURES.labels(operation=operation).inc()
