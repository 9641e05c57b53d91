"""Prometheus instruments shared by the HTTP and WebSocket transports."""

from prometheus_client import Counter, Gauge

GENERATIONS = Counter(
    "llmrelay_generations_total",
    "Generation requests handled, by transport and outcome.",
    ["transport", "outcome"],
)

ACTIVE_SESSIONS = Gauge(
    "llmrelay_active_sessions",
    "WebSocket sessions currently open.",
)


def record_generation(transport: str, ok: bool) -> None:
    GENERATIONS.labels(transport=transport, outcome="success" if ok else "error").inc()
