from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

greenspace_analyses_total = Counter(
    "greenspace_analyses_total",
    "Total greenspace analyses by terminal status",
    labelnames=["status", "strategy"],
)

greenspace_cells_total = Counter(
    "greenspace_cells_total",
    "Grid cells processed by outcome",
    labelnames=["outcome", "source"],
)

greenspace_upstream_requests_total = Counter(
    "greenspace_upstream_requests_total",
    "Count of upstream imagery requests",
    labelnames=["engine", "outcome"],
)

greenspace_upstream_latency_seconds = Histogram(
    "greenspace_upstream_latency_seconds",
    "Latency of upstream imagery requests",
    labelnames=["engine"],
    buckets=(0.1, 0.3, 0.5, 1, 2, 5, 10, 20, 30),
)

greenspace_token_refresh_total = Counter(
    "greenspace_token_refresh_total",
    "Access token refresh attempts",
    labelnames=["outcome"],
)

greenspace_progress_delivery_failures_total = Counter(
    "greenspace_progress_delivery_failures_total",
    "Progress listeners that raised during delivery",
    labelnames=["event_type"],
)

greenspace_active_sessions = Gauge(
    "greenspace_active_sessions",
    "Analyses currently running",
)
