import os
from prometheus_client import Counter, Histogram, Gauge

APP_NAME = os.getenv("APP_NAME", "dashboard_agent")

REQ_COUNT = Counter(
    f"{APP_NAME}_requests_total",
    "Total relay requests",
    ["status"],     # 200/400/405/429/500
)

RATE_LIMITED = Counter(
    f"{APP_NAME}_rate_limited_total",
    "Requests rejected by the per-client rate limiter",
)

INFLIGHT = Gauge(
    f"{APP_NAME}_inflight",
    "Open relay streams",
)

STREAM_LATENCY_MS = Histogram(
    f"{APP_NAME}_stream_latency_ms",
    "Time from stream open to [DONE] in milliseconds",
    buckets=(100, 250, 500, 1000, 2000, 4000, 8000, 15000, 30000, 60000),
)

DELTAS = Counter(
    f"{APP_NAME}_deltas_total",
    "Delta events relayed to the browser",
)

UPSTREAM_ERRORS = Counter(
    f"{APP_NAME}_upstream_errors_total",
    "Upstream failures surfaced as error events",
    ["kind"],   # kind: status/exception
)
