"""Prometheus metrics for the request gateway."""

from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest

APP_INFO = Info("bizplan_gateway", "Business plan gateway info")
APP_INFO.info({"version": "1.0.0", "name": "bizplan_gateway"})

GATEWAY_DISPATCHES = Counter(
    "gateway_dispatches_total",
    "Completed gateway requests by outcome",
    ["outcome"],
)

GATEWAY_CACHE_HITS = Counter(
    "gateway_cache_hits_total",
    "Requests answered from the response cache",
)

GATEWAY_RETRIES = Counter(
    "gateway_retries_total",
    "Rate-limited requests re-queued for another attempt",
)

GATEWAY_THROTTLE_SECONDS = Histogram(
    "gateway_throttle_seconds",
    "Delay applied before dispatch to respect the rate window",
    buckets=[0.5, 1, 5, 10, 15, 20, 25, 30, 45, 60],
)

GATEWAY_QUEUE_DEPTH = Gauge(
    "gateway_queue_depth",
    "Pending requests waiting for the dispatch loop",
)


def render_metrics() -> bytes:
    """Serialize all registered metrics in the Prometheus text format."""
    return generate_latest()
