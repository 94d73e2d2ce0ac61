"""
Prometheus metrics for the webmon pipeline.

Registered in the global prometheus_client REGISTRY on import; hosts that
already expose /metrics get them for free.
"""

from prometheus_client import Counter, Gauge

EVENTS_REPORTED_TOTAL = Counter(
    "webmon_events_reported_total",
    "Events accepted by the monitor and handed to delivery",
    ["category"],
)

EVENTS_DROPPED_TOTAL = Counter(
    "webmon_events_dropped_total",
    "Events discarded before reaching the collector",
    ["reason"],  # filtered | disabled | retry_exhausted | internal_error
)

BATCHES_TOTAL = Counter(
    "webmon_batches_total",
    "Batch delivery attempts by strategy and outcome",
    ["strategy", "outcome"],  # beacon|primary|legacy, success|failure
)

QUEUE_DEPTH = Gauge(
    "webmon_queue_depth",
    "Events resident in each priority sequence",
    ["priority"],
)

RETRY_QUEUE_SIZE = Gauge(
    "webmon_retry_queue_size",
    "Retry records waiting for their next attempt",
)

IN_FLIGHT = Gauge(
    "webmon_in_flight_requests",
    "Batch sends currently awaiting the network",
)


class MetricsRegistry:
    """Structured access to the webmon metrics."""

    events_reported_total = EVENTS_REPORTED_TOTAL
    events_dropped_total = EVENTS_DROPPED_TOTAL
    batches_total = BATCHES_TOTAL
    queue_depth = QUEUE_DEPTH
    retry_queue_size = RETRY_QUEUE_SIZE
    in_flight = IN_FLIGHT


metrics_registry = MetricsRegistry()
