"""Prometheus metrics for alert volume, detections, rollovers and storage health"""

from prometheus_client import Counter, Histogram

# Alert metrics
alert_counter = Counter(
    "sentinel_alerts_total",
    "Alerts raised by the finance engine",
    ["kind"],  # low_balance | large_withdrawal | price_change | missed_payment | budget_threshold | ...
)

# Detection metrics
recurring_detected_counter = Counter(
    "sentinel_recurring_detected_total",
    "Recurring payments and mandates newly detected",
    ["source"],  # recurring | direct_debit | standing_order
)

budget_rollover_counter = Counter(
    "sentinel_budget_rollovers_total",
    "Budgets rolled into a new period",
)

# Persistence
storage_failure_counter = Counter(
    "sentinel_storage_failures_total",
    "Failed state document loads and saves",
    ["operation"],  # load | save
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_alert(kind: str) -> None:
    alert_counter.labels(kind=kind).inc()


def record_detection(source: str) -> None:
    recurring_detected_counter.labels(source=source).inc()


def record_storage_failure(operation: str) -> None:
    storage_failure_counter.labels(operation=operation).inc()
