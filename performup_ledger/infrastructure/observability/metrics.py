"""Prometheus metrics for settlements, allocations, journal activity and audit webhook performance"""

from prometheus_client import Counter, Histogram

# Settlement metrics
payment_counter = Counter(
    "ledger_payments_total",
    "Payments recorded, validated or rejected",
    ["status"],  # PENDING_VALIDATION | VALIDATED | REJECTED
)

allocation_counter = Counter(
    "ledger_allocations_total",
    "Payment allocations created",
)

allocated_amount_counter = Counter(
    "ledger_allocated_cents_total",
    "Minor units allocated to schedules",
    ["currency"],
)

validation_alert_counter = Counter(
    "ledger_validation_alerts_total",
    "Business-rule alerts raised before a payment is committed",
    ["level", "code"],
)

# Journal metrics
journal_entry_counter = Counter(
    "ledger_journal_entries_total",
    "Transactions appended to the journal",
    ["type"],
)

# Audit webhook metrics
webhook_latency_histogram = Histogram(
    "audit_webhook_latency_seconds",
    "Audit webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "audit_webhook_failures_total",
    "Failed audit webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment_status(status: str) -> None:
    payment_counter.labels(status=status).inc()


def record_allocations(allocations) -> None:
    """Count created allocations and the allocated volume per currency"""
    for allocation in allocations:
        allocation_counter.inc()
        allocated_amount_counter.labels(currency=str(allocation.currency.value)).inc(allocation.amount)


def record_alerts(alerts) -> None:
    for alert in alerts:
        validation_alert_counter.labels(level=alert.level.value, code=alert.code).inc()


def record_journal_entry(transaction_type: str) -> None:
    journal_entry_counter.labels(type=transaction_type).inc()
