"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Availability metrics
slot_checks = Counter(
    'slot_checks_total',
    'Slot availability checks',
    ['result']  # free, taken
)

booking_writes = Counter(
    'booking_writes_total',
    'Booking create/update attempts',
    ['status']  # success, conflict, error
)

# Ledger metrics
transactions_recorded = Counter(
    'transactions_recorded_total',
    'Transactions written to the ledger',
    ['direction', 'status']
)

reconciliations = Counter(
    'reconciliations_total',
    'Reconciliation runs',
    ['aggregate', 'result']  # booking/purchase_order, ok/failed
)

reconciliation_latency = Histogram(
    'reconciliation_latency_seconds',
    'Time spent reconciling one aggregate',
    ['aggregate'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Optimistic locking
db_retries = Counter(
    'db_retry_attempts_total',
    'Database retry attempts due to version conflicts',
    ['operation']
)

# Purchase orders
purchase_orders_created = Counter(
    'purchase_orders_created_total',
    'Purchase orders created',
    ['source']  # manual, generated
)

po_generation_failures = Counter(
    'po_generation_failures_total',
    'Vendor POs skipped during generation'
)

# HTTP
request_latency = Histogram(
    'http_request_latency_seconds',
    'Request latency by method and status',
    ['method', 'status_code'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)


def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_slot_check(free: bool):
    slot_checks.labels(result="free" if free else "taken").inc()


def record_booking_write(status: str):
    """Status: success, conflict, error"""
    booking_writes.labels(status=status).inc()


def record_transaction(direction: str, status: str):
    transactions_recorded.labels(direction=direction, status=status).inc()


def record_reconciliation(aggregate: str, ok: bool):
    reconciliations.labels(aggregate=aggregate, result="ok" if ok else "failed").inc()


def record_retry(operation: str):
    db_retries.labels(operation=operation).inc()
