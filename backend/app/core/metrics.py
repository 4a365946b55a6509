"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['outcome']  # confirmed, event_not_found, no_tickets, already_booked, contention, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking transaction latency, lock wait included',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

cancellation_attempts = Counter(
    'cancellation_attempts_total',
    'Total cancellation attempts',
    ['outcome']  # cancelled, not_found, forbidden, already_cancelled, contention, error
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Transactions retried after a lock timeout or serialization failure',
    ['operation']  # create_booking, cancel_booking
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str):
    booking_attempts.labels(outcome=outcome).inc()


def record_cancellation_attempt(outcome: str):
    cancellation_attempts.labels(outcome=outcome).inc()


def record_db_retry(operation: str):
    """Record a contention retry. Operation: create_booking, cancel_booking"""
    db_retries.labels(operation=operation).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
