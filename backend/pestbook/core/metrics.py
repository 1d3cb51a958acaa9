"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

from pestbook.core.errors import DomainError

# Booking lifecycle metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking lifecycle operations',
    ['transition', 'outcome']  # outcome: success, conflict, forbidden, not_found, invalid, error
)

booking_transition_latency = Histogram(
    'booking_transition_latency_seconds',
    'Latency of a booking lifecycle transaction',
    ['transition'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Lead promotion metrics
lead_promotions = Counter(
    'lead_promotions_total',
    'Customer signups, split by whether a lead was merged',
    ['result']  # promoted, plain, failed
)

# Database metrics
db_rollbacks = Counter(
    'db_rollbacks_total',
    'Transactions rolled back',
    ['reason']  # domain, integrity, store, unexpected
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_transition(transition: str, outcome: str):
    """Record a lifecycle operation outcome."""
    booking_transitions.labels(transition=transition, outcome=outcome).inc()


def record_lead_promotion(result: str):
    lead_promotions.labels(result=result).inc()


def record_rollback(reason: str):
    db_rollbacks.labels(reason=reason).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


@contextmanager
def track_transition(transition: str):
    """
    Time a lifecycle operation and count its outcome.

    Usage:
        with track_transition("accept"):
            ...
    """
    start = time.perf_counter()
    try:
        yield
    except DomainError as exc:
        record_transition(transition, exc.outcome)
        raise
    except Exception:
        record_transition(transition, "error")
        raise
    else:
        record_transition(transition, "success")
    finally:
        booking_transition_latency.labels(transition=transition).observe(time.perf_counter() - start)
