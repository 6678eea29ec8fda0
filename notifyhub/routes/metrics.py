"""
Prometheus metrics endpoint.

Exposes system metrics for monitoring. The delivery worker records into the
same registry and serves it with prometheus_client's own HTTP server.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Business Metrics - Notifications
# ============================================

notifications_accepted = Counter(
    'notifications_accepted_total',
    'Total notification requests persisted by the API'
)

notifications_sent = Counter(
    'notifications_sent_total',
    'Total notifications delivered to the email gateway'
)

notifications_failed = Counter(
    'notifications_failed_total',
    'Total failed delivery attempts',
    ['reason']
)

notifications_retried = Counter(
    'notifications_retried_total',
    'Total delivery retries scheduled by the worker'
)

notifications_dead_lettered = Counter(
    'notifications_dead_lettered_total',
    'Total messages moved to the dead-letter queue'
)

dlq_replayed = Counter(
    'dlq_replayed_total',
    'Total dead-letter entries republished',
    ['mode']
)

# ============================================
# Rate Limiting / Cache Metrics
# ============================================

rate_limit_exceeded = Counter(
    'rate_limit_exceeded_total',
    'Total requests blocked by rate limiting'
)

template_cache_requests = Counter(
    'template_cache_requests_total',
    'Template cache lookups',
    ['result']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_notifications_accepted(count: int):
    notifications_accepted.inc(count)


def track_notification_sent():
    notifications_sent.inc()


def track_notification_failed(reason: str):
    notifications_failed.labels(reason=reason).inc()


def track_notification_retried():
    notifications_retried.inc()


def track_dead_lettered():
    notifications_dead_lettered.inc()


def track_dlq_replayed(mode: str, count: int = 1):
    """Record dead-letter entries republished (mode: single or bulk)."""
    dlq_replayed.labels(mode=mode).inc(count)


def track_rate_limit_exceeded():
    rate_limit_exceeded.inc()


def track_cache_hit():
    template_cache_requests.labels(result="hit").inc()


def track_cache_miss():
    template_cache_requests.labels(result="miss").inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
