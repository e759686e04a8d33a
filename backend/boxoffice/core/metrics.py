"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Inventory metrics
reservation_attempts = Counter(
    'boxoffice_reservation_attempts_total',
    'Ticket reservation attempts',
    ['outcome']  # reserved, insufficient_stock, inactive, order_limit, failed
)

reservation_retries = Counter(
    'boxoffice_reservation_retries_total',
    'Conditional-update retries caused by concurrent writers',
    ['ledger']  # inventory, discount
)

reservation_latency = Histogram(
    'boxoffice_reservation_latency_seconds',
    'Ticket reservation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Discount metrics
discount_consumptions = Counter(
    'boxoffice_discount_consumptions_total',
    'Discount code validations',
    ['outcome']
)

# Purchase metrics
purchase_transitions = Counter(
    'boxoffice_purchase_transitions_total',
    'Purchase state transitions',
    ['status']  # pending, completed, failed
)

tickets_issued = Counter(
    'boxoffice_tickets_issued_total',
    'Tickets materialized from completed purchases'
)

# Door metrics
check_ins = Counter(
    'boxoffice_check_ins_total',
    'Ticket check-in attempts',
    ['outcome']  # checked_in, already_used, not_valid, not_found
)

# Integration metrics
webhook_deliveries = Counter(
    'boxoffice_webhook_deliveries_total',
    'Payment processor callbacks received',
    ['outcome']  # completed, failed, ignored, duplicate, rejected
)

notification_deliveries = Counter(
    'boxoffice_notification_deliveries_total',
    'Ticket artifact deliveries',
    ['outcome']  # sent, failed, skipped
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(outcome: str):
    reservation_attempts.labels(outcome=outcome).inc()


def record_retry(ledger: str):
    reservation_retries.labels(ledger=ledger).inc()


def record_discount(outcome: str):
    discount_consumptions.labels(outcome=outcome).inc()


def record_purchase_transition(status: str):
    purchase_transitions.labels(status=status).inc()


def record_check_in(outcome: str):
    check_ins.labels(outcome=outcome).inc()


def record_webhook(outcome: str):
    webhook_deliveries.labels(outcome=outcome).inc()


def record_notification(outcome: str):
    notification_deliveries.labels(outcome=outcome).inc()
