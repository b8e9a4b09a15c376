"""Prometheus metrics for push initiation, callback reconciliation and loan activity"""

from prometheus_client import Counter, Histogram

# Push metrics
stk_push_counter = Counter(
    "chama_stk_push_total",
    "STK push initiations",
    ["outcome"],  # accepted | rejected | auth_failed | unavailable | invalid
)

gateway_latency_histogram = Histogram(
    "mpesa_gateway_latency_seconds",
    "Daraja API response time",
    ["operation"],  # authenticate | stk_push
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Callback metrics
callback_counter = Counter(
    "chama_callback_total",
    "STK callbacks handled",
    ["outcome"],  # recorded | duplicate | payment_failed | malformed | member_not_found | storage_error
)

unmatched_payment_counter = Counter(
    "chama_unmatched_payments_total",
    "Payments received that could not be attributed to a member",
)

# Loan metrics
loan_transition_counter = Counter(
    "chama_loan_transitions_total",
    "Loan status transitions",
    ["transition"],  # opened | approved | rejected | repaid | completed
)

loan_update_conflict_counter = Counter(
    "chama_loan_update_conflicts_total",
    "Loan compare-and-swap updates that lost a race and were retried",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_callback(kind: str) -> None:
    """Record one callback outcome"""
    callback_counter.labels(outcome=kind).inc()
    if kind == "member_not_found":
        unmatched_payment_counter.inc()
