"""Prometheus metrics for loans, coupons, recurring executions and payments"""

from prometheus_client import Counter, Histogram

# Loan metrics
schedule_counter = Counter(
    "finboard_amortization_schedules_total",
    "Amortization schedules computed",
    ["persisted"],  # true | false
)

# Coupon metrics
coupon_evaluation_counter = Counter(
    "finboard_coupon_evaluations_total",
    "Coupon evaluations by outcome",
    ["outcome"],  # valid | invalid | not_found
)

# Recurring metrics
recurring_execution_counter = Counter(
    "finboard_recurring_executions_total",
    "Recurring template executions",
    ["outcome"],  # executed | failed
)

# Payment metrics
payment_status_counter = Counter(
    "finboard_payment_status_transitions_total",
    "Subscription payment status transitions",
    ["status"],  # submitted | verified | approved | rejected
)

# Identity provider
identity_failures_counter = Counter(
    "identity_lookup_failures_total",
    "Failed identity provider lookups",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_coupon_evaluation(is_valid: bool) -> None:
    coupon_evaluation_counter.labels(outcome="valid" if is_valid else "invalid").inc()


def record_recurring_execution(succeeded: bool) -> None:
    recurring_execution_counter.labels(outcome="executed" if succeeded else "failed").inc()
