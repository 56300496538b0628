"""Prometheus metrics for deposits, maturity, loans and reconciliation webhook performance"""

from prometheus_client import Counter, Histogram

# Deposit metrics
deposit_counter = Counter(
    "savings_deposit_total",
    "Deposits processed",
    ["channel", "outcome"],  # external | wallet; pending_review | credited | rejected
)

plan_credit_failure_counter = Counter(
    "savings_plan_credit_failures_total",
    "Wallet debits whose plan credit did not commit",
)

# Subscription lifecycle
maturity_transition_counter = Counter(
    "savings_maturity_transitions_total",
    "Subscriptions moved from active to matured",
    ["plan_type"],
)

# Lending
loan_decision_counter = Counter(
    "savings_loan_decision_total",
    "Loan requests by outcome",
    ["outcome"],  # approved | pending_review | rejected
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Reconciliation webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_deposit(channel: str, outcome: str) -> None:
    deposit_counter.labels(channel=channel, outcome=outcome).inc()


def record_maturity(plan_type: str) -> None:
    maturity_transition_counter.labels(plan_type=plan_type).inc()


def record_loan_decision(outcome: str) -> None:
    loan_decision_counter.labels(outcome=outcome).inc()
