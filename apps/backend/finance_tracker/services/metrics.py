"""Prometheus counters for ledger mutations and domain errors."""

from __future__ import annotations

from prometheus_client import Counter

ledger_ops = Counter(
    "ledger_operations_total",
    "Ledger/category mutations by operation and outcome",
    labelnames=("op", "outcome"),
)

domain_errors = Counter(
    "domain_errors_total",
    "Domain errors rendered to HTTP clients, by error code",
    labelnames=("code",),
)

LEDGER_OPS = ("create_transaction", "update_transaction", "delete_transaction", "reconcile_balance")
ERROR_CODES = ("validation_error", "not_found", "invalid_category", "protected_resource", "conflict")


def record(op: str, outcome: str) -> None:
    ledger_ops.labels(op=op, outcome=outcome).inc()


def record_error(code: str) -> None:
    domain_errors.labels(code=code).inc()


def prime_metrics() -> None:
    """Initialize label series at startup so they appear in /metrics output."""
    for op in LEDGER_OPS:
        ledger_ops.labels(op=op, outcome="ok")
    for code in ERROR_CODES:
        domain_errors.labels(code=code)
