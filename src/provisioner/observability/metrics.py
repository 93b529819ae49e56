"""Prometheus metrics for provisioning runs.

Usage::

    from provisioner.observability.metrics import RUNS_TOTAL

    RUNS_TOTAL.labels(outcome="completed").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

RUNS_TOTAL = Counter(
    "provisioner_runs_total",
    "Provisioning runs by final outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)

STEP_DURATION_SECONDS = Histogram(
    "provisioner_step_duration_seconds",
    "Time spent in a step's run, labelled by the action it returned.",
    labelnames=["step", "action"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
    registry=REGISTRY,
)

CLEANUP_FAILURES_TOTAL = Counter(
    "provisioner_cleanup_failures_total",
    "Compensating teardown calls that failed during rollback.",
    labelnames=["step"],
    registry=REGISTRY,
)

CONNECT_ATTEMPTS_TOTAL = Counter(
    "provisioner_connect_attempts_total",
    "Transport connect attempts by result.",
    labelnames=["result"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Return (body, content_type) for a Prometheus scrape."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
