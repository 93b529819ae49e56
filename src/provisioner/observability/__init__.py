"""Observability infrastructure for provisioning runs.

Provides structured logging with run-ID correlation and Prometheus
metrics for run outcomes, step durations and rollback failures.

Quick start::

    from provisioner.observability import configure_logging, get_logger

    configure_logging()
    logger = get_logger(__name__)
"""

from .logging import bind_run_id, configure_logging, get_logger, run_id_ctx
from .metrics import metrics_text

__all__ = [
    "bind_run_id",
    "configure_logging",
    "get_logger",
    "metrics_text",
    "run_id_ctx",
]
