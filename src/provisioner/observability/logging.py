"""Structured logging configuration for provisioning runs.

Configures structlog for JSON-formatted, run-ID-correlated logging. Every
entry emitted while a run is executing carries that run's ``run_id``.

Usage::

    from provisioner.observability.logging import configure_logging, get_logger

    configure_logging(settings)  # Call once at process startup
    logger = get_logger(__name__)
    logger.info("step_entered", step="allocate-eip")
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

from ..settings import ProvisionerSettings

# Context variable for run-scoped correlation ID.
run_id_ctx: ContextVar[str | None] = ContextVar("run_id", default=None)

_configured = False


def _add_run_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Inject the current run_id from context into every log entry."""
    rid = run_id_ctx.get()
    if rid is not None:
        event_dict["run_id"] = rid
    return event_dict


@contextmanager
def bind_run_id(run_id: str) -> Iterator[str]:
    """Scope ``run_id`` to the enclosed block."""
    token = run_id_ctx.set(run_id)
    try:
        yield run_id
    finally:
        run_id_ctx.reset(token)


def configure_logging(
    settings: ProvisionerSettings | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure structlog and stdlib logging from ``settings``.

    ``settings.log_level`` sets the root level and ``settings.log_format``
    picks the renderer (``json`` lines or the ``console`` renderer). Without
    settings, ``ProvisionerSettings.from_env()`` is used. Only the first
    call takes effect unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    settings = settings or ProvisionerSettings.from_env()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_run_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Quiet noisy libraries.
    logging.getLogger("asyncssh").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
