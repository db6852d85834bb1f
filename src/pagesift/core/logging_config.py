"""Structured JSON logging configuration using structlog.

Call ``configure_logging()`` once at application startup (the FastAPI app
factory does this).  Modules then use either the stdlib logging API or
structlog directly:

Stdlib usage (scraper modules)::

    import logging
    logger = logging.getLogger(__name__)
    logger.info("scraper: navigated to %s", url)

Structlog usage (crawl jobs, HTTP adapter)::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("crawl_job_completed", job_id=job.id, total=job.total)

Two context variables are merged into every record when set: ``request_id``
(populated by the request-logging middleware) and ``job_id`` (populated by
the crawl orchestrator while a job's processing loop runs).
"""

from __future__ import annotations

import logging
import logging.config
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

# ---------------------------------------------------------------------------
# Context variables
# ---------------------------------------------------------------------------

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Per-request ID propagated from the HTTP middleware to log processors."""

job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)
"""Crawl job ID, set for the lifetime of a job's processing task."""


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "api_key",
    "apikey",
    "password",
    "secret",
    "token",
    "bearer",
    "authorization",
    "x-api-key",
    "cookie",
})
"""Lower-cased substrings that identify log event-dict keys whose values
must be redacted before the record reaches any renderer.  Webhook
descriptors carry caller-supplied headers, which routinely include bearer
tokens."""


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace values of secret-bearing keys with a redaction marker.

    Scans top-level keys and one level of nested ``dict`` values (e.g.
    ``headers={...}``).  Nested dicts are copied before redaction so the
    caller's own objects are never mutated.
    """
    redacted = "[REDACTED]"
    for key in list(event_dict.keys()):
        if any(secret in key.lower() for secret in _SECRET_SUBSTRINGS):
            event_dict[key] = redacted
            continue
        val = event_dict[key]
        if isinstance(val, dict):
            masked = dict(val)
            for nested_key in masked:
                if any(secret in str(nested_key).lower() for secret in _SECRET_SUBSTRINGS):
                    masked[nested_key] = redacted
            event_dict[key] = masked
    return event_dict


def _inject_context_ids(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Add ``request_id`` / ``job_id`` from their context variables if set.

    Runs after ``merge_contextvars`` so explicitly bound values win.
    """
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    jid = job_id_var.get()
    if jid is not None and "job_id" not in event_dict:
        event_dict["job_id"] = jid
    return event_dict


# ---------------------------------------------------------------------------
# Public configuration entry-point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog with JSON output for production.

    In production (log_level != ``"DEBUG"``), outputs newline-delimited JSON.
    In development (log_level == ``"DEBUG"``), uses structlog's
    ``ConsoleRenderer`` for human-readable coloured output.

    Standard fields on every record: ``timestamp`` (ISO 8601), ``level``,
    ``logger``, ``event`` and, when set, ``request_id`` / ``job_id``.

    Idempotent: previously attached root handlers are replaced, so calling
    it more than once (app factory, tests) never duplicates output.

    Args:
        log_level: Logging verbosity string.  Case-insensitive.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_ids,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=True,
        )
    else:
        final_renderer = structlog.processors.JSONRenderer()

    # Route ``logging.getLogger(__name__)`` records through the same chain.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # Playwright's driver and the HTTP client are chatty at INFO.
    if not is_development:
        for noisy_logger in ("uvicorn.access", "httpx", "httpcore", "asyncio"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
