"""FastAPI application factory and entry point.

Creates the application instance, registers the request-logging middleware
and the exception handlers, mounts the route routers, and wires the
long-lived services through the lifespan hook.

Usage::

    # Development server (from project root)
    uvicorn pagesift.api.main:app --reload
"""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from pagesift.config.settings import get_settings
from pagesift.core.exceptions import (
    CapacityExceededError,
    InvalidURLError,
    JobValidationError,
    PageSiftError,
)
from pagesift.core.logging_config import configure_logging, request_id_var
from pagesift.crawl.jobs import CrawlOrchestrator
from pagesift.scraper.pipeline import ExtractionPipeline
from pagesift.scraper.rules import get_rule_store
from pagesift.scraper.session_manager import SessionManager

# ---------------------------------------------------------------------------
# Logging configuration: applied once at module import time so that log
# records emitted during app construction are captured correctly.
# The log level is re-applied inside create_app() after settings are loaded.
# ---------------------------------------------------------------------------

configure_logging("INFO")

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Build the shared services on startup and drain them on shutdown.

    The browser itself is launched lazily by the first session request.
    Jobs left ``pending`` or ``processing`` by a previous run are resumed.
    """
    settings = get_settings()
    sessions = SessionManager(settings)
    pipeline = ExtractionPipeline(sessions, get_rule_store())
    orchestrator = CrawlOrchestrator(pipeline, settings)

    application.state.sessions = sessions
    application.state.pipeline = pipeline
    application.state.orchestrator = orchestrator

    resumed = await orchestrator.resume_interrupted_jobs()
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        debug=settings.debug,
        log_level=settings.log_level,
        max_sessions=settings.max_concurrent_sessions,
        resumed_jobs=len(resumed),
    )
    try:
        yield
    finally:
        await orchestrator.shutdown()
        await sessions.cleanup()
        logger.info("application_shutdown")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse({"error": error, "details": str(exc)}, status_code=status_code)


async def _handle_invalid_url(request: Request, exc: InvalidURLError) -> JSONResponse:
    return _error_response(400, "Invalid URL", exc)


async def _handle_job_validation(request: Request, exc: JobValidationError) -> JSONResponse:
    return _error_response(400, "Invalid job configuration", exc)


async def _handle_validation(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(400, "Invalid request", exc)


async def _handle_capacity(request: Request, exc: CapacityExceededError) -> JSONResponse:
    return _error_response(503, "Service at capacity", exc)


async def _handle_pagesift_error(request: Request, exc: PageSiftError) -> JSONResponse:
    logger.error("request_failed", error_type=type(exc).__name__, error=str(exc))
    return _error_response(500, "Conversion failed", exc)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    call ``create_app()`` with a patched settings environment before the
    singleton is created.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()

    # Re-apply logging configuration with the correct level from settings.
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description=(
            "Renders web pages in headless Chromium and returns their main "
            "content as markdown, one page at a time or as background crawl jobs."
        ),
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every incoming request and its response status + duration.

        Attaches a unique ``request_id`` to the structlog context so that all
        log lines emitted during a request can be correlated.
        """
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=elapsed_ms,
            )

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Exception handlers -------------------------------------------------

    application.add_exception_handler(InvalidURLError, _handle_invalid_url)
    application.add_exception_handler(JobValidationError, _handle_job_validation)
    application.add_exception_handler(ValidationError, _handle_validation)
    application.add_exception_handler(CapacityExceededError, _handle_capacity)
    application.add_exception_handler(PageSiftError, _handle_pagesift_error)

    # ---- Routers --------------------------------------------------------------

    from pagesift.api.routes import convert, crawl, health  # noqa: PLC0415

    application.include_router(health.router)
    application.include_router(convert.router)
    application.include_router(crawl.router)

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn.
"""
