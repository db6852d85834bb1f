"""FastAPI dependency injection providers.

The long-lived services are built once by the application lifespan and
stored on ``app.state``; these providers hand them to route handlers.
Tests assign fakes to ``app.state`` directly.
"""

from __future__ import annotations

from fastapi import Request

from pagesift.crawl.jobs import CrawlOrchestrator
from pagesift.scraper.pipeline import ExtractionPipeline
from pagesift.scraper.session_manager import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """Return the shared browser session manager."""
    return request.app.state.sessions


def get_pipeline(request: Request) -> ExtractionPipeline:
    """Return the shared extraction pipeline."""
    return request.app.state.pipeline


def get_orchestrator(request: Request) -> CrawlOrchestrator:
    """Return the crawl job orchestrator."""
    return request.app.state.orchestrator
