"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
Request-level options (see :mod:`pagesift.core.schemas.extraction`) take
precedence over these values; these values take precedence over the
built-in defaults.  Never call ``os.getenv`` directly elsewhere in the
codebase.

Usage::

    from pagesift.config.settings import get_settings

    settings = get_settings()
    cap = settings.max_concurrent_sessions
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service-wide configuration backed by environment variables and an optional .env file.

    Every field has a default, so the service starts with an empty
    environment.  Timeouts and pauses suffixed ``_ms`` (or documented as
    milliseconds) follow the browser engine's millisecond convention;
    HTTP client timeouts are in seconds.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "PageSift"
    """Human-readable application name shown in the OpenAPI docs."""

    debug: bool = False
    """Enable FastAPI debug mode and verbose error responses.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    # ------------------------------------------------------------------
    # Browser sessions
    # ------------------------------------------------------------------

    max_concurrent_sessions: int = 10
    """Hard cap on live browser sessions shared by every request and job.

    Acquisition above the cap is rejected outright rather than queued.
    """

    navigation_timeout_ms: int = 10_000
    """Per-navigation timeout applied to every session."""

    content_ready_timeout_ms: int = 30_000
    """How long to wait for a non-empty ``<body>`` after navigation."""

    viewport_width: int = 1024
    """Session viewport width in CSS pixels."""

    viewport_height: int = 768
    """Session viewport height in CSS pixels."""

    headless: bool = True
    """Run Chromium headless.  Only disable for local debugging."""

    # ------------------------------------------------------------------
    # Extraction defaults (overridable per request)
    # ------------------------------------------------------------------

    aggressive_cleaning: bool = True
    """Apply the boilerplate-removal rules and the markdown rule chain."""

    remove_images: bool = False
    """Drop images from the output.  ``False`` preserves them as placeholders."""

    min_content_length: int = 500
    """Markdown length (characters) below which the fallback stages kick in."""

    dynamic_content_timeout: int = 5_000
    """Per-selector wait (ms) when waiting for target selectors to appear."""

    scroll_wait_time: int = 200
    """Total pause (ms) spread across the incremental scroll steps."""

    extra_scroll_wait_time: int = 1_000
    """Pause (ms) after the final scroll-to-bottom."""

    scroll_steps: int = 5
    """Number of incremental scroll steps when hydrating lazy content."""

    max_retries: int = 2
    """Same-stage retries after a transient navigation failure."""

    rules_dir: Optional[Path] = None
    """Directory holding the JSON rule files.

    ``None`` selects the rule files bundled with the package.
    """

    # ------------------------------------------------------------------
    # Crawl jobs
    # ------------------------------------------------------------------

    reports_dir: Path = Path("crawl_reports")
    """Directory where job state is persisted as ``<job_id>.json``."""

    crawl_delay_ms: int = 5
    """Pause between two URLs of the same job."""

    sitemap_timeout: float = 30.0
    """HTTP timeout (seconds) for site-map downloads."""

    user_agent: str = "PageSift/1.0"
    """User-agent sent with site-map downloads."""

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    webhook_timeout: float = 30.0
    """HTTP timeout (seconds) for job result and progress webhooks."""

    simple_webhook_timeout: float = 10.0
    """Default HTTP timeout (seconds) for single-extraction webhooks."""


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Uses ``functools.lru_cache`` so that Pydantic Settings reads the environment
    and .env file exactly once per process lifetime.  In tests, call
    ``get_settings.cache_clear()`` after patching environment variables.

    Returns:
        Settings: The validated settings object.
    """
    return Settings()
