"""Application-wide exception hierarchy for PageSift.

All custom exceptions subclass ``PageSiftError``, enabling consistent error
handling and structured logging across the service.

Hierarchy::

    PageSiftError
    ├── InvalidURLError
    ├── BrowserError
    │   ├── EngineLaunchError
    │   ├── CapacityExceededError   (limit: int)
    │   └── NavigationError         (url: str, retryable: bool)
    ├── ConversionError
    ├── JobValidationError
    └── WebhookDeliveryError        (url: str, status_code: int | None)

Thin content is deliberately absent: a page below the minimum content
length advances the extraction fallback stages instead of raising.
"""

from __future__ import annotations


class PageSiftError(Exception):
    """Base class for all PageSift exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


class InvalidURLError(PageSiftError):
    """Raised when a caller-supplied URL cannot be parsed.

    Args:
        raw_url: The rejected input.
    """

    def __init__(self, raw_url: str) -> None:
        super().__init__(f"Invalid URL provided: {raw_url!r}")
        self.raw_url = raw_url


# ---------------------------------------------------------------------------
# Browser exceptions
# ---------------------------------------------------------------------------


class BrowserError(PageSiftError):
    """Base class for failures of the browser engine or its sessions."""


class EngineLaunchError(BrowserError):
    """Raised when the shared Chromium instance cannot be started."""


class CapacityExceededError(BrowserError):
    """Raised when every session slot is taken.

    Surfaced immediately and never retried by the extraction pipeline;
    the caller decides whether to try again later.

    Args:
        limit: The configured session cap.
    """

    def __init__(self, limit: int) -> None:
        super().__init__(f"Maximum concurrent sessions limit reached ({limit})")
        self.limit = limit


class NavigationError(BrowserError):
    """Raised when a page cannot be loaded.

    Args:
        url: The URL that failed to load.
        reason: Human-readable description of the failure.
        retryable: ``True`` for transient network, timeout and protocol
            failures that the pipeline may retry in the same stage.
    """

    def __init__(self, url: str, reason: str, *, retryable: bool) -> None:
        super().__init__(f"Navigation failed for {url}: {reason}")
        self.url = url
        self.reason = reason
        self.retryable = retryable


# ---------------------------------------------------------------------------
# Content exceptions
# ---------------------------------------------------------------------------


class ConversionError(PageSiftError):
    """Raised when HTML cannot be translated to markdown at all.

    Individual post-processing rule failures never raise; they are logged
    and skipped.
    """


# ---------------------------------------------------------------------------
# Crawl job exceptions
# ---------------------------------------------------------------------------


class JobValidationError(PageSiftError):
    """Raised synchronously when a crawl job has neither a site map nor URLs."""


class WebhookDeliveryError(PageSiftError):
    """Raised when a webhook endpoint cannot be reached or rejects the payload.

    Args:
        url: Webhook endpoint.
        message: Description of the failure.
        status_code: HTTP status returned by the endpoint, or ``None`` when
            no response was received.
    """

    def __init__(
        self,
        url: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"Webhook delivery to {url} failed: {message}")
        self.url = url
        self.message = message
        self.status_code = status_code
