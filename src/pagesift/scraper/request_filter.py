"""Per-session network request filtering.

Every session routes all requests through :func:`build_route_handler`,
which aborts requests that cannot contribute text to the extracted
article: fonts, media, stylesheets, tracker and analytics hosts, and
known non-content file extensions.  Navigation documents are always
allowed.  Scripts are allowed unless the file name suggests cookie-consent
tooling or the script is served from a tracker host.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Route

logger = logging.getLogger(__name__)

#: Resource types that never carry article content.
BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset(
    {
        "font",
        "media",
        "texttrack",
        "manifest",
        "stylesheet",
        "ping",
        "beacon",
        "csp_report",
        "object",
        "imageset",
        "eventsource",
    }
)

#: Host substrings of advertising, analytics and tracking services.
BLOCKED_HOST_MARKERS: tuple[str, ...] = (
    "google-analytics",
    "doubleclick.net",
    "facebook",
    "googleadservices",
    "googletagmanager",
    "googlesyndication",
    "adnxs.com",
    "advertising.com",
    "cdn.onthe.io",
    "taboola.com",
    "hotjar.com",
    "analytics",
    "tracker",
    "tracking",
    "metrics",
    "adserver",
    "pixel",
    "collect",
)

#: File extensions (matched against the URL path) that are never content.
BLOCKED_EXTENSIONS: tuple[str, ...] = (
    ".mp4",
    ".webm",
    ".ogg",
    ".mp3",
    ".wav",
    ".ttf",
    ".woff",
    ".woff2",
    ".eot",
    ".otf",
    ".css",
    ".scss",
    ".less",
    ".pdf",
    ".zip",
    ".tar",
    ".gz",
    ".ico",
    ".cur",
)


def _is_tracker_host(host: str) -> bool:
    return any(marker in host for marker in BLOCKED_HOST_MARKERS)


def should_block(resource_type: str, url: str, *, block_images: bool) -> bool:
    """Decide whether a request should be aborted.

    Args:
        resource_type: Playwright resource type (``"document"``, ``"script"``,
            ``"image"``, ...).
        url: Request URL.
        block_images: ``True`` when the caller asked for images to be removed.

    Returns:
        ``True`` if the request should be aborted.
    """
    if resource_type == "document":
        return False

    try:
        parsed = urlparse(url)
    except ValueError:
        return True
    host = (parsed.hostname or "").lower()
    path = parsed.path.lower()

    if resource_type == "script":
        filename = path.rsplit("/", 1)[-1]
        return "cookie" in filename or _is_tracker_host(host)

    if resource_type == "image" and block_images:
        return True
    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    if _is_tracker_host(host):
        return True
    return path.endswith(BLOCKED_EXTENSIONS)


def build_route_handler(*, block_images: bool) -> Callable[[Route], Awaitable[None]]:
    """Return a ``page.route("**/*", ...)`` handler applying :func:`should_block`."""

    async def _handle(route: Route) -> None:
        request = route.request
        try:
            if should_block(request.resource_type, request.url, block_images=block_images):
                await route.abort()
            else:
                await route.continue_()
        except PlaywrightError as exc:
            # The page may close while requests are still in flight.
            logger.debug("scraper: route handling failed for %s: %s", request.url, exc)

    return _handle
