"""Bounded pool of isolated Playwright browser sessions.

One Chromium instance is shared by every extraction in the process.  Each
extraction attempt acquires its own :class:`Session` (a fresh browser
context, page and Chrome DevTools Protocol channel) and releases it when
done.  The number of live sessions never exceeds
``Settings.max_concurrent_sessions``; acquisition above the cap fails
immediately with :class:`~pagesift.core.exceptions.CapacityExceededError`
instead of queueing.

The engine is started lazily by :meth:`SessionManager.get_engine`.
Concurrent first callers share a single in-flight launch.  If Chromium
disconnects, the handle is discarded, sessions bound to it are dropped
from the active set, and the next call relaunches.

Install the browser binary once per machine::

    playwright install chromium
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Browser, BrowserContext, CDPSession, Dialog, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from pagesift.config.settings import Settings
from pagesift.core.exceptions import CapacityExceededError, EngineLaunchError, NavigationError
from pagesift.scraper.request_filter import build_route_handler

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Chromium flags tuned for low-memory headless rendering.
CHROMIUM_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-audio-output",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-component-extensions-with-background-pages",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-features=TranslateUI,MediaRouter",
    "--disable-hang-monitor",
    "--disable-ipc-flooding-protection",
    "--disable-notifications",
    "--disable-popup-blocking",
    "--disable-prompt-on-repost",
    "--disable-renderer-backgrounding",
    "--disable-sync",
    "--disable-webgl",
    "--disable-remote-fonts",
    "--disable-databases",
    "--disable-webrtc",
    "--ignore-certificate-errors",
    "--no-default-browser-check",
    "--no-first-run",
    "--no-pings",
    "--mute-audio",
    "--no-zygote",
    "--js-flags=--max-old-space-size=512",
    "--aggressive-cache-discard",
    "--enable-low-end-device-mode",
)

#: Headers sent with every request of every session.
EXTRA_HTTP_HEADERS: dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

#: Installed before any page script runs: silences blocking dialogs and
#: the console.
HARDENING_SCRIPT = """
(() => {
    window.alert = () => {};
    window.confirm = () => true;
    window.prompt = () => null;
    const noop = () => {};
    ['log', 'debug', 'info', 'warn', 'error'].forEach((method) => {
        console[method] = noop;
    });
})();
"""

_BODY_READY_JS = "() => document.body !== null && document.body.innerHTML.length > 0"

#: Error message fragments that identify transient navigation failures.
_TRANSIENT_MARKERS: tuple[str, ...] = ("net::", "timeout", "protocol error")

Launcher = Callable[[], Awaitable[Browser]]


def is_transient_navigation_error(message: str) -> bool:
    """Return ``True`` for network, timeout and protocol-level failures."""
    lowered = message.lower()
    return any(marker in lowered for marker in _TRANSIENT_MARKERS)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Session:
    """One isolated browsing context bound to the shared engine.

    Attributes:
        id: Unique handle.
        page: The Playwright page used for navigation and evaluation.
        context: The browser context isolating cookies and cache.
        browser: Engine the session belongs to.
        navigation_timeout_ms: Hard per-navigation timeout.
        cdp: DevTools Protocol channel, attached during preparation.
        created_at: Creation time (UTC).
    """

    id: str
    page: Page
    context: BrowserContext
    browser: Browser
    navigation_timeout_ms: int
    cdp: Optional[CDPSession] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    closed: bool = False


async def _dismiss_dialog(dialog: Dialog) -> None:
    try:
        await dialog.dismiss()
    except PlaywrightError as exc:
        logger.debug("scraper: dialog dismissal failed: %s", exc)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Owns the shared Chromium engine and the bounded set of live sessions.

    Args:
        settings: Service settings (cap, timeouts, viewport, headless flag).
        launcher: Optional coroutine function returning a connected
            :class:`~playwright.async_api.Browser`.  Defaults to launching
            Chromium through ``async_playwright``.
    """

    def __init__(self, settings: Settings, *, launcher: Optional[Launcher] = None) -> None:
        self._settings = settings
        self._limit = settings.max_concurrent_sessions
        self._launcher: Launcher = launcher or self._launch_chromium
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._init_task: Optional[asyncio.Task[Browser]] = None
        self._active: dict[str, Session] = {}
        self._pending = 0

    @property
    def active_count(self) -> int:
        """Number of live sessions."""
        return len(self._active)

    @property
    def limit(self) -> int:
        """Configured session cap."""
        return self._limit

    # ------------------------------------------------------------------
    # Engine lifecycle
    # ------------------------------------------------------------------

    async def get_engine(self) -> Browser:
        """Return the shared engine, launching it on first use.

        Concurrent callers during startup await the same launch.  A
        disconnected engine is discarded and relaunched.

        Raises:
            EngineLaunchError: If Chromium cannot be started.
        """
        browser = self._browser
        if browser is not None:
            if browser.is_connected():
                return browser
            logger.warning("scraper: browser engine unresponsive, relaunching")
            self._discard_engine(browser)

        if self._init_task is None:
            self._init_task = asyncio.create_task(self._start_engine())
        task = self._init_task
        try:
            return await asyncio.shield(task)
        except EngineLaunchError:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _start_engine(self) -> Browser:
        try:
            browser = await self._launcher()
        except Exception as exc:
            logger.error("scraper: browser engine launch failed: %s", exc)
            raise EngineLaunchError(f"Browser engine failed to start: {exc}") from exc
        browser.on("disconnected", self._on_disconnected)
        self._browser = browser
        logger.info("scraper: browser engine ready")
        return browser

    async def _launch_chromium(self) -> Browser:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=self._settings.headless,
                args=list(CHROMIUM_ARGS),
            )
        except Exception:
            await playwright.stop()
            raise
        self._playwright = playwright
        return browser

    def _on_disconnected(self, browser: Browser) -> None:
        if self._browser is browser:
            logger.warning("scraper: browser engine disconnected")
            self._discard_engine(browser)

    def _discard_engine(self, browser: Browser) -> None:
        """Forget ``browser`` and fail every session bound to it."""
        self._browser = None
        self._init_task = None
        orphaned = [s for s in self._active.values() if s.browser is browser]
        for session in orphaned:
            session.closed = True
            self._active.pop(session.id, None)
        if orphaned:
            logger.warning("scraper: dropped %d sessions of a dead engine", len(orphaned))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def acquire(self, *, block_images: bool = False) -> Session:
        """Create a fresh, hardened session.

        Args:
            block_images: Abort image requests for this session.

        Returns:
            A session registered in the active set.

        Raises:
            CapacityExceededError: If the session cap is reached.
            EngineLaunchError: If the engine cannot be started.
        """
        # The slot is reserved before the first await so concurrent
        # acquires can never overshoot the cap.
        if len(self._active) + self._pending >= self.limit:
            raise CapacityExceededError(self.limit)
        self._pending += 1
        context: Optional[BrowserContext] = None
        try:
            browser = await self.get_engine()
            context = await browser.new_context(
                viewport={
                    "width": self._settings.viewport_width,
                    "height": self._settings.viewport_height,
                },
                extra_http_headers=EXTRA_HTTP_HEADERS,
            )
            page = await context.new_page()
            session = Session(
                id=uuid.uuid4().hex,
                page=page,
                context=context,
                browser=browser,
                navigation_timeout_ms=self._settings.navigation_timeout_ms,
            )
            self._active[session.id] = session
        except Exception:
            if context is not None:
                await self._best_effort("-", "close context", context.close)
            raise
        finally:
            self._pending -= 1

        try:
            await self._prepare(session, block_images=block_images)
        except Exception:
            await self.release(session)
            raise
        logger.debug("scraper: session %s acquired (%d active)", session.id, self.active_count)
        return session

    async def _prepare(self, session: Session, *, block_images: bool) -> None:
        page = session.page
        session.cdp = await session.context.new_cdp_session(page)
        await page.route("**/*", build_route_handler(block_images=block_images))
        await page.add_init_script(HARDENING_SCRIPT)
        page.set_default_navigation_timeout(session.navigation_timeout_ms)
        page.set_default_timeout(session.navigation_timeout_ms)
        page.on("dialog", _dismiss_dialog)

    async def release(self, session: Session) -> None:
        """Destroy ``session``.  Idempotent; never raises.

        Clears the session's cache and cookies, detaches the DevTools
        channel, closes the page and context, then removes the session
        from the active set.  Each step is attempted independently.
        """
        if session.closed:
            self._active.pop(session.id, None)
            return
        session.closed = True

        cdp = session.cdp
        if cdp is not None:
            await self._best_effort(
                session.id, "clear cache", lambda: cdp.send("Network.clearBrowserCache")
            )
            await self._best_effort(
                session.id, "clear cookies", lambda: cdp.send("Network.clearBrowserCookies")
            )
            await self._best_effort(session.id, "detach cdp", cdp.detach)
        await self._best_effort(session.id, "close page", session.page.close)
        await self._best_effort(session.id, "close context", session.context.close)
        self._active.pop(session.id, None)
        logger.debug("scraper: session %s released (%d active)", session.id, self.active_count)

    @staticmethod
    async def _best_effort(
        session_id: str, step: str, action: Callable[[], Awaitable[Any]]
    ) -> None:
        try:
            await action()
        except Exception as exc:  # noqa: BLE001
            logger.debug("scraper: session %s: %s failed: %s", session_id, step, exc)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def navigate(self, session: Session, url: str) -> None:
        """Load ``url`` and wait until the body has content.

        Raises:
            NavigationError: On timeout, network or protocol failure.
                ``retryable`` is set for transient failures.
        """
        page = session.page
        timeout_ms = session.navigation_timeout_ms
        started = time.perf_counter()
        try:
            await asyncio.wait_for(
                page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms),
                timeout=timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as exc:
            logger.warning("scraper: navigation timeout for %s", url)
            raise NavigationError(url, "Navigation timeout", retryable=True) from exc
        except PlaywrightError as exc:
            logger.warning("scraper: failed to load %s: %s", url, exc.message)
            raise NavigationError(
                url, exc.message, retryable=is_transient_navigation_error(exc.message)
            ) from exc

        elapsed = time.perf_counter() - started
        logger.info("scraper: loaded %s (%.2fs)", url, elapsed)
        if page.url and page.url != url:
            logger.info("scraper: %s redirected to %s", url, page.url)

        try:
            await page.wait_for_function(
                _BODY_READY_JS, timeout=self._settings.content_ready_timeout_ms
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, "Timeout waiting for page content", retryable=True) from exc
        except PlaywrightError as exc:
            raise NavigationError(
                url, exc.message, retryable=is_transient_navigation_error(exc.message)
            ) from exc

    # ------------------------------------------------------------------
    # Shutdown / diagnostics
    # ------------------------------------------------------------------

    async def cleanup(self) -> None:
        """Close every session and the engine, and clear internal state."""
        sessions = list(self._active.values())
        await asyncio.gather(*(self.release(s) for s in sessions))

        task, self._init_task = self._init_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        browser, self._browser = self._browser, None
        if browser is not None:
            await self._best_effort("-", "close browser", browser.close)
        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            await self._best_effort("-", "stop playwright", playwright.stop)

        self._active.clear()
        logger.info("scraper: session manager cleaned up (%d sessions closed)", len(sessions))

    async def health(self) -> dict[str, Any]:
        """Report engine connectivity and session usage."""
        try:
            await self.get_engine()
        except EngineLaunchError as exc:
            return {"status": "unhealthy", "error": str(exc)}
        return {
            "status": "healthy",
            "browser": "connected",
            "activeSessions": self.active_count,
            "maxSessions": self.limit,
        }
