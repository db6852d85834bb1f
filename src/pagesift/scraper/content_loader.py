"""Dynamic content detection and scroll-based hydration.

:func:`evaluate_content_richness` takes a side-effect-free snapshot of how
much content a rendered page holds; the extraction pipeline uses it to
decide whether to scroll.  :func:`ensure_loaded` waits for caller-supplied
target selectors and/or scrolls the page incrementally so lazy-loaded
content renders.

Nothing in this module raises: a failed wait or scroll is logged and the
page is treated as whatever has rendered so far.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

logger = logging.getLogger(__name__)

_RICHNESS_JS = """
() => {
    const body = document.body;
    const text = body ? (body.innerText || '') : '';
    const count = (selector) => document.querySelectorAll(selector).length;
    const paragraphs = count('p');
    const headings = count('h1, h2, h3, h4, h5, h6');
    const contentDivs = count('div:not(:empty)');
    const links = count('a');
    const images = count('img');
    return {
        textLength: text.length,
        elementCount: paragraphs + headings + contentDivs + links + images,
        paragraphs,
        headings,
        contentDivs,
        links,
        images,
    };
}
"""


@dataclass(frozen=True)
class ContentStats:
    """Point-in-time richness snapshot of a rendered page.  Never persisted."""

    text_length: int = 0
    element_count: int = 0
    paragraphs: int = 0
    headings: int = 0
    content_divs: int = 0
    links: int = 0
    images: int = 0


async def evaluate_content_richness(page: Page) -> ContentStats:
    """Measure visible text length and structural element counts.

    Returns:
        The snapshot, or an all-zero snapshot if evaluation fails.
    """
    try:
        raw = await page.evaluate(_RICHNESS_JS)
        return ContentStats(
            text_length=int(raw.get("textLength", 0)),
            element_count=int(raw.get("elementCount", 0)),
            paragraphs=int(raw.get("paragraphs", 0)),
            headings=int(raw.get("headings", 0)),
            content_divs=int(raw.get("contentDivs", 0)),
            links=int(raw.get("links", 0)),
            images=int(raw.get("images", 0)),
        )
    except (PlaywrightError, AttributeError, TypeError, ValueError) as exc:
        logger.warning("scraper: content richness evaluation failed: %s", exc)
        return ContentStats()


async def wait_for_any_selector(
    page: Page, selectors: Sequence[str], timeout_ms: int
) -> Optional[str]:
    """Wait until any of ``selectors`` is visible.

    All selectors are awaited concurrently; the first to appear wins and
    the remaining waits are cancelled.

    Returns:
        The selector that appeared first, or ``None`` if none did within
        ``timeout_ms``.
    """

    async def _wait(selector: str) -> Optional[str]:
        try:
            await page.wait_for_selector(selector, state="visible", timeout=timeout_ms)
        except PlaywrightError as exc:
            logger.debug("scraper: selector %r not visible: %s", selector, exc)
            return None
        return selector

    if not selectors:
        return None
    tasks = [asyncio.create_task(_wait(selector)) for selector in selectors]
    try:
        for next_done in asyncio.as_completed(tasks):
            found = await next_done
            if found is not None:
                return found
        return None
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def scroll_to_bottom(
    page: Page,
    *,
    wait_time_ms: int = 200,
    extra_wait_ms: int = 1_000,
    steps: int = 5,
) -> None:
    """Scroll down in ``steps`` increments, then jump to the very bottom.

    Each step is at least one viewport tall.  The pauses between steps add
    up to ``wait_time_ms``; ``extra_wait_ms`` is waited after the final
    scroll so late content can render.
    """
    steps = max(steps, 1)
    try:
        body_height = int(
            await page.evaluate("() => document.body ? document.body.scrollHeight : 0")
        )
        viewport_height = int(await page.evaluate("() => window.innerHeight"))
        step_size = max(body_height // steps, viewport_height)
        pause = wait_time_ms / steps / 1000

        logger.debug(
            "scraper: scrolling %d steps of %dpx (page height %dpx)",
            steps,
            step_size,
            body_height,
        )
        for index in range(steps):
            await page.evaluate("(y) => window.scrollTo(0, y)", step_size * (index + 1))
            await asyncio.sleep(pause)

        await page.evaluate(
            "() => { if (document.body) window.scrollTo(0, document.body.scrollHeight); }"
        )
        await asyncio.sleep(extra_wait_ms / 1000)
    except (PlaywrightError, TypeError, ValueError) as exc:
        logger.warning("scraper: scrolling failed, continuing with rendered content: %s", exc)


async def ensure_loaded(
    page: Page,
    *,
    wait_time_ms: int = 200,
    extra_wait_ms: int = 1_000,
    target_selectors: Sequence[str] = (),
    selector_timeout_ms: int = 5_000,
    force_scroll: bool = False,
    scroll_steps: int = 5,
) -> bool:
    """Give dynamic content a chance to render.

    Args:
        page: Page to work on.
        wait_time_ms: Total pause spread across the scroll steps.
        extra_wait_ms: Pause after the final scroll.
        target_selectors: Selectors to wait for (first match wins).
        selector_timeout_ms: Bound on each selector wait.
        force_scroll: Scroll the page even if a target selector appeared.
        scroll_steps: Number of incremental scroll steps.

    Returns:
        ``True`` if a target selector appeared, ``False`` otherwise
        (including when no selectors were given).
    """
    found: Optional[str] = None
    if target_selectors:
        found = await wait_for_any_selector(page, target_selectors, selector_timeout_ms)
        if found is not None:
            logger.debug("scraper: target selector %r found", found)
        else:
            logger.info("scraper: no target selectors found, continuing")

    if force_scroll:
        await scroll_to_bottom(
            page,
            wait_time_ms=wait_time_ms,
            extra_wait_ms=extra_wait_ms,
            steps=scroll_steps,
        )
    return found is not None
