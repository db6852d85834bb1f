"""Extraction pipeline: one URL in, one markdown document out.

Each attempt acquires a fresh session, navigates, optionally hydrates
dynamic content, reads metadata, prunes the DOM and converts it to
markdown.  Attempts are driven by a small finite state machine:

=========  ==========================================  ==================
Stage      Behaviour                                   On thin content
=========  ==========================================  ==================
INITIAL    scroll only if the page looks thin          advance to SCROLL
SCROLL     always scroll, aggressive cleaning          advance to RAW
RAW        always scroll, cleaning disabled            accept as-is
=========  ==========================================  ==================

"Thin" means the converted markdown is shorter than
``min_content_length``.  Independently, a transient navigation failure is
retried in the same stage up to ``max_retries`` times; the retry count is
shared by all stages of one extraction.  Capacity errors are never retried.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from pagesift.core.exceptions import NavigationError
from pagesift.core.schemas.extraction import ExtractionRequest
from pagesift.scraper.cleaner import clean_content
from pagesift.scraper.content_loader import ensure_loaded, evaluate_content_richness
from pagesift.scraper.converter import convert_to_markdown
from pagesift.scraper.metadata import extract_metadata, format_metadata
from pagesift.scraper.rules import RuleStore
from pagesift.scraper.session_manager import SessionManager

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fallback state machine
# ---------------------------------------------------------------------------


class Stage(enum.IntEnum):
    INITIAL = 0
    SCROLL = 1
    RAW = 2


@dataclass(frozen=True)
class FallbackState:
    stage: Stage = Stage.INITIAL
    retry_count: int = 0


def advance_on_thin_content(state: FallbackState) -> Optional[FallbackState]:
    """Next state after thin output, or ``None`` when already in the last stage."""
    if state.stage is Stage.RAW:
        return None
    return replace(state, stage=Stage(state.stage + 1))


def retry_on_navigation_failure(state: FallbackState, max_retries: int) -> Optional[FallbackState]:
    """Same-stage retry state, or ``None`` once ``max_retries`` is exhausted."""
    if state.retry_count >= max_retries:
        return None
    return replace(state, retry_count=state.retry_count + 1)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class ExtractionResult:
    """Outcome of a successful extraction.

    Attributes:
        url: The extracted URL.
        markdown: Converted page content.
        metadata: Raw page metadata.
        stage: Fallback stage that produced the content.
        attempts: Number of attempts, including retries and stage changes.
    """

    url: str
    markdown: str
    metadata: dict[str, str] = field(default_factory=dict)
    stage: Stage = Stage.INITIAL
    attempts: int = 1

    @property
    def formatted_metadata(self) -> str:
        return format_metadata(self.metadata)

    @property
    def document(self) -> str:
        """The full output document: URL, metadata, separator, content."""
        return f"URL: {self.url}\n\n{self.formatted_metadata}\n\n---\n\n{self.markdown}"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ExtractionPipeline:
    """Composes sessions, content loading, cleaning and conversion.

    Args:
        sessions: Shared session manager.
        rules: Rule store supplying cleaning and markdown rules.
    """

    def __init__(self, sessions: SessionManager, rules: RuleStore) -> None:
        self._sessions = sessions
        self._rules = rules

    async def extract(self, request: ExtractionRequest) -> ExtractionResult:
        """Extract ``request.url``, walking the fallback stages as needed.

        Raises:
            NavigationError: When navigation fails permanently or retries
                are exhausted.
            CapacityExceededError: When no session slot is free.
        """
        state = FallbackState()
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await self._attempt(request, state.stage)
            except NavigationError as exc:
                retry = (
                    retry_on_navigation_failure(state, request.max_retries)
                    if exc.retryable
                    else None
                )
                if retry is None:
                    raise
                logger.warning(
                    "scraper: retrying %s (%d/%d) after: %s",
                    request.url,
                    retry.retry_count,
                    request.max_retries,
                    exc.reason,
                )
                state = retry
                continue

            result.attempts = attempts
            if len(result.markdown) >= request.min_content_length:
                return result

            following = advance_on_thin_content(state)
            if following is None:
                logger.info(
                    "scraper: all fallback stages attempted for %s; returning best effort "
                    "(%d chars)",
                    request.url,
                    len(result.markdown),
                )
                return result
            logger.info(
                "scraper: %s produced %d chars (< %d), falling back to stage %d",
                request.url,
                len(result.markdown),
                request.min_content_length,
                following.stage,
            )
            state = following

    async def convert_url_to_markdown(self, request: ExtractionRequest) -> str:
        """Extract ``request.url`` and return the full output document."""
        return (await self.extract(request)).document

    async def _attempt(self, request: ExtractionRequest, stage: Stage) -> ExtractionResult:
        options = request if stage is not Stage.RAW else replace(request, aggressive_cleaning=False)
        session = await self._sessions.acquire(block_images=request.remove_images)
        try:
            await self._sessions.navigate(session, request.url)
            page = session.page

            initial = await evaluate_content_richness(page)
            force_scroll = stage >= Stage.SCROLL or initial.text_length < options.min_content_length
            if force_scroll or options.target_selectors:
                await ensure_loaded(
                    page,
                    wait_time_ms=options.scroll_wait_time,
                    extra_wait_ms=options.extra_scroll_wait_time,
                    target_selectors=options.target_selectors,
                    selector_timeout_ms=options.dynamic_content_timeout,
                    force_scroll=force_scroll,
                    scroll_steps=options.scroll_steps,
                )
            else:
                logger.debug(
                    "scraper: %s has %d chars of text, skipping scroll",
                    request.url,
                    initial.text_length,
                )

            metadata = await extract_metadata(page)
            html = await clean_content(page, options, self._rules.cleaning_rules())
        finally:
            await self._sessions.release(session)

        markdown = convert_to_markdown(
            html,
            aggressive_cleaning=options.aggressive_cleaning,
            remove_images=options.remove_images,
            chain=self._rules.markdown_rules(),
        )
        return ExtractionResult(url=request.url, markdown=markdown, metadata=metadata, stage=stage)
