"""Unit tests for the extraction pipeline and its fallback state machine.

The session manager is a mock and the per-stage helpers (richness probe,
loader, metadata, cleaning, conversion) are patched, so each test controls
exactly what every attempt produces.
"""

from __future__ import annotations

from contextlib import ExitStack
from typing import Any, Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pagesift.core.exceptions import CapacityExceededError, NavigationError
from pagesift.core.schemas.extraction import ExtractionRequest
from pagesift.scraper.content_loader import ContentStats
from pagesift.scraper.pipeline import (
    ExtractionPipeline,
    ExtractionResult,
    FallbackState,
    Stage,
    advance_on_thin_content,
    retry_on_navigation_failure,
)
from pagesift.scraper.rules import CleaningRuleSet

_URL = "https://x.test/a"


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestFallbackTransitions:
    def test_thin_content_advances_stage(self) -> None:
        assert advance_on_thin_content(FallbackState()) == FallbackState(Stage.SCROLL, 0)
        assert advance_on_thin_content(FallbackState(Stage.SCROLL, 1)) == FallbackState(
            Stage.RAW, 1
        )

    def test_last_stage_has_no_successor(self) -> None:
        assert advance_on_thin_content(FallbackState(Stage.RAW)) is None

    def test_retry_keeps_stage(self) -> None:
        assert retry_on_navigation_failure(FallbackState(Stage.SCROLL, 0), 2) == FallbackState(
            Stage.SCROLL, 1
        )

    def test_retries_exhausted(self) -> None:
        assert retry_on_navigation_failure(FallbackState(Stage.INITIAL, 2), 2) is None


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sessions() -> MagicMock:
    manager = MagicMock(name="sessions")
    session = MagicMock(name="session")
    manager.acquire = AsyncMock(return_value=session)
    manager.navigate = AsyncMock(return_value=None)
    manager.release = AsyncMock(return_value=None)
    return manager


@pytest.fixture
def rules() -> MagicMock:
    store = MagicMock(name="rules")
    store.cleaning_rules.return_value = CleaningRuleSet()
    store.markdown_rules.return_value = ()
    return store


@pytest.fixture
def stage_helpers() -> Iterator[dict[str, Any]]:
    """Patch the per-attempt helpers used by the pipeline."""
    module = "pagesift.scraper.pipeline"
    with ExitStack() as stack:
        mocks = {
            "richness": stack.enter_context(
                patch(
                    f"{module}.evaluate_content_richness",
                    new=AsyncMock(return_value=ContentStats(text_length=5000)),
                )
            ),
            "ensure_loaded": stack.enter_context(
                patch(f"{module}.ensure_loaded", new=AsyncMock(return_value=False))
            ),
            "metadata": stack.enter_context(
                patch(f"{module}.extract_metadata", new=AsyncMock(return_value={"title": "T"}))
            ),
            "clean": stack.enter_context(
                patch(f"{module}.clean_content", new=AsyncMock(return_value="<p>x</p>"))
            ),
            "convert": stack.enter_context(patch(f"{module}.convert_to_markdown")),
        }
        yield mocks


def _request(**overrides: Any) -> ExtractionRequest:
    defaults = {"url": _URL, "min_content_length": 100, "max_retries": 2}
    defaults.update(overrides)
    return ExtractionRequest(**defaults)


# ---------------------------------------------------------------------------
# Pipeline behaviour
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestExtract:
    async def test_rich_content_returns_after_first_attempt(
        self, sessions, rules, stage_helpers
    ) -> None:
        stage_helpers["convert"].return_value = "x" * 150
        result = await ExtractionPipeline(sessions, rules).extract(_request())

        assert result.stage is Stage.INITIAL
        assert result.attempts == 1
        assert result.metadata == {"title": "T"}
        stage_helpers["ensure_loaded"].assert_not_awaited()
        sessions.release.assert_awaited_once()

    async def test_thin_content_reaches_raw_stage_with_output(
        self, sessions, rules, stage_helpers
    ) -> None:
        stage_helpers["convert"].side_effect = ["a", "bb", "ccc"]
        result = await ExtractionPipeline(sessions, rules).extract(_request())

        assert result.stage is Stage.RAW
        assert result.markdown == "ccc"
        assert result.attempts == 3
        assert sessions.acquire.await_count == 3
        assert sessions.release.await_count == 3

        # Stages 1 and 2 always scroll.
        scrolls = [c.kwargs["force_scroll"] for c in stage_helpers["ensure_loaded"].await_args_list]
        assert scrolls == [True, True]
        # Only the last stage disables aggressive cleaning.
        cleaning = [c.args[1].aggressive_cleaning for c in stage_helpers["clean"].await_args_list]
        assert cleaning == [True, True, False]

    async def test_thin_initial_text_scrolls_in_first_stage(
        self, sessions, rules, stage_helpers
    ) -> None:
        stage_helpers["richness"].return_value = ContentStats(text_length=10)
        stage_helpers["convert"].return_value = "x" * 150
        await ExtractionPipeline(sessions, rules).extract(_request())
        assert stage_helpers["ensure_loaded"].await_args.kwargs["force_scroll"] is True

    async def test_target_selectors_are_awaited_without_forced_scroll(
        self, sessions, rules, stage_helpers
    ) -> None:
        stage_helpers["convert"].return_value = "x" * 150
        await ExtractionPipeline(sessions, rules).extract(_request(target_selectors=("main",)))
        call = stage_helpers["ensure_loaded"].await_args
        assert call.kwargs["target_selectors"] == ("main",)
        assert call.kwargs["force_scroll"] is False

    async def test_transient_navigation_failure_is_retried(
        self, sessions, rules, stage_helpers
    ) -> None:
        sessions.navigate.side_effect = [
            NavigationError(_URL, "net::ERR_CONNECTION_RESET", retryable=True),
            None,
        ]
        stage_helpers["convert"].return_value = "x" * 150
        result = await ExtractionPipeline(sessions, rules).extract(_request())

        assert result.stage is Stage.INITIAL
        assert result.attempts == 2
        assert sessions.release.await_count == 2

    async def test_retries_are_capped(self, sessions, rules, stage_helpers) -> None:
        sessions.navigate.side_effect = NavigationError(_URL, "Navigation timeout", retryable=True)
        with pytest.raises(NavigationError):
            await ExtractionPipeline(sessions, rules).extract(_request(max_retries=2))
        assert sessions.navigate.await_count == 3

    async def test_permanent_navigation_failure_is_not_retried(
        self, sessions, rules, stage_helpers
    ) -> None:
        sessions.navigate.side_effect = NavigationError(_URL, "invalid URL", retryable=False)
        with pytest.raises(NavigationError):
            await ExtractionPipeline(sessions, rules).extract(_request())
        assert sessions.navigate.await_count == 1

    async def test_capacity_errors_are_not_retried(self, sessions, rules, stage_helpers) -> None:
        sessions.acquire.side_effect = CapacityExceededError(10)
        with pytest.raises(CapacityExceededError):
            await ExtractionPipeline(sessions, rules).extract(_request())
        assert sessions.acquire.await_count == 1

    async def test_session_released_when_cleaning_fails(
        self, sessions, rules, stage_helpers
    ) -> None:
        stage_helpers["metadata"].side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await ExtractionPipeline(sessions, rules).extract(_request())
        sessions.release.assert_awaited_once()

    async def test_convert_url_to_markdown_returns_document(
        self, sessions, rules, stage_helpers
    ) -> None:
        stage_helpers["convert"].return_value = "x" * 150
        document = await ExtractionPipeline(sessions, rules).convert_url_to_markdown(_request())
        assert document == f"URL: {_URL}\n\nTitle: T\n\n---\n\n{'x' * 150}"


class TestExtractionResult:
    def test_document_layout(self) -> None:
        result = ExtractionResult(
            url=_URL, markdown="# Body", metadata={"title": "T", "language": "en"}
        )
        assert result.document == f"URL: {_URL}\n\nTitle: T\nLanguage: en\n\n---\n\n# Body"
