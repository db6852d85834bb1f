"""Unit tests for dynamic content detection and scrolling."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from pagesift.scraper.content_loader import (
    ContentStats,
    ensure_loaded,
    evaluate_content_richness,
    scroll_to_bottom,
    wait_for_any_selector,
)


@pytest.mark.asyncio
class TestEvaluateContentRichness:
    async def test_maps_page_counts(self, make_page) -> None:
        page = make_page(
            evaluate={
                "textLength": 1200,
                "elementCount": 40,
                "paragraphs": 10,
                "headings": 3,
                "contentDivs": 20,
                "links": 6,
                "images": 1,
            }
        )
        stats = await evaluate_content_richness(page)
        assert stats == ContentStats(
            text_length=1200,
            element_count=40,
            paragraphs=10,
            headings=3,
            content_divs=20,
            links=6,
            images=1,
        )

    async def test_evaluation_failure_returns_zeros(self, make_page) -> None:
        page = make_page()
        page.evaluate = AsyncMock(side_effect=PlaywrightError("Execution context was destroyed"))
        assert await evaluate_content_richness(page) == ContentStats()

    async def test_unexpected_result_returns_zeros(self, make_page) -> None:
        page = make_page(evaluate=None)
        assert await evaluate_content_richness(page) == ContentStats()


@pytest.mark.asyncio
class TestWaitForAnySelector:
    async def test_first_visible_selector_wins(self, make_page) -> None:
        async def _wait(selector: str, **_: Any) -> None:
            if selector != ".article":
                raise PlaywrightError(f"Timeout waiting for {selector}")

        page = make_page(wait_for_selector=AsyncMock(side_effect=_wait))
        found = await wait_for_any_selector(page, [".missing", ".article"], 100)
        assert found == ".article"

    async def test_none_when_nothing_appears(self, make_page) -> None:
        page = make_page(wait_for_selector=AsyncMock(side_effect=PlaywrightError("Timeout")))
        assert await wait_for_any_selector(page, [".a", ".b"], 100) is None

    async def test_no_selectors(self, make_page) -> None:
        page = make_page()
        assert await wait_for_any_selector(page, [], 100) is None
        page.wait_for_selector.assert_not_awaited()


@pytest.mark.asyncio
class TestScrollToBottom:
    async def test_scrolls_in_steps_then_to_bottom(self, make_page) -> None:
        responses = iter([5000, 800])

        async def _evaluate(script: str, *args: Any) -> Any:
            if "scrollHeight : 0" in script or "innerHeight" in script:
                return next(responses)
            return None

        page = make_page(evaluate=_evaluate)
        await scroll_to_bottom(page, wait_time_ms=0, extra_wait_ms=0, steps=5)

        step_positions = [c.args[1] for c in page.evaluate.await_args_list if len(c.args) == 2]
        assert step_positions == [1000, 2000, 3000, 4000, 5000]
        # height, viewport, five steps, final jump
        assert page.evaluate.await_count == 8

    async def test_step_is_at_least_one_viewport(self, make_page) -> None:
        responses = iter([1000, 900])

        async def _evaluate(script: str, *args: Any) -> Any:
            if "scrollHeight : 0" in script or "innerHeight" in script:
                return next(responses)
            return None

        page = make_page(evaluate=_evaluate)
        await scroll_to_bottom(page, wait_time_ms=0, extra_wait_ms=0, steps=5)
        step_positions = [c.args[1] for c in page.evaluate.await_args_list if len(c.args) == 2]
        assert step_positions[0] == 900

    async def test_failures_are_swallowed(self, make_page) -> None:
        page = make_page()
        page.evaluate = AsyncMock(side_effect=PlaywrightError("Target closed"))
        await scroll_to_bottom(page, wait_time_ms=0, extra_wait_ms=0)


@pytest.mark.asyncio
class TestEnsureLoaded:
    async def test_no_selectors_and_no_force_does_nothing(self, make_page) -> None:
        page = make_page()
        with patch("pagesift.scraper.content_loader.scroll_to_bottom", new=AsyncMock()) as scroll:
            assert await ensure_loaded(page) is False
        scroll.assert_not_awaited()

    async def test_force_scroll(self, make_page) -> None:
        page = make_page()
        with patch("pagesift.scraper.content_loader.scroll_to_bottom", new=AsyncMock()) as scroll:
            await ensure_loaded(page, force_scroll=True, wait_time_ms=50, scroll_steps=3)
        scroll.assert_awaited_once()
        assert scroll.await_args.kwargs["steps"] == 3
        assert scroll.await_args.kwargs["wait_time_ms"] == 50

    async def test_reports_found_selector(self, make_page) -> None:
        page = make_page()
        with patch("pagesift.scraper.content_loader.scroll_to_bottom", new=AsyncMock()):
            assert await ensure_loaded(page, target_selectors=["main"]) is True

    async def test_missing_selector_still_scrolls_when_forced(self, make_page) -> None:
        page = make_page(wait_for_selector=AsyncMock(side_effect=PlaywrightError("Timeout")))
        with patch("pagesift.scraper.content_loader.scroll_to_bottom", new=AsyncMock()) as scroll:
            found = await ensure_loaded(page, target_selectors=["main"], force_scroll=True)
        assert found is False
        scroll.assert_awaited_once()
