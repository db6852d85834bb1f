"""Shared pytest fixtures for PageSift tests.

Fixture summary
---------------
settings: Settings with a temporary reports directory and no crawl delay.
make_page: Factory for MagicMock Playwright pages (async methods mocked).
fake_browser: MagicMock Browser whose contexts hand out ``make_page`` pages.
launcher: AsyncMock launcher returning ``fake_browser``.

No test needs a real Chromium: every Playwright object is a mock.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest

from pagesift.config.settings import Settings, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Make every test read settings from a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Any) -> Settings:
    return Settings(
        reports_dir=tmp_path / "reports",
        crawl_delay_ms=0,
        scroll_wait_time=0,
        extra_scroll_wait_time=0,
        max_concurrent_sessions=10,
    )


# ---------------------------------------------------------------------------
# Playwright fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def make_page() -> Callable[..., MagicMock]:
    """Return a factory for fake pages.

    ``evaluate`` results can be supplied with ``evaluate=...`` (a value or a
    side-effect callable).
    """

    def _factory(**overrides: Any) -> MagicMock:
        page = MagicMock(name="page")
        page.url = overrides.pop("url", "")
        page.goto = AsyncMock(return_value=None)
        page.wait_for_function = AsyncMock(return_value=None)
        page.wait_for_selector = AsyncMock(return_value=None)
        page.route = AsyncMock(return_value=None)
        page.add_init_script = AsyncMock(return_value=None)
        page.close = AsyncMock(return_value=None)
        evaluate = overrides.pop("evaluate", None)
        if callable(evaluate):
            page.evaluate = AsyncMock(side_effect=evaluate)
        else:
            page.evaluate = AsyncMock(return_value=evaluate)
        for name, value in overrides.items():
            setattr(page, name, value)
        return page

    return _factory


@pytest.fixture
def fake_browser(make_page: Callable[..., MagicMock]) -> MagicMock:
    browser = MagicMock(name="browser")
    browser.is_connected.return_value = True
    browser.close = AsyncMock(return_value=None)

    async def _new_context(**_: Any) -> MagicMock:
        context = MagicMock(name="context")
        cdp = MagicMock(name="cdp")
        cdp.send = AsyncMock(return_value=None)
        cdp.detach = AsyncMock(return_value=None)
        context.new_page = AsyncMock(return_value=make_page())
        context.new_cdp_session = AsyncMock(return_value=cdp)
        context.close = AsyncMock(return_value=None)
        return context

    browser.new_context = AsyncMock(side_effect=_new_context)
    return browser


@pytest.fixture
def launcher(fake_browser: MagicMock) -> AsyncMock:
    return AsyncMock(return_value=fake_browser)
