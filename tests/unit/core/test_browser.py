import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from core.browser import BrowserSession
from core.errors import BrowserError


def make_playwright_stack():
    page = AsyncMock()
    page.url = "about:blank"
    context = MagicMock()
    context.pages = [page]
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.chromium.launch_persistent_context = AsyncMock(return_value=context)
    playwright.stop = AsyncMock()
    manager = MagicMock()
    manager.start = AsyncMock(return_value=playwright)
    return manager, playwright, browser, context, page


@pytest.fixture
def session(app_config):
    return BrowserSession(app_config.browser)


class TestInitialize:

    @pytest.mark.asyncio
    async def test_launches_browser_and_reuses_first_page(self, session):
        manager, playwright, browser, context, page = make_playwright_stack()

        with patch("core.browser.async_playwright", return_value=manager):
            await session.initialize()

        assert session.is_initialized is True
        assert session.page is page
        playwright.chromium.launch.assert_awaited_once()
        context.set_default_timeout.assert_called_once_with(session.config.timeout_ms)

    @pytest.mark.asyncio
    async def test_persistent_profile(self, session, tmp_path):
        session.config.use_existing_profile = True
        session.config.user_data_dir = tmp_path / "profile"
        manager, playwright, _, context, page = make_playwright_stack()

        with patch("core.browser.async_playwright", return_value=manager):
            await session.initialize()

        playwright.chromium.launch_persistent_context.assert_awaited_once()
        assert (tmp_path / "profile").is_dir()
        assert session.page is page

    @pytest.mark.asyncio
    async def test_retries_transient_launch_failure(self, session):
        manager, playwright, browser, _, _ = make_playwright_stack()
        playwright.chromium.launch = AsyncMock(side_effect=[PlaywrightError("Browser closed unexpectedly"), browser])

        with patch("core.browser.async_playwright", return_value=manager):
            await session.initialize()

        assert playwright.chromium.launch.await_count == 2
        assert session.is_initialized is True

    @pytest.mark.asyncio
    async def test_launch_failure_raises_browser_error(self, session):
        manager, playwright, _, _, _ = make_playwright_stack()
        playwright.chromium.launch = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))

        with patch("core.browser.async_playwright", return_value=manager):
            with pytest.raises(BrowserError, match="after 2 attempts"):
                await session.initialize()

        assert session.is_initialized is False
        assert playwright.stop.await_count == 2

    @pytest.mark.asyncio
    async def test_already_initialized_is_a_no_op(self, session):
        session._page = AsyncMock()
        with patch("core.browser.async_playwright") as factory:
            await session.initialize()
        factory.assert_not_called()


class TestPageOperations:

    @pytest.mark.asyncio
    async def test_page_requires_initialization(self, session):
        with pytest.raises(BrowserError, match="not initialized"):
            await session.navigate("https://www.linkedin.com/login")

    @pytest.mark.asyncio
    async def test_navigate_wraps_driver_errors(self, session):
        session._page = AsyncMock()
        session._page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(BrowserError) as exc_info:
            await session.navigate("https://www.linkedin.com/login")

        assert exc_info.value.recoverable is True
        assert exc_info.value.context == {"url": "https://www.linkedin.com/login"}

    @pytest.mark.asyncio
    async def test_wait_for_load_is_best_effort(self, session):
        session._page = AsyncMock()
        assert await session.wait_for_load() is True

        session._page.wait_for_load_state.side_effect = PlaywrightError("Timeout 10ms exceeded.")
        assert await session.wait_for_load(timeout=10) is False

    @pytest.mark.asyncio
    async def test_locate_is_scoped_to_root(self, session):
        session._page = AsyncMock()
        root = AsyncMock()
        card = object()
        root.query_selector_all.return_value = [card]

        assert await session.locate_all('[role="listitem"]', root=root) == [card]
        session._page.query_selector_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_click_by_text_without_match(self, session):
        session._page = AsyncMock()
        handle = MagicMock()
        handle.as_element.return_value = None
        session._page.evaluate_handle.return_value = handle

        assert await session.click_by_text(["See all"]) is False
        args = session._page.evaluate_handle.await_args.args
        assert args[1] == [["see all"], "button, a"]

    @pytest.mark.asyncio
    async def test_scrollable_ancestor_none(self, session):
        element = AsyncMock()
        handle = MagicMock()
        handle.as_element.return_value = None
        element.evaluate_handle.return_value = handle

        assert await session.scrollable_ancestor(element) is None

    @pytest.mark.asyncio
    async def test_pause_skips_non_positive(self, session):
        with patch("core.browser.asyncio.sleep", new=AsyncMock()) as sleep:
            await session.pause(0)
            await session.pause(1500)
        sleep.assert_awaited_once_with(1.5)


class TestClose:

    @pytest.mark.asyncio
    async def test_close_releases_everything_once(self, session):
        manager, playwright, browser, context, page = make_playwright_stack()
        with patch("core.browser.async_playwright", return_value=manager):
            await session.initialize()

        await session.close()
        await session.close()

        page.close.assert_awaited_once()
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert session.is_initialized is False

    @pytest.mark.asyncio
    async def test_hanging_close_is_time_boxed(self, session):
        async def hang():
            await asyncio.sleep(5)

        page = MagicMock()
        page.close = hang
        browser = MagicMock()
        browser.close = AsyncMock()
        session._page = page
        session._browser = browser

        await asyncio.wait_for(session.close(), timeout=1)

        browser.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_error_does_not_stop_other_steps(self, session):
        context = MagicMock()
        context.close = AsyncMock(side_effect=PlaywrightError("Target closed"))
        playwright = MagicMock()
        playwright.stop = AsyncMock()
        session._context = context
        session._playwright = playwright

        await session.close()

        playwright.stop.assert_awaited_once()
