from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from actions.navigation import NavigationHandler, is_transient_navigation_error
from core.errors import BrowserError, CircuitOpenError, LoginError, NavigationError
from core.resilience import CircuitBreaker, CircuitState
from core.run_context import RunContext
from core.selectors import selectors

GROW_URL = "https://www.linkedin.com/mynetwork/grow/"
DIALOG = selectors["list_dialogs"][0]


def make_session(url=GROW_URL, dialog_appears_on_click=1, see_all_present=True):
    """Mock session where the suggestions dialog appears after the n-th "See all" click."""
    session = AsyncMock()
    session.url = url
    session.see_all_clicks = 0
    see_all = MagicMock(name="see_all_button")

    async def locate(selector, root=None):
        if see_all_present and selector == selectors["see_all_buttons"][0]:
            return see_all
        return None

    async def click(element, timeout=None):
        if element is see_all:
            session.see_all_clicks += 1

    async def wait_for(selector, timeout=None, state="visible"):
        if selector == selectors["person_card"]:
            return MagicMock()
        if selector == DIALOG and 0 < dialog_appears_on_click <= session.see_all_clicks:
            return MagicMock()
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    session.locate = AsyncMock(side_effect=locate)
    session.click = AsyncMock(side_effect=click)
    session.wait_for = AsyncMock(side_effect=wait_for)
    session.is_visible = AsyncMock(return_value=True)
    session.is_enabled = AsyncMock(return_value=True)
    session.click_by_text = AsyncMock(return_value=False)
    session.describe_clickables = AsyncMock(return_value=[])
    return session


@pytest.fixture
def navigation_config(app_config):
    return app_config.navigation


@pytest.fixture
def breaker():
    return CircuitBreaker(failure_threshold=3, recovery_timeout=30.0, name="navigation")


class TestNavigationHandler:

    @pytest.mark.asyncio
    async def test_opens_suggestions_list(self, navigation_config, breaker):
        session = make_session()
        run_context = RunContext()
        handler = NavigationHandler(session, navigation_config, breaker, run_context)

        result = await handler.navigate_to_network_growth()

        assert result.success is True
        session.navigate.assert_awaited_once_with(GROW_URL, wait_until="domcontentloaded")
        assert session.see_all_clicks == 1
        assert run_context.get("list_dialog_selector") == DIALOG
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_dialog_retry_reopens_list(self, navigation_config, breaker):
        session = make_session(dialog_appears_on_click=2)

        result = await NavigationHandler(session, navigation_config, breaker).navigate_to_network_growth()

        assert result.success is True
        assert session.see_all_clicks == 2

    @pytest.mark.asyncio
    async def test_dialog_never_appears_is_not_recoverable(self, navigation_config, breaker):
        session = make_session(dialog_appears_on_click=0)

        result = await NavigationHandler(session, navigation_config, breaker).navigate_to_network_growth()

        assert result.success is False
        assert result.recoverable is False
        assert "did not open after 2 attempts" in result.error
        # the outer retry gives up immediately on a non-recoverable error
        assert session.see_all_clicks == 2
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_text_fallback_when_selectors_miss(self, navigation_config, breaker):
        session = make_session(see_all_present=False, dialog_appears_on_click=0)

        async def click_by_text(phrases, tags="button, a", timeout=None):
            session.see_all_clicks += 1
            return True

        session.click_by_text = AsyncMock(side_effect=click_by_text)

        # dialog appears on the first text-scan click
        async def wait_for(selector, timeout=None, state="visible"):
            if session.see_all_clicks and selector in (DIALOG, selectors["person_card"]):
                return MagicMock()
            raise PlaywrightTimeoutError("Timeout")

        session.wait_for = AsyncMock(side_effect=wait_for)

        result = await NavigationHandler(session, navigation_config, breaker).navigate_to_network_growth()

        assert result.success is True
        session.click_by_text.assert_awaited_once_with(selectors["see_all_texts"])

    @pytest.mark.asyncio
    async def test_missing_see_all_button_reports_clickables(self, navigation_config, breaker):
        session = make_session(see_all_present=False)

        result = await NavigationHandler(session, navigation_config, breaker).navigate_to_network_growth()

        assert result.success is False
        assert result.recoverable is False
        assert session.describe_clickables.await_count == 2

    @pytest.mark.asyncio
    async def test_redirect_falls_back_to_network_url(self, navigation_config, breaker):
        session = make_session(url="https://www.linkedin.com/feed/")

        async def navigate(url, wait_until="domcontentloaded", timeout=None):
            session.url = url if url == navigation_config.network_url else "https://www.linkedin.com/feed/"

        session.navigate = AsyncMock(side_effect=navigate)

        result = await NavigationHandler(session, navigation_config, breaker).navigate_to_network_growth()

        assert result.success is True
        session.navigate.assert_any_await(navigation_config.network_url, wait_until="domcontentloaded")

    @pytest.mark.asyncio
    async def test_redirect_that_sticks_is_retried_then_fails(self, navigation_config, breaker):
        session = make_session(url="https://www.linkedin.com/authwall")

        result = await NavigationHandler(session, navigation_config, breaker).navigate_to_network_growth()

        assert result.success is False
        assert result.recoverable is True
        assert "still not on network page" in result.error
        # growth url + network url fallback, per attempt
        assert session.navigate.await_count == 2 * navigation_config.max_attempts

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_navigation(self, navigation_config):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30.0, name="navigation")
        session = make_session(url="https://www.linkedin.com/authwall")
        handler = NavigationHandler(session, navigation_config, breaker)

        await handler.navigate_to_network_growth()
        assert breaker.state == CircuitState.OPEN
        calls_before = session.navigate.await_count

        result = await handler.navigate_to_network_growth()

        assert result.success is False
        assert result.recoverable is False
        assert "is open" in result.error
        assert session.navigate.await_count == calls_before


@pytest.mark.parametrize(
    "error, expected",
    [
        (NavigationError("redirected"), True),
        (NavigationError("dialog never opened", recoverable=False), False),
        (CircuitOpenError("open"), False),
        (BrowserError("net::ERR_TIMED_OUT"), True),
        (LoginError("session expired"), False),
        (RuntimeError("dialog not attached"), True),
        (RuntimeError("bad selector"), False),
    ],
)
def test_is_transient_navigation_error(error, expected):
    assert is_transient_navigation_error(error) is expected
