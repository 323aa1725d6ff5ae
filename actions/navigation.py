import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from core.errors import (
    AutomationError,
    CircuitOpenError,
    NavigationError,
    error_message,
    is_retryable_error,
)
from core.resilience import CircuitBreaker, RetryPolicy, with_retry
from core.run_context import RunContext
from core.selectors import selectors

logger = logging.getLogger(__name__)


@dataclass
class NavigationResult:
    success: bool
    error: Optional[str] = None
    recoverable: Optional[bool] = None


def is_transient_navigation_error(error: BaseException) -> bool:
    if isinstance(error, AutomationError):
        return error.recoverable
    if isinstance(error, PlaywrightError):
        return True
    text = str(error).lower()
    return is_retryable_error(error) or any(word in text for word in ("dialog", "button"))


class NavigationHandler:
    """Opens the "People you may know" list from My Network → Grow."""

    def __init__(
        self,
        session,
        navigation_config,
        circuit_breaker: Optional[CircuitBreaker] = None,
        run_context: Optional[RunContext] = None,
    ):
        self.session = session
        self.config = navigation_config
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=3, recovery_timeout=30.0, name="navigation"
        )
        self.run_context = run_context or RunContext()

    async def navigate_to_network_growth(self) -> NavigationResult:
        """Go to the network growth page and open the full suggestions list.

        The whole sequence runs under the circuit breaker, around a bounded
        retry. A list dialog that never appears, even after reopening it,
        ends with a non-recoverable result.
        """
        self.run_context.set("navigation_started_at", datetime.now().isoformat())
        policy = RetryPolicy(
            max_attempts=self.config.max_attempts,
            base_delay=self.config.retry_delay,
            max_delay=self.config.retry_delay * 4,
            retry_predicate=is_transient_navigation_error,
            name="navigation",
        )

        async def attempt() -> None:
            outcome = await with_retry(self._open_suggestions_list, policy)
            if not outcome.succeeded:
                raise outcome.error

        try:
            await self.circuit_breaker.execute(attempt)
        except CircuitOpenError as e:
            logger.error(f"Navigation rejected: {e}")
            return NavigationResult(success=False, error=error_message(e), recoverable=False)
        except Exception as e:
            recoverable = e.recoverable if isinstance(e, AutomationError) else True
            logger.error(f"Navigation to network growth page failed: {error_message(e)}")
            return NavigationResult(success=False, error=error_message(e), recoverable=recoverable)

        self.run_context.set("navigation_success", True)
        logger.info("Suggestions list is open.")
        return NavigationResult(success=True)

    async def _open_suggestions_list(self) -> None:
        await self._go_to_growth_page()
        await self._open_list_with_confirmation()

    async def _go_to_growth_page(self) -> None:
        logger.info(f"Navigating to {self.config.growth_url}")
        await self.session.navigate(self.config.growth_url, wait_until="domcontentloaded")
        await self.session.pause(self.config.page_settle_ms)

        if "/mynetwork" in self.session.url:
            return

        logger.warning(f"Redirected to {self.session.url}; trying the My Network link.")
        for selector in selectors["my_network_links"]:
            element = await self.session.locate(selector)
            if element is not None and await self.session.is_visible(element):
                await self.session.click(element)
                await self.session.wait_for_load("domcontentloaded")
                await self.session.pause(self.config.page_settle_ms)
                break
        else:
            await self.session.navigate(self.config.network_url, wait_until="domcontentloaded")
            await self.session.pause(self.config.page_settle_ms)

        if "/mynetwork" not in self.session.url:
            raise NavigationError(
                f"Failed to navigate to network page, still not on network page: {self.session.url}",
                context={"url": self.session.url},
            )

    async def _open_list_with_confirmation(self) -> None:
        """Click "See all" and wait for the dialog; the pair is tried again once before giving up."""
        policy = RetryPolicy(
            max_attempts=self.config.open_list_attempts,
            base_delay=self.config.open_list_retry_delay,
            max_delay=self.config.open_list_retry_delay * 2,
            retry_predicate=is_transient_navigation_error,
            name="open_suggestions_list",
        )

        async def open_and_wait() -> None:
            await self._click_see_all()
            await self._wait_for_list_dialog()

        outcome = await with_retry(open_and_wait, policy)
        if not outcome.succeeded:
            raise self.run_context.create_error(
                f"Suggestions list did not open after {outcome.attempts} attempts: {error_message(outcome.error)}",
                NavigationError,
                recoverable=False,
                attempts=outcome.attempts,
            )

    async def _click_see_all(self) -> None:
        for selector in selectors["see_all_buttons"]:
            element = await self.session.locate(selector)
            if element is None:
                continue
            if await self.session.is_visible(element) and await self.session.is_enabled(element):
                logger.info(f"Clicking 'See all' button: {selector}")
                await self.session.click(element)
                return

        logger.debug("No structured 'See all' selector matched; scanning button text.")
        if await self.session.click_by_text(selectors["see_all_texts"]):
            logger.info("Clicked 'See all' button found by text.")
            return

        clickables = await self.session.describe_clickables(limit=10)
        logger.warning(f"Could not find 'See all' button. First clickable elements: {clickables}")
        raise NavigationError("Could not find the 'See all' button")

    async def _wait_for_list_dialog(self) -> str:
        for selector in selectors["list_dialogs"]:
            try:
                await self.session.wait_for(selector, timeout=self.config.dialog_timeout_ms)
            except PlaywrightError:
                logger.debug(f"List dialog selector did not appear: {selector}")
                continue

            logger.info(f"Suggestions list dialog opened: {selector}")
            self.run_context.set("list_dialog_selector", selector)
            await self._verify_list_content()
            return selector

        raise NavigationError("Suggestions list dialog did not appear")

    async def _verify_list_content(self) -> None:
        try:
            await self.session.wait_for(selectors["person_card"], timeout=self.config.dialog_timeout_ms)
        except PlaywrightError:
            logger.warning("Suggestions list opened but no person cards rendered yet.")
