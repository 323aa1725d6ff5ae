import logging
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from core.errors import AutomationError, LoginError, error_message, is_retryable_error
from core.resilience import RetryPolicy, with_retry
from core.run_context import RunContext
from core.selectors import selectors

logger = logging.getLogger(__name__)

AUTHENTICATED_URL_MARKERS = ("/feed", "/mynetwork", "/in/")
LOGIN_URL_MARKERS = ("/login", "/uas/login", "/checkpoint", "/authwall")


@dataclass
class LoginResult:
    success: bool
    error: Optional[str] = None
    recoverable: Optional[bool] = None


def is_transient_login_error(error: BaseException) -> bool:
    """Retry browser and network trouble, never a rejected login."""
    if isinstance(error, LoginError):
        return error.recoverable
    if isinstance(error, PlaywrightError):
        return True
    return is_retryable_error(error)


class SessionHandler:
    """Signs in to LinkedIn with the configured credentials."""

    def __init__(self, session, login_config, run_context: Optional[RunContext] = None):
        self.session = session
        self.config = login_config
        self.run_context = run_context or RunContext()

    async def authenticate(self) -> LoginResult:
        """Log into LinkedIn unless the session is already authenticated.

        Returns:
            LoginResult; ``recoverable`` is False for missing credentials,
            rejected credentials and security challenges.
        """
        if not self.config.username or not self.config.password:
            logger.error("LinkedIn credentials are not configured.")
            return LoginResult(success=False, error="LinkedIn credentials are not configured", recoverable=False)

        self.run_context.set("login_username", self.config.username)
        policy = RetryPolicy(
            max_attempts=self.config.max_attempts,
            base_delay=self.config.retry_delay,
            max_delay=self.config.retry_delay * 4,
            retry_predicate=is_transient_login_error,
            name="login",
        )

        outcome = await with_retry(self._login_flow, policy)
        if outcome.succeeded:
            self.run_context.set("login_success", True)
            logger.info("Successfully logged in to LinkedIn.")
            return LoginResult(success=True)

        error = outcome.error
        recoverable = error.recoverable if isinstance(error, AutomationError) else True
        self.run_context.set("login_success", False)
        self.run_context.set("login_attempts", outcome.attempts)
        logger.error(f"Login failed after {outcome.attempts} attempt(s): {error_message(error)}")
        return LoginResult(success=False, error=error_message(error), recoverable=recoverable)

    async def _login_flow(self) -> None:
        logger.info("Checking for active LinkedIn session...")
        await self.session.navigate(self.config.login_url, wait_until="domcontentloaded")
        await self.session.wait_for_load("load")

        if self._is_authenticated_url(self.session.url):
            logger.info(f"Active session detected via URL {self.session.url}. Skipping login.")
            return

        logger.info("Did not detect active session; proceeding to explicit login flow.")
        await self._open_login_form()
        await self._input_credentials()
        await self._submit()

        await self.session.pause(self.config.post_submit_wait_ms)
        await self.session.wait_for_load("load")

        if not await self._detect_login_success():
            raise LoginError(
                "Login failed - invalid credentials or LinkedIn security challenge",
                context={"url": self.session.url},
            )

    @staticmethod
    def _is_authenticated_url(url: str) -> bool:
        return any(marker in url for marker in AUTHENTICATED_URL_MARKERS) and not any(
            marker in url for marker in LOGIN_URL_MARKERS
        )

    async def _open_login_form(self) -> None:
        if await self.session.exists(selectors["username_input"]):
            logger.debug("Login form already displayed.")
            return

        for selector in selectors["sign_in_links"]:
            element = await self.session.locate(selector)
            if element is not None and await self.session.is_visible(element):
                logger.debug(f"Clicking sign-in link: {selector}")
                await self.session.click(element)
                await self.session.wait_for_load("domcontentloaded")
                return

        logger.debug("No sign-in link found; expecting the login form to load.")

    async def _input_credentials(self) -> None:
        logger.debug("Entering login credentials.")
        await self.session.wait_for(selectors["username_input"])
        await self.session.fill(selectors["username_input"], self.config.username)
        await self.session.wait_for(selectors["password_input"])
        await self.session.fill(selectors["password_input"], self.config.password)

    async def _submit(self) -> None:
        for selector in selectors["login_submit"]:
            element = await self.session.locate(selector)
            if element is not None and await self.session.is_visible(element):
                logger.debug(f"Clicking login submit button: {selector}")
                await self.session.click(element)
                return
        raise LoginError("Could not find the login submit button", recoverable=True)

    async def _detect_login_success(self) -> bool:
        """Failure indicators win over success indicators, which win over the URL."""
        for selector in selectors["login_failure_indicators"]:
            if await self.session.exists(selector):
                logger.warning(f"Login failure indicator found: {selector}")
                self.run_context.set("login_failure_indicator", selector)
                return False

        for selector in selectors["login_success_indicators"]:
            if await self.session.exists(selector):
                logger.debug(f"Login success indicator found: {selector}")
                return True

        url = self.session.url
        if any(marker in url for marker in LOGIN_URL_MARKERS):
            logger.warning(f"Still on a login page after submit: {url}")
            return False

        logger.info(f"No explicit indicator found; assuming login succeeded at {url}")
        return True
