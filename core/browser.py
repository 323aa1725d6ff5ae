"""
Playwright-backed browser session.

BrowserSession owns one Playwright instance, one browser context and one page.
Every element-level method takes an explicit or default timeout. Navigation and
launch failures are wrapped in BrowserError; element-level Playwright errors are
passed through so retry predicates can classify them.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from core.errors import BrowserError, error_message
from core.resilience import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--disable-blink-features=AutomationControlled",
]

# Adds every ancestor's scroll offset so the position does not change when a list scrolls.
_CONTENT_POSITION_JS = """el => {
    const rect = el.getBoundingClientRect();
    let x = rect.left;
    let y = rect.top;
    let node = el.parentElement;
    while (node) {
        x += node.scrollLeft;
        y += node.scrollTop;
        node = node.parentElement;
    }
    return [Math.round(x), Math.round(y)];
}"""

_SCROLLABLE_ANCESTOR_JS = """el => {
    const canScroll = node => {
        const overflowY = window.getComputedStyle(node).overflowY;
        return ['auto', 'scroll', 'overlay'].includes(overflowY)
            && node.scrollHeight > node.clientHeight;
    };
    let node = el;
    while (node && node !== document.body && node !== document.documentElement) {
        if (canScroll(node)) {
            return node;
        }
        node = node.parentElement;
    }
    return null;
}"""

_SCROLL_BY_VIEWPORT_JS = """el => {
    const remaining = el.scrollHeight - el.scrollTop - el.clientHeight;
    const amount = Math.max(0, Math.min(el.clientHeight, remaining));
    el.scrollTop = el.scrollTop + amount;
    return amount;
}"""

_FIND_BY_TEXT_JS = """([phrases, tags]) => {
    const nodes = Array.from(document.querySelectorAll(tags));
    return nodes.find(el => {
        const text = (el.textContent || '').trim().toLowerCase();
        const label = (el.getAttribute('aria-label') || '').toLowerCase();
        const visible = el.offsetParent !== null;
        return visible && phrases.some(p => text.includes(p) || label.includes(p));
    }) || null;
}"""

_DESCRIBE_CLICKABLES_JS = """limit => Array.from(document.querySelectorAll('button, a'))
    .slice(0, limit)
    .map(el => ({
        tag: el.tagName.toLowerCase(),
        text: (el.textContent || '').trim().slice(0, 80),
        aria_label: el.getAttribute('aria-label'),
        data_view_name: el.getAttribute('data-view-name'),
    }))"""


def _is_launch_retryable(error: BaseException) -> bool:
    text = str(error).lower()
    return "invalid" not in text and "configuration" not in text


class BrowserSession:
    """Single-page Playwright session used by all handlers of one run."""

    def __init__(self, browser_config):
        self.config = browser_config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def is_initialized(self) -> bool:
        return self._page is not None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserError("Browser session is not initialized")
        return self._page

    @property
    def url(self) -> str:
        return self.page.url

    def _timeout(self, timeout: Optional[int]) -> int:
        return self.config.timeout_ms if timeout is None else timeout

    async def initialize(self) -> None:
        """Launch the browser, retrying transient launch failures."""
        if self.is_initialized:
            return

        policy = RetryPolicy(
            max_attempts=self.config.launch_attempts,
            base_delay=self.config.launch_retry_delay,
            max_delay=self.config.launch_retry_delay * 4,
            retry_predicate=_is_launch_retryable,
            name="browser_launch",
        )
        outcome = await with_retry(self._launch, policy)
        if not outcome.succeeded:
            raise BrowserError(
                f"Failed to initialize browser after {outcome.attempts} attempts: {error_message(outcome.error)}",
                context={"attempts": outcome.attempts},
            )
        logger.info(f"Browser initialized (headless={self.config.headless})")

    async def _launch(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            chromium = self._playwright.chromium
            executable_path = self.config.executable_path or None

            if self.config.use_existing_profile and self.config.user_data_dir:
                self.config.user_data_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Launching browser with persistent context from: {self.config.user_data_dir}")
                self._context = await chromium.launch_persistent_context(
                    str(self.config.user_data_dir),
                    headless=self.config.headless,
                    args=LAUNCH_ARGS,
                    executable_path=executable_path,
                    user_agent=self.config.user_agent,
                    viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
                    ignore_https_errors=True,
                    extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
                )
                self._browser = self._context.browser
            else:
                self._browser = await chromium.launch(
                    headless=self.config.headless,
                    args=LAUNCH_ARGS,
                    executable_path=executable_path,
                )
                self._context = await self._browser.new_context(
                    user_agent=self.config.user_agent,
                    viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
                    ignore_https_errors=True,
                    extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
                )

            self._context.set_default_timeout(self.config.timeout_ms)
            self._context.set_default_navigation_timeout(self.config.timeout_ms)
            self._page = self._context.pages[0] if self._context.pages else await self._context.new_page()
        except Exception:
            # Release whatever was started before the failure so a retry starts clean.
            await self.close()
            raise

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout: Optional[int] = None) -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=self._timeout(timeout))
        except PlaywrightError as e:
            raise BrowserError(f"Navigation to {url} failed: {error_message(e)}", context={"url": url}) from e

    async def wait_for_load(self, state: str = "load", timeout: Optional[int] = None) -> bool:
        """Best-effort wait for a load state; False when it did not arrive in time."""
        try:
            await self.page.wait_for_load_state(state, timeout=self._timeout(timeout))
            return True
        except PlaywrightError as e:
            logger.debug(f"Load state '{state}' not reached: {e}")
            return False

    async def locate(self, selector: str, root: Optional[ElementHandle] = None) -> Optional[ElementHandle]:
        scope = root if root is not None else self.page
        return await scope.query_selector(selector)

    async def locate_all(self, selector: str, root: Optional[ElementHandle] = None) -> List[ElementHandle]:
        scope = root if root is not None else self.page
        return await scope.query_selector_all(selector)

    async def wait_for(self, selector: str, timeout: Optional[int] = None, state: str = "visible") -> Optional[ElementHandle]:
        """Wait for ``selector``; raises Playwright's TimeoutError when it never shows up."""
        return await self.page.wait_for_selector(selector, state=state, timeout=self._timeout(timeout))

    async def exists(self, selector: str) -> bool:
        return await self.page.query_selector(selector) is not None

    async def click(self, element: ElementHandle, timeout: Optional[int] = None) -> None:
        await element.click(timeout=self._timeout(timeout))

    async def fill(self, selector: str, text: str, timeout: Optional[int] = None) -> None:
        await self.page.fill(selector, text, timeout=self._timeout(timeout))

    async def text_content(self, element: ElementHandle) -> Optional[str]:
        return await element.inner_text()

    async def is_visible(self, element: ElementHandle) -> bool:
        return await element.is_visible()

    async def is_enabled(self, element: ElementHandle) -> bool:
        return await element.is_enabled()

    async def scroll_into_view(self, element: ElementHandle, timeout: int = 5000) -> None:
        await element.scroll_into_view_if_needed(timeout=timeout)

    async def content_position(self, element: ElementHandle) -> Tuple[int, int]:
        x, y = await element.evaluate(_CONTENT_POSITION_JS)
        return x, y

    async def scrollable_ancestor(self, element: ElementHandle) -> Optional[ElementHandle]:
        handle = await element.evaluate_handle(_SCROLLABLE_ANCESTOR_JS)
        return handle.as_element()

    async def scroll_by_viewport(self, element: ElementHandle) -> int:
        """Scroll ``element`` by its own visible height, clamped to what is left; returns pixels moved."""
        return await element.evaluate(_SCROLL_BY_VIEWPORT_JS)

    async def click_by_text(self, phrases: Sequence[str], tags: str = "button, a", timeout: Optional[int] = None) -> bool:
        """Click the first visible element whose text or aria-label contains one of ``phrases``."""
        handle = await self.page.evaluate_handle(_FIND_BY_TEXT_JS, [[p.lower() for p in phrases], tags])
        element = handle.as_element()
        if element is None:
            return False
        await element.click(timeout=self._timeout(timeout))
        return True

    async def describe_clickables(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self.page.evaluate(_DESCRIBE_CLICKABLES_JS, limit)

    async def pause(self, milliseconds: int) -> None:
        if milliseconds > 0:
            await asyncio.sleep(milliseconds / 1000)

    async def screenshot(self, path: str, full_page: bool = True) -> None:
        await self.page.screenshot(path=path, full_page=full_page)

    async def content(self) -> str:
        return await self.page.content()

    async def close(self) -> None:
        """Close page, context, browser and Playwright; each step is time-boxed and best-effort."""
        timeout = self.config.close_timeout_ms / 1000
        steps = [
            ("page", self._page.close if self._page else None),
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ]
        self._page = self._context = self._browser = self._playwright = None

        for name, closer in steps:
            if closer is None:
                continue
            try:
                await asyncio.wait_for(closer(), timeout=timeout)
                logger.debug(f"Closed {name}")
            except asyncio.TimeoutError:
                logger.warning(f"Closing {name} timed out after {timeout}s; continuing")
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")
