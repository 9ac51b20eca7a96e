"""
Playwright implementation of the browser-control adapter.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from stepwright.browser.screencast import CDPFrameStream
from stepwright.config.settings import get_settings
from stepwright.core.interfaces import (
    BrowserLauncher,
    BrowserPage,
    BrowserSession,
    ElementLocator,
    FrameStream,
)
from stepwright.core.types import ElementInfo, FrameConfig, PageSnapshot
from stepwright.error_handling import ActionTimeout, BrowserActionError, NavigationTimeout
from stepwright.monitoring.logger import get_logger, log_performance_metric

logger = get_logger(__name__)

SNAPSHOT_SCRIPT = """
(limit) => {
  const selectors = 'a, button, input, textarea, select, [onclick], [role="button"], [role="link"], [tabindex]';
  const elements = [];
  const nodes = document.querySelectorAll(selectors);
  for (let i = 0; i < nodes.length && elements.length < limit; i++) {
    const el = nodes[i];
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) continue;
    const cls = typeof el.className === 'string' ? el.className : null;
    elements.push({
      index: i,
      tag: el.tagName.toLowerCase(),
      id: el.id || null,
      classes: cls || null,
      text: el.innerText ? el.innerText.slice(0, 100) : null,
      placeholder: el.placeholder || null,
      name: el.getAttribute('name') || null,
      type: el.getAttribute('type') || null,
      href: el.href || null,
      aria_label: el.getAttribute('aria-label') || null,
      role: el.getAttribute('role') || null,
      value: typeof el.value === 'string' ? el.value || null : null,
    });
  }
  return {url: window.location.href, title: document.title, elements};
}
"""


def normalize_url(url: str) -> str:
    """Prefix a scheme when the step names a bare host."""
    url = url.strip()
    if not url.startswith(("http://", "https://", "file://", "about:", "data:")):
        url = "https://" + url
    return url


class PlaywrightLocator(ElementLocator):
    """Wraps a Playwright locator, mapping its errors to step errors."""

    def __init__(self, locator: Locator, selector: str, action_timeout_ms: int) -> None:
        self._locator = locator
        self.selector = selector
        self._action_timeout_ms = action_timeout_ms

    async def is_visible(self, timeout_ms: int) -> bool:
        try:
            if timeout_ms <= 0:
                return await self._locator.is_visible()
            await self._locator.wait_for(state="visible", timeout=timeout_ms)
            return True
        except PlaywrightError:
            # Covers probe timeouts and selectors the engine cannot parse
            return False

    async def click(self, timeout_ms: Optional[int] = None) -> None:
        timeout = timeout_ms or self._action_timeout_ms
        try:
            await self._locator.click(timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise ActionTimeout("click", timeout, cause=e) from e
        except PlaywrightError as e:
            raise BrowserActionError(
                f"Click failed: {e.message}", action="click", selector=self.selector, cause=e
            ) from e

    async def fill(self, value: str, timeout_ms: Optional[int] = None) -> None:
        timeout = timeout_ms or self._action_timeout_ms
        try:
            await self._locator.fill(value, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise ActionTimeout("fill", timeout, cause=e) from e
        except PlaywrightError as e:
            raise BrowserActionError(
                f"Fill failed: {e.message}", action="fill", selector=self.selector, cause=e
            ) from e


class PlaywrightPage(BrowserPage):
    """Page adapter that always drives the most recently opened tab."""

    def __init__(self, context: BrowserContext, action_timeout_ms: int) -> None:
        self._context = context
        self._action_timeout_ms = action_timeout_ms

    @property
    def active_page(self) -> Page:
        pages = self._context.pages
        if not pages:
            raise BrowserActionError("Browser context has no open page")
        return pages[-1]

    @property
    def url(self) -> str:
        return self.active_page.url

    async def title(self) -> str:
        return await self.active_page.title()

    async def navigate(self, url: str, timeout_ms: int) -> None:
        target = normalize_url(url)
        logger.info("Navigating to URL", extra={"url": target})
        start_time = asyncio.get_running_loop().time()

        try:
            await self.active_page.goto(
                target, wait_until="domcontentloaded", timeout=timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(target, timeout_ms, cause=e) from e
        except PlaywrightError as e:
            raise BrowserActionError(
                f"Navigation to {target} failed: {e.message}", action="navigate", cause=e
            ) from e

        elapsed_ms = (asyncio.get_running_loop().time() - start_time) * 1000
        log_performance_metric("page_navigation", elapsed_ms, context={"url": target})

    def locate(self, selector: str) -> ElementLocator:
        return PlaywrightLocator(
            self.active_page.locator(selector).first, selector, self._action_timeout_ms
        )

    async def locate_all(self, selector: str) -> List[ElementLocator]:
        try:
            matches = await self.active_page.locator(selector).all()
        except PlaywrightError:
            return []
        return [
            PlaywrightLocator(match, selector, self._action_timeout_ms) for match in matches
        ]

    async def screenshot(self) -> bytes:
        try:
            return await self.active_page.screenshot(type="png", full_page=False)
        except PlaywrightError as e:
            raise BrowserActionError(
                f"Screenshot failed: {e.message}", action="screenshot", cause=e
            ) from e

    async def wait_network_idle(self, timeout_ms: int) -> bool:
        try:
            await self.active_page.wait_for_load_state("networkidle", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            logger.debug("Network did not settle", extra={"timeout_ms": timeout_ms})
            return False
        except PlaywrightError:
            return False

    async def keyboard_press(self, key: str) -> None:
        logger.debug("Pressing key", extra={"key": key})
        try:
            await self.active_page.keyboard.press(key)
        except PlaywrightError as e:
            raise BrowserActionError(
                f"Key press '{key}' failed: {e.message}", action="press_key", cause=e
            ) from e

    async def scroll_by(self, delta_y: int) -> None:
        await self.active_page.evaluate("(dy) => window.scrollBy(0, dy)", delta_y)

    async def scroll_to_top(self) -> None:
        await self.active_page.evaluate("window.scrollTo(0, 0)")

    async def wait(self, milliseconds: int) -> None:
        logger.debug("Waiting", extra={"milliseconds": milliseconds})
        await asyncio.sleep(milliseconds / 1000)

    async def snapshot_elements(self, limit: int) -> PageSnapshot:
        raw = await self.active_page.evaluate(SNAPSHOT_SCRIPT, limit)
        return PageSnapshot(
            url=raw.get("url", ""),
            title=raw.get("title", ""),
            elements=[ElementInfo(**element) for element in raw.get("elements", [])],
        )

    async def stream_frames(
        self,
        config: FrameConfig,
        on_frame: Callable[[str], Awaitable[None]],
    ) -> Optional[FrameStream]:
        return await CDPFrameStream.start(self.active_page, config, on_frame)


class PlaywrightSession(BrowserSession):
    """One Chromium process, owned by exactly one run."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        viewport_width: int,
        viewport_height: int,
        timeout: int,
        action_timeout_ms: int,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._viewport = {"width": viewport_width, "height": viewport_height}
        self._timeout = timeout
        self._action_timeout_ms = action_timeout_ms
        self._context: Optional[BrowserContext] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def new_page(self) -> BrowserPage:
        if self._closed:
            raise BrowserActionError("Browser session already closed")
        if self._context is None:
            self._context = await self._browser.new_context(viewport=self._viewport)
            self._context.set_default_timeout(self._timeout)
        await self._context.new_page()
        return PlaywrightPage(self._context, self._action_timeout_ms)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._context:
                await self._context.close()
            await self._browser.close()
        except PlaywrightError as e:
            logger.warning(f"Error while closing browser: {e}")
        finally:
            await self._playwright.stop()
        logger.info("Browser stopped")


class PlaywrightBrowser(BrowserLauncher):
    """Launches an exclusive Chromium session per run."""

    def __init__(
        self,
        headless: Optional[bool] = None,
        viewport_width: Optional[int] = None,
        viewport_height: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> None:
        """
        Initialize the launcher.

        Args:
            headless: Run browser in headless mode
            viewport_width: Browser viewport width
            viewport_height: Browser viewport height
            timeout: Default timeout in milliseconds
        """
        settings = get_settings()
        self.headless = headless if headless is not None else settings.browser_headless
        self.viewport_width = viewport_width or settings.browser_viewport_width
        self.viewport_height = viewport_height or settings.browser_viewport_height
        self.timeout = timeout or settings.browser_timeout
        self.action_timeout_ms = settings.action_timeout_ms

    async def launch(self) -> BrowserSession:
        logger.info(
            "Starting browser",
            extra={
                "headless": self.headless,
                "viewport": f"{self.viewport_width}x{self.viewport_height}",
            },
        )
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
        except PlaywrightError as e:
            await playwright.stop()
            raise BrowserActionError(
                f"Could not launch browser: {e.message}", action="launch", cause=e
            ) from e

        return PlaywrightSession(
            playwright,
            browser,
            self.viewport_width,
            self.viewport_height,
            self.timeout,
            self.action_timeout_ms,
        )
