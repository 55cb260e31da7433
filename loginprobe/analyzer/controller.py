"""Page controller interface and its Playwright implementation."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    async_playwright,
)

from ..errors import ControllerError, PageReadError

logger = logging.getLogger(__name__)

# Clears the value through the DOM and fires the events frameworks listen for.
JS_CLEAR_FIELD = """
(el) => {
    el.focus();
    el.value = '';
    el.setAttribute('value', '');
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
}
"""

JS_CLICK = "(el) => el.click()"

JS_BODY_TEXT = "() => document.body ? document.body.innerText : ''"


class PageController(Protocol):
    """Remote control over a single browser page.

    All operations are sequential; callers never issue two at once.
    """

    async def navigate(self, url: str, timeout: Optional[float] = None) -> None: ...

    async def current_location(self) -> str: ...

    async def read_title_url_body(self) -> tuple[str, str, str]: ...

    async def find_first_existing(self, selectors: list[str]) -> str: ...

    async def exists(self, selector: str, timeout: Optional[float] = None) -> bool: ...

    async def get_attribute(self, selector: str, name: str) -> Optional[str]: ...

    async def set_field(self, selector: str, value: str, aggressive: bool = False) -> None: ...

    async def get_field_value(self, selector: str) -> str: ...

    async def click(self, selector: str) -> None: ...

    async def screenshot(self) -> bytes: ...


class PlaywrightController:
    """PageController backed by a Playwright Chromium page."""

    def __init__(
        self,
        headless: bool = True,
        width: int = 1280,
        height: int = 800,
        executable_path: str = "",
        navigation_timeout: float = 30.0,
        post_navigation_wait: float = 2.0,
        read_timeout: float = 10.0,
        probe_timeout: float = 1.0,
        interaction_timeout: float = 10.0,
    ):
        self.headless = headless
        self.width = width
        self.height = height
        self.executable_path = executable_path
        self.navigation_timeout = navigation_timeout
        self.post_navigation_wait = post_navigation_wait
        self.read_timeout = read_timeout
        self.probe_timeout = probe_timeout
        self.interaction_timeout = interaction_timeout
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @classmethod
    def from_settings(cls, settings) -> "PlaywrightController":
        """Build a controller from BrowserSettings."""
        return cls(
            headless=settings.headless,
            width=settings.width,
            height=settings.height,
            executable_path=settings.executable_path,
            navigation_timeout=settings.navigation_timeout,
            post_navigation_wait=settings.post_navigation_wait,
            read_timeout=settings.read_timeout,
            probe_timeout=settings.probe_timeout,
            interaction_timeout=settings.interaction_timeout,
        )

    async def start(self):
        """Start the browser and open the single working page."""
        self._playwright = await async_playwright().start()
        launch_kwargs: dict = {
            "headless": self.headless,
            "args": ["--disable-dev-shm-usage", "--disable-gpu"],
        }
        if self.executable_path:
            launch_kwargs["executable_path"] = self.executable_path
        self._browser = await self._playwright.chromium.launch(**launch_kwargs)
        self._context = await self._browser.new_context(
            viewport={"width": self.width, "height": self.height},
            ignore_https_errors=True,
        )
        self._page = await self._context.new_page()
        self._page.set_default_timeout(self.interaction_timeout * 1000)
        logger.info("Browser started (headless=%s)", self.headless)

    async def stop(self):
        """Stop the browser instance."""
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        except PlaywrightError as exc:
            logger.warning("Browser close failed: %s", exc)
        finally:
            self._page = None
            self._context = None
            self._browser = None

        try:
            if self._playwright:
                await self._playwright.stop()
        except Exception as exc:  # pragma: no cover - defensive
            logger.warning("Playwright stop error: %s", exc)
        finally:
            self._playwright = None

        logger.info("Browser stopped")

    async def __aenter__(self) -> "PlaywrightController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise ControllerError("page", "browser not started")
        return self._page

    async def navigate(self, url: str, timeout: Optional[float] = None) -> None:
        budget = timeout if timeout is not None else self.navigation_timeout
        try:
            await self.page.goto(url, timeout=budget * 1000, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise ControllerError("navigate", str(exc)) from exc

        try:
            await self.page.wait_for_selector("body", state="attached", timeout=budget * 1000)
        except PlaywrightError as exc:
            raise ControllerError("navigate", f"page body never loaded: {exc}") from exc

        if self.post_navigation_wait > 0:
            await asyncio.sleep(self.post_navigation_wait)

    async def current_location(self) -> str:
        return self.page.url

    async def read_title_url_body(self) -> tuple[str, str, str]:
        """Read title, URL and visible body text in one go."""
        try:
            title = await asyncio.wait_for(self.page.title(), timeout=self.read_timeout)
            body = await asyncio.wait_for(self.page.evaluate(JS_BODY_TEXT), timeout=self.read_timeout)
        except (PlaywrightError, asyncio.TimeoutError) as exc:
            raise PageReadError(f"Failed to read page: {exc or 'timed out'}") from exc
        return title or "", self.page.url, body or ""

    async def exists(self, selector: str, timeout: Optional[float] = None) -> bool:
        budget = timeout if timeout is not None else self.probe_timeout
        try:
            count = await asyncio.wait_for(self.page.locator(selector).count(), timeout=budget)
        except (PlaywrightError, asyncio.TimeoutError) as exc:
            logger.debug("Probe for %s gave no match: %s", selector, exc or "timed out")
            return False
        return count > 0

    async def find_first_existing(self, selectors: list[str]) -> str:
        for selector in selectors:
            if await self.exists(selector):
                return selector
        return ""

    async def get_attribute(self, selector: str, name: str) -> Optional[str]:
        try:
            return await self.page.locator(selector).first.get_attribute(
                name, timeout=self.probe_timeout * 1000
            )
        except PlaywrightError as exc:
            logger.debug("Could not read %s of %s: %s", name, selector, exc)
            return None

    async def set_field(self, selector: str, value: str, aggressive: bool = False) -> None:
        """Clear a field, confirm it is empty, then type the value."""
        locator = self.page.locator(selector).first
        timeout_ms = self.interaction_timeout * 1000
        try:
            await locator.wait_for(state="visible", timeout=timeout_ms)
            await locator.focus(timeout=timeout_ms)
            if aggressive:
                await locator.evaluate(JS_CLEAR_FIELD)
                await locator.press("Control+A", timeout=timeout_ms)
                await locator.press("Backspace", timeout=timeout_ms)
            else:
                await locator.fill("", timeout=timeout_ms)

            if await locator.input_value(timeout=timeout_ms):
                await locator.evaluate(JS_CLEAR_FIELD)

            await locator.press_sequentially(value, timeout=timeout_ms)
        except PlaywrightError as exc:
            raise ControllerError("set_field", f"{selector}: {exc}") from exc

    async def get_field_value(self, selector: str) -> str:
        try:
            return await self.page.locator(selector).first.input_value(
                timeout=self.interaction_timeout * 1000
            )
        except PlaywrightError as exc:
            raise ControllerError("get_field_value", f"{selector}: {exc}") from exc

    async def click(self, selector: str) -> None:
        """Click an element, falling back to a DOM click when the native click fails."""
        locator = self.page.locator(selector).first
        try:
            await locator.click(timeout=self.interaction_timeout * 1000, no_wait_after=True)
            return
        except PlaywrightError as exc:
            logger.debug("Native click on %s failed, trying DOM click: %s", selector, exc)

        try:
            await locator.evaluate(JS_CLICK)
        except PlaywrightError as exc:
            raise ControllerError("click", f"{selector}: {exc}") from exc

    async def screenshot(self) -> bytes:
        try:
            return await self.page.screenshot(full_page=True)
        except PlaywrightError as exc:
            raise ControllerError("screenshot", str(exc)) from exc
