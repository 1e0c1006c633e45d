from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    ElementHandle,
    Page,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)
import asyncio
from typing import Any, List, Optional
from contextlib import asynccontextmanager

from cstiscan.core.config import settings
from cstiscan.core.exceptions import (
    BrowserError,
    NavigationError,
    NavigationTimeoutError,
    ScriptEvaluationError,
    ScriptReferenceError,
    ScriptTimeoutError,
    wrap_exception,
)
from cstiscan.schemas.models import NavigationOutcome
from cstiscan.utils.logger import get_logger

logger = get_logger("tools.visual.browser")


def _is_reference_error(error: Exception) -> bool:
    return "ReferenceError" in str(error)


class PageSurface:
    """
    The browser capabilities the scanner depends on, over one Playwright page.

    Script failures are re-raised as ScriptReferenceError (undefined global)
    or ScriptEvaluationError (anything else); navigation failures as
    NavigationError / NavigationTimeoutError. Main-frame navigations are
    counted so a caller can ask "did anything navigate since marker X?"
    after a trigger without racing the event.
    """

    def __init__(self, page: Page, wait_until: str = None):
        self._page = page
        self.wait_until = wait_until or settings.WAIT_UNTIL
        self._navigations = 0
        self._navigated = asyncio.Event()
        page.on("framenavigated", self._on_frame_navigated)

    def _on_frame_navigated(self, frame):
        if frame == self._page.main_frame:
            self._navigations += 1
            self._navigated.set()

    @property
    def url(self) -> str:
        return self._page.url

    async def navigate(self, url: str, timeout: float = None) -> None:
        timeout = timeout or settings.NAVIGATION_TIMEOUT
        try:
            await self._page.goto(url, wait_until=self.wait_until, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(f"Timed out loading {url}", url=url, cause=e) from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e.message}", url=url, cause=e) from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(script, arg)
        except PlaywrightTimeoutError as e:
            raise ScriptTimeoutError(e.message, cause=e) from e
        except PlaywrightError as e:
            if _is_reference_error(e):
                raise ScriptReferenceError(e.message, cause=e) from e
            raise ScriptEvaluationError(e.message, cause=e) from e

    async def query_all(self, selector: str) -> List[ElementHandle]:
        try:
            return await self._page.query_selector_all(selector)
        except PlaywrightError as e:
            raise BrowserError(f"Cannot enumerate '{selector}': {e.message}", cause=e) from e

    async def type(self, handle: ElementHandle, text: str) -> None:
        try:
            await handle.type(text)
        except PlaywrightError as e:
            raise BrowserError(f"Typing failed: {e.message}", cause=e) from e

    async def press(self, handle: ElementHandle, key: str) -> None:
        try:
            await handle.press(key)
        except PlaywrightError as e:
            raise BrowserError(f"Key press failed: {e.message}", cause=e) from e

    async def click(self, handle: ElementHandle) -> None:
        try:
            await handle.click()
        except PlaywrightError as e:
            raise BrowserError(f"Click failed: {e.message}", cause=e) from e

    async def go_back(self, timeout: float = None) -> None:
        timeout = timeout or settings.HISTORY_TIMEOUT
        try:
            await self._page.go_back(wait_until=self.wait_until, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError("Timed out going back", url=self.url, cause=e) from e
        except PlaywrightError as e:
            raise NavigationError(f"Going back failed: {e.message}", url=self.url, cause=e) from e

    async def reload(self, timeout: float = None) -> None:
        timeout = timeout or settings.HISTORY_TIMEOUT
        try:
            await self._page.reload(wait_until=self.wait_until, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError("Timed out reloading", url=self.url, cause=e) from e
        except PlaywrightError as e:
            raise NavigationError(f"Reload failed: {e.message}", url=self.url, cause=e) from e

    def navigation_marker(self) -> int:
        """Opaque marker to pass to wait_for_navigation after a trigger."""
        self._navigated.clear()
        return self._navigations

    async def wait_for_navigation(self, marker: int, timeout: float = None) -> NavigationOutcome:
        """
        Classify what happened since `marker`: no main-frame navigation within
        the budget, a navigation that settled, or one that did not settle.
        """
        timeout = timeout or settings.POST_TRIGGER_NAVIGATION_TIMEOUT
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        if self._navigations == marker:
            try:
                await asyncio.wait_for(self._navigated.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                return NavigationOutcome.NO_NAVIGATION

        remaining = max(deadline - loop.time(), 0.05)
        try:
            await self._page.wait_for_load_state(self.wait_until, timeout=remaining * 1000)
        except PlaywrightTimeoutError:
            return NavigationOutcome.TIMED_OUT
        except PlaywrightError as e:
            logger.debug(f"Load state wait failed after navigation: {e.message}")
            return NavigationOutcome.TIMED_OUT
        return NavigationOutcome.NAVIGATED


class BrowserManager:
    """
    Owns the Playwright driver, the Chromium process and the single page used
    by one scan run.
    """

    def __init__(self):
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()

    def _setup_signal_handlers(self):
        """
        Cancel the scan task on SIGTERM so the browser closes on the way out.
        SIGINT is left to asyncio, which surfaces it as KeyboardInterrupt.
        """
        import signal
        task = asyncio.current_task()
        if task is None:
            return
        try:
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGTERM, self._on_terminate, task)
        except (NotImplementedError, RuntimeError):
            # Not supported on all platforms/configurations
            pass

    def _on_terminate(self, task: asyncio.Task):
        logger.warning("SIGTERM received, cancelling scan.")
        task.cancel()

    def _launch_options(self) -> dict:
        options = {
            "headless": settings.HEADLESS_BROWSER,
            "args": list(settings.BROWSER_ARGS),
        }
        if settings.BROWSER_CHANNEL:
            options["channel"] = settings.BROWSER_CHANNEL
        return options

    def _context_options(self) -> dict:
        options = {
            "viewport": {"width": settings.VIEWPORT_WIDTH, "height": settings.VIEWPORT_HEIGHT},
        }
        if settings.USER_AGENT:
            options["user_agent"] = settings.USER_AGENT
        return options

    async def start(self):
        """Starts the browser instance if not already running."""
        async with self._lock:
            if self._context is not None:
                return
            try:
                self._playwright = await asyncio.wait_for(
                    async_playwright().start(), timeout=settings.BROWSER_LAUNCH_TIMEOUT
                )
                chromium = self._playwright.chromium
                if settings.BROWSER_USER_DATA_DIR:
                    # Persistent profile: the context IS the browser
                    self._context = await asyncio.wait_for(
                        chromium.launch_persistent_context(
                            settings.BROWSER_USER_DATA_DIR,
                            **self._launch_options(),
                            **self._context_options(),
                        ),
                        timeout=settings.BROWSER_LAUNCH_TIMEOUT,
                    )
                else:
                    self._browser = await asyncio.wait_for(
                        chromium.launch(**self._launch_options()),
                        timeout=settings.BROWSER_LAUNCH_TIMEOUT,
                    )
                    self._context = await self._browser.new_context(**self._context_options())
                self._setup_signal_handlers()
                logger.info("Browser started successfully.")
            except asyncio.TimeoutError as e:
                await self._teardown()
                raise BrowserError("Browser launch timed out", cause=e) from e
            except PlaywrightError as e:
                await self._teardown()
                raise wrap_exception(e, BrowserError, f"Failed to start browser: {e.message}") from e

    async def _teardown(self):
        if self._context:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug(f"Context close failed: {e.message}")
            self._context = None
        if self._browser:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug(f"Browser close failed: {e.message}")
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def stop(self):
        """Stops the browser and cleans up resources."""
        async with self._lock:
            await self._teardown()
            logger.info("Browser stopped.")

    @asynccontextmanager
    async def get_page(self):
        """Context manager yielding a PageSurface over a fresh page."""
        await self.start()
        page = await self._context.new_page()
        try:
            yield PageSurface(page)
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"Page close failed: {e.message}")


browser_manager = BrowserManager()
