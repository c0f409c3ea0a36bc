"""
Browser kiosk using Playwright.

Opens the test renderer in Chromium and exposes the page's full-screen API
to the session engine as a ``FullscreenSurface``.
"""

from typing import Optional

from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from proctor.config import settings
from proctor.integrity import BLOCKED_SHORTCUTS
from proctor.logger import setup_logger
from proctor.primitives.fullscreen import FullscreenSurface
from proctor.utils.exceptions import CapabilityUnsupported, FullscreenError, ProctorError

logger = setup_logger(__name__)

CHANGE_BINDING = "__proctorFullscreenChange"

# Forwards fullscreenchange to Python and swallows blocked shortcuts and the
# context menu while window.__proctorActive is set.
_PAGE_HOOKS = """
(blocked) => {
    if (window.__proctorHooked) return;
    window.__proctorHooked = true;
    window.__proctorActive = true;
    document.addEventListener('fullscreenchange', () => {
        window.%(binding)s(!!document.fullscreenElement);
    });
    document.addEventListener('contextmenu', (e) => {
        if (window.__proctorActive) e.preventDefault();
    });
    document.addEventListener('keydown', (e) => {
        if (!window.__proctorActive) return;
        const key = (e.key || '').toLowerCase();
        for (const rule of blocked) {
            if (rule.key !== key) continue;
            if (rule.ctrl && !e.ctrlKey) continue;
            if (rule.shift && !e.shiftKey) continue;
            e.preventDefault();
            return;
        }
    });
}
""" % {"binding": CHANGE_BINDING}


class PlaywrightFullscreen(FullscreenSurface):
    """
    Full-screen surface backed by a live Playwright page.
    """

    def __init__(self, page: Page) -> None:
        super().__init__()
        self.page = page
        self.supported = False
        self._installed = False

    async def install(self) -> bool:
        """
        Hook the page. Must run before the surface is handed to a controller.

        Returns:
            Whether the page exposes the full-screen API
        """
        if self._installed:
            return self.supported
        await self.page.expose_function(CHANGE_BINDING, self._on_change)
        await self.page.evaluate(_PAGE_HOOKS, BLOCKED_SHORTCUTS)
        self.supported = bool(
            await self.page.evaluate("() => !!document.documentElement.requestFullscreen")
        )
        self._active = bool(await self.page.evaluate("() => !!document.fullscreenElement"))
        self._installed = True
        logger.info(f"🖥️  Page hooked (fullscreen supported: {self.supported})")
        return self.supported

    def _on_change(self, active: bool) -> None:
        self._notify(bool(active))

    async def request(self) -> None:
        if not self.supported:
            raise CapabilityUnsupported("Fullscreen not supported")
        try:
            await self.page.evaluate("() => document.documentElement.requestFullscreen()")
        except PlaywrightError as e:
            raise FullscreenError(f"requestFullscreen rejected: {e}") from e

    async def exit(self) -> None:
        try:
            await self.page.evaluate(
                "() => document.fullscreenElement ? document.exitFullscreen() : null"
            )
        except PlaywrightError as e:
            raise FullscreenError(f"exitFullscreen rejected: {e}") from e

    async def release(self) -> None:
        """Stop enforcing shortcuts once the test is over."""
        try:
            await self.page.evaluate("() => { window.__proctorActive = false; }")
        except PlaywrightError as e:
            logger.warning(f"⚠️ Could not release page hooks: {e}")


class BrowserManager:
    """
    Manages Playwright browser lifecycle.
    """

    def __init__(self) -> None:
        self.playwright = None
        self.browser: Optional[Browser] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize Playwright and browser."""
        if self._initialized:
            return
        try:
            logger.info("🌐 Initializing Playwright browser...")
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=settings.headless,
                args=["--no-first-run", "--disable-infobars"],
            )
            self._initialized = True
            logger.info("✅ Browser initialized successfully")
        except Exception as e:
            logger.error(f"❌ Failed to initialize browser: {e}")
            raise ProctorError(f"Browser initialization failed: {e}")

    async def close(self) -> None:
        """Close browser and cleanup."""
        if self.browser:
            await self.browser.close()
            logger.info("🔒 Browser closed")
        if self.playwright:
            await self.playwright.stop()
            logger.info("🔒 Playwright stopped")
        self._initialized = False

    async def open_kiosk(self, url: str, timeout: Optional[int] = None) -> PlaywrightFullscreen:
        """
        Open the renderer page and hook its full-screen API.

        Returns:
            Installed surface wrapping the page
        """
        if not self._initialized:
            await self.initialize()

        timeout = timeout or settings.playwright_timeout
        page: Optional[Page] = None
        try:
            logger.info(f"📄 Opening renderer: {url}")
            page = await self.browser.new_page()  # type: ignore[union-attr]
            await page.set_viewport_size({"width": 1280, "height": 800})
            await page.goto(url, wait_until="networkidle", timeout=timeout)
            surface = PlaywrightFullscreen(page)
            await surface.install()
            return surface
        except PlaywrightTimeout:
            logger.error(f"⏱️ Timeout loading renderer: {url}")
            if page:
                await page.close()
            raise ProctorError(f"Renderer load timeout after {timeout}ms")
        except PlaywrightError as e:
            logger.error(f"❌ Error loading renderer: {e}")
            if page:
                await page.close()
            raise ProctorError(f"Failed to load renderer: {e}")


# Global browser manager instance
browser_manager = BrowserManager()
