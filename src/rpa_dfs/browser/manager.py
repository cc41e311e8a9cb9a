"""
Browser Manager - Chromium lifecycle for workflow runs.

One persistent Chromium profile, one page. The browser is started on the
first request for the page and torn down by ``shutdown``.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
from playwright.async_api import async_playwright, BrowserContext, Page, Playwright

from ..core.config import BrowserConfig

logger = structlog.get_logger()

# Flags that keep Chromium stable inside containers and unfocused windows
CHROMIUM_ARGS = (
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-extensions",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
)


class BrowserManager:
    """
    Owns the Playwright driver and a persistent browser profile.

    Cookies and local storage live in ``user_data_dir``, so a login done in
    one run is still there for the next one.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._profile: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._lock = asyncio.Lock()

    @property
    def headless(self) -> bool:
        return self.config.headless

    @property
    def viewport(self) -> dict[str, int]:
        return {
            "width": self.config.viewport_width,
            "height": self.config.viewport_height,
        }

    @property
    def is_initialized(self) -> bool:
        return self._profile is not None

    async def initialize(self) -> None:
        """Start Playwright and open the persistent profile."""
        async with self._lock:
            if self._profile is not None:
                return

            profile_dir = Path(self.config.user_data_dir)
            profile_dir.mkdir(parents=True, exist_ok=True)
            logger.info(
                "browser_starting",
                headless=self.headless,
                profile=str(profile_dir),
            )

            self._playwright = await async_playwright().start()
            try:
                self._profile = await self._playwright.chromium.launch_persistent_context(
                    str(profile_dir),
                    headless=self.headless,
                    viewport=self.viewport,
                    locale="en-US",
                    args=list(CHROMIUM_ARGS),
                )
            except Exception:
                await self._playwright.stop()
                self._playwright = None
                raise

            self._profile.set_default_timeout(self.config.default_timeout_ms)
            pages = self._profile.pages
            self._page = pages[0] if pages else await self._profile.new_page()
            logger.info("browser_started")

    async def get_page(self) -> Page:
        """The run's page, starting the browser or reopening the page as needed."""
        if self._profile is None:
            await self.initialize()

        if self._page is None or self._page.is_closed():
            async with self._lock:
                self._page = await self._profile.new_page()
                logger.debug("browser_page_reopened")

        return self._page

    async def shutdown(self) -> None:
        """Close the profile and stop Playwright; failures are only logged."""
        async with self._lock:
            if self._profile is None:
                return

            logger.info("browser_stopping")
            try:
                await self._profile.close()
            except Exception as e:
                logger.error("browser_profile_close_failed", error=str(e))

            # The driver must stop even when the profile failed to close
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.error("browser_stop_failed", error=str(e))
            finally:
                self._profile = None
                self._page = None
                self._playwright = None

            logger.info("browser_stopped")
