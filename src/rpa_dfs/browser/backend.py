"""
Playwright Backend - Automation backend used by the workflow executor.

Translates the executor's capability calls into BrowserContext operations
and turns failed ActionResults into BrowserError exceptions.
"""

import asyncio
from typing import Optional

import structlog

from ..core.config import BrowserConfig
from ..core.errors import BrowserError
from .manager import BrowserManager
from .context import BrowserContext, ActionResult

logger = structlog.get_logger()


class PlaywrightBackend:
    """
    Browser backend for workflow runs.

    Each successful action is followed by a configurable settle pause so
    the page can react before the next node runs.
    """

    def __init__(
        self,
        browser_manager: Optional[BrowserManager] = None,
        config: Optional[BrowserConfig] = None,
    ):
        """
        Initialize the backend.

        Args:
            browser_manager: Browser manager instance (created from config if omitted)
            config: Browser settings; defaults to the manager's config
        """
        self.config = config or (browser_manager.config if browser_manager else BrowserConfig())
        self.browser = browser_manager or BrowserManager(self.config)
        self._context: Optional[BrowserContext] = None
        self._closed = False

    async def _get_context(self) -> BrowserContext:
        """Get or create browser context."""
        if self._closed:
            raise BrowserError("backend is closed")
        if not self._context:
            page = await self.browser.get_page()
            self._context = BrowserContext(
                page,
                default_timeout=self.config.default_timeout_ms,
                screenshot_on_error=self.config.screenshot_on_error,
            )
        return self._context

    async def navigate_to(self, url: str) -> None:
        logger.info("navigating", url=url)
        ctx = await self._get_context()
        result = await ctx.navigate(url)
        self._check(result, f"failed to navigate to {url}", url=url)
        await self._settle(self.config.navigate_settle_ms)

    async def fill_field(self, selector: str, value: str) -> None:
        logger.info("filling_field", selector=selector, length=len(value))
        ctx = await self._get_context()
        result = await ctx.fill(selector, value)
        self._check(result, f"failed to fill field {selector}", selector=selector)
        await self._settle(self.config.fill_settle_ms)

    async def click_element(self, selector: str) -> None:
        logger.info("clicking_element", selector=selector)
        ctx = await self._get_context()
        result = await ctx.click(selector)
        self._check(result, f"failed to click element {selector}", selector=selector)
        await self._settle(self.config.click_settle_ms)

    async def send_file(self, selector: str, file_path: str) -> None:
        logger.info("uploading_file", selector=selector, file=file_path)
        ctx = await self._get_context()
        result = await ctx.set_input_files(selector, file_path)
        self._check(
            result,
            f"failed to upload file {file_path} to {selector}",
            selector=selector,
        )
        await self._settle(self.config.upload_settle_ms)

    async def close(self) -> None:
        """Shut the browser down; later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._context = None
        await self.browser.shutdown()
        logger.info("backend_closed")

    def _check(
        self,
        result: ActionResult,
        message: str,
        selector: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        """Raise BrowserError for a failed action result."""
        if result.success:
            return
        logger.error(
            "browser_action_failed",
            message=message,
            error=result.error,
            screenshot_bytes=len(result.screenshot) if result.screenshot else 0,
        )
        raise BrowserError(f"{message}: {result.error}", selector=selector, url=url)

    async def _settle(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
