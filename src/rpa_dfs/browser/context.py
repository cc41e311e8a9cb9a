"""
Browser Context - Page wrapper for the workflow actions.

Every operation returns an ActionResult instead of raising, with the
elapsed time and, on failure, an optional screenshot of the page.
"""

import time
from typing import Any, Awaitable, Optional
from dataclasses import dataclass

import structlog
from playwright.async_api import Page

logger = structlog.get_logger()


@dataclass
class ActionResult:
    """Outcome of one page operation."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    duration_ms: float = 0
    screenshot: Optional[bytes] = None


class BrowserContext:
    """
    Thin layer over a Playwright page.

    Playwright already waits for elements to become actionable; this class
    only bounds that wait and converts exceptions into failed results.
    """

    def __init__(
        self,
        page: Page,
        default_timeout: int = 30000,
        screenshot_on_error: bool = True,
    ):
        self.page = page
        self.default_timeout = default_timeout
        self.screenshot_on_error = screenshot_on_error
        self._action_count = 0

    async def navigate(
        self,
        url: str,
        wait_until: str = "domcontentloaded",
        timeout: Optional[int] = None,
    ) -> ActionResult:
        """
        Navigate to URL.

        Args:
            url: Target URL
            wait_until: Wait condition (load, domcontentloaded, networkidle)
            timeout: Override default timeout
        """
        return await self._run(
            self.page.goto(url, wait_until=wait_until, timeout=timeout or self.default_timeout),
            data={"url": url, "action": "navigate"},
        )

    async def fill(
        self,
        selector: str,
        value: str,
        timeout: Optional[int] = None,
    ) -> ActionResult:
        """Replace the value of a text input."""
        return await self._run(
            self.page.fill(selector, value, timeout=timeout or self.default_timeout),
            data={"selector": selector, "action": "fill", "length": len(value)},
        )

    async def click(
        self,
        selector: str,
        timeout: Optional[int] = None,
    ) -> ActionResult:
        """Click an element."""
        return await self._run(
            self.page.click(selector, timeout=timeout or self.default_timeout),
            data={"selector": selector, "action": "click"},
        )

    async def set_input_files(
        self,
        selector: str,
        file_path: str,
        timeout: Optional[int] = None,
    ) -> ActionResult:
        """Attach a local file to a file input."""
        return await self._run(
            self.page.set_input_files(selector, file_path, timeout=timeout or self.default_timeout),
            data={"selector": selector, "action": "upload", "file": file_path},
        )

    async def _run(self, operation: Awaitable[Any], data: dict[str, Any]) -> ActionResult:
        result = ActionResult(success=True, data=data)
        started = time.monotonic()
        try:
            await operation
        except Exception as e:
            result.success = False
            result.error = str(e) or e.__class__.__name__
            result.screenshot = await self._capture_error_screenshot()
        else:
            self._action_count += 1

        result.duration_ms = (time.monotonic() - started) * 1000
        return result

    async def _capture_error_screenshot(self) -> Optional[bytes]:
        if not self.screenshot_on_error:
            return None

        try:
            return await self.page.screenshot()
        except Exception as e:
            logger.debug("error_screenshot_failed", error=str(e))
            return None

    @property
    def action_count(self) -> int:
        """Number of operations that succeeded."""
        return self._action_count
