"""Browser automation backend using Playwright."""

from .manager import BrowserManager
from .backend import PlaywrightBackend
from .context import BrowserContext

__all__ = ["BrowserManager", "PlaywrightBackend", "BrowserContext"]
