"""Selector constants for common page elements."""

import re
from typing import Optional

import structlog

logger = structlog.get_logger()


DEFAULT_SELECTORS: dict[str, str] = {
    # Form elements
    "LOGIN_USERNAME": "#username",
    "LOGIN_PASSWORD": "#password",
    "LOGIN_SUBMIT": "#loginButton",
    "EMAIL_INPUT": "input[type='email']",
    "SEARCH_INPUT": "#searchInput",
    "SUBMIT_BUTTON": "button[type='submit']",

    # Navigation
    "HOME_LINK": "a[href='/']",
    "BACK_BUTTON": ".back-button",
    "NEXT_BUTTON": ".next-button",
    "MENU_TOGGLE": ".menu-toggle",

    # Common UI
    "MODAL_CLOSE": ".modal-close",
    "DROPDOWN_TOGGLE": ".dropdown-toggle",
    "CHECKBOX": "input[type='checkbox']",
    "RADIO_BUTTON": "input[type='radio']",
    "FILE_INPUT": "input[type='file']",

    # Tables
    "TABLE_ROW": "tr",
    "TABLE_CELL": "td",
    "TABLE_HEADER": "th",

    # Status messages
    "SUCCESS_MESSAGE": ".success-message",
    "ERROR_MESSAGE": ".error-message",
    "WARNING_MESSAGE": ".warning-message",
    "LOADING_SPINNER": ".loading-spinner",

    # Form validation
    "REQUIRED_FIELD": "[required]",
    "INVALID_FIELD": ".invalid",
    "VALID_FIELD": ".valid",
}

_CONSTANT_PATTERN = re.compile(r"[A-Z0-9_]+")


class SelectorRegistry:
    """
    Maps symbolic constants (``LOGIN_SUBMIT``) to concrete selectors.

    Each registry starts from its own copy of ``DEFAULT_SELECTORS``, so
    mappings added at runtime never leak into other runs.
    """

    def __init__(self, mappings: Optional[dict[str, str]] = None):
        self._mappings: dict[str, str] = dict(DEFAULT_SELECTORS)
        if mappings:
            for constant, selector in mappings.items():
                self.add(constant, selector)

    @staticmethod
    def is_constant(token: str) -> bool:
        """True if ``token`` is non-empty and made only of A-Z, 0-9 and ``_``."""
        return bool(token) and _CONSTANT_PATTERN.fullmatch(token) is not None

    def add(self, constant: str, selector: str) -> None:
        """Add or replace a mapping."""
        if not self.is_constant(constant):
            raise ValueError(f"Not a selector constant: {constant!r}")
        self._mappings[constant] = selector
        logger.debug("selector_mapping_added", constant=constant, selector=selector)

    def remove(self, constant: str) -> None:
        """Remove a mapping; unknown constants are ignored."""
        self._mappings.pop(constant, None)
        logger.debug("selector_mapping_removed", constant=constant)

    def get(self, constant: str) -> Optional[str]:
        return self._mappings.get(constant)

    def has(self, constant: str) -> bool:
        return constant in self._mappings

    def all(self) -> dict[str, str]:
        """Copy of every current mapping."""
        return dict(self._mappings)

    def __contains__(self, constant: str) -> bool:
        return constant in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)
