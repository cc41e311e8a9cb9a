"""Engine error definitions."""

import copy
import hashlib
from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"           # Diagnostic only, run continues
    MEDIUM = "medium"     # Single run aborted
    HIGH = "high"         # Input rejected, nothing executed
    CRITICAL = "critical" # Backend unusable


class ErrorCategory(Enum):
    """Error categories for routing and handling."""
    TRANSIENT = "transient"       # Network, timeout - may resolve on a rerun
    PERMANENT = "permanent"       # Config error, malformed input - won't resolve
    RESOURCE = "resource"         # Browser process, disk
    EXTERNAL = "external"         # Backend / target site issue
    VALIDATION = "validation"     # Workflow or context validation failure


class FrameworkError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def wrapped(self, prefix: str) -> "FrameworkError":
        """
        Return a copy of this error with ``prefix`` prepended to the message.

        The copy keeps the concrete class, so callers can still catch
        e.g. ``BackendActionError`` after a sequence or loop wrapped it.
        """
        clone = copy.copy(self)
        clone.message = f"{prefix}: {self.message}"
        clone.args = (clone.message,)
        clone.context = dict(self.context)
        return clone

    def fingerprint(self) -> str:
        """Generate error fingerprint for deduplication."""
        components = [
            self.__class__.__name__,
            self.category.value,
            str(self.context.get("node_type", "")),
            str(self.context.get("selector", "")),
        ]
        return hashlib.sha256(":".join(components).encode()).hexdigest()[:16]

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/storage."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
            "fingerprint": self.fingerprint(),
        }


class ConfigError(FrameworkError):
    """Configuration or input file loading error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path


class WorkflowValidationError(FrameworkError):
    """
    Workflow document rejected at load time.

    ``path`` holds the structural location of the offending node, e.g.
    ``("graph", "next", "branches.yes", "sequence[1]")``.
    """

    def __init__(self, message: str, path: tuple[str, ...] = (), **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.path = tuple(path)
        self.context["path"] = ".".join(self.path)


class InvalidNodeTypeError(WorkflowValidationError):
    """Node carries an unrecognized ``nodeType`` tag."""

    def __init__(self, message: str, node_type: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.context["node_type"] = node_type


class MissingFieldError(WorkflowValidationError):
    """Node lacks a field its type requires, or the field is empty/non-positive."""

    def __init__(
        self,
        message: str,
        node_type: Optional[str] = None,
        fields: tuple[str, ...] = (),
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.context["node_type"] = node_type
        self.context["fields"] = list(fields)


class BrowserError(FrameworkError):
    """Browser automation error."""

    def __init__(
        self,
        message: str,
        selector: Optional[str] = None,
        url: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        super().__init__(message, **kwargs)
        self.context["selector"] = selector
        self.context["url"] = url


class BackendActionError(FrameworkError):
    """An effectful node's backend call failed; aborts the run."""

    def __init__(self, message: str, node_type: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.node_type = node_type
        self.context["node_type"] = node_type


class IteratorSourceError(FrameworkError):
    """A forEach node's context key is missing or does not hold a list."""

    def __init__(self, message: str, param: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["node_type"] = "forEach"
        self.context["param"] = param
