"""Core engine components."""

from .config import ConfigLoader, EngineConfig
from .results import RunResult, RunStore
from .errors import (
    FrameworkError,
    ConfigError,
    WorkflowValidationError,
    InvalidNodeTypeError,
    MissingFieldError,
    BrowserError,
    BackendActionError,
    IteratorSourceError,
)

__all__ = [
    "ConfigLoader",
    "EngineConfig",
    "RunResult",
    "RunStore",
    "FrameworkError",
    "ConfigError",
    "WorkflowValidationError",
    "InvalidNodeTypeError",
    "MissingFieldError",
    "BrowserError",
    "BackendActionError",
    "IteratorSourceError",
]
