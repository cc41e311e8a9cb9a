"""Structured logging setup."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from .config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None) -> Optional[Path]:
    """
    Configure structlog on top of the stdlib logging module.

    Console output goes to stderr. When ``config.log_dir`` is set, records are
    also appended to a daily file ``rpa-dfs_<YYYY-MM-DD>.log`` in that
    directory, whose path is returned.
    """
    config = config or LoggingConfig()
    fmt = config.format

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    log_file: Optional[Path] = None
    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"rpa-dfs_{datetime.now().strftime('%Y-%m-%d')}.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, config.level),
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if fmt == "json"
            else structlog.dev.ConsoleRenderer(colors=log_file is None),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file
