"""Logging setup shared by the CLI and the web server."""

import logging
from typing import Optional

from .config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None, format_str: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name, defaults to LOG_LEVEL from the environment
        format_str: Log format, defaults to LOG_FORMAT
    """
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=format_str or LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
    # The HTTP client logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name."""
    return logging.getLogger(name)
