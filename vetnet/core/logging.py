# vetnet/core/logging.py

import logging
import sys
from typing import Optional

from vetnet.core.config import Settings, settings as default_settings

# Third-party loggers and the level they are held at
QUIET_LOGGERS = {
    "redis": logging.WARNING,
    "jose": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure application-wide logging from Settings.

    - LOG_LEVEL sets the root level (unknown names fall back to INFO)
    - LOG_FORMAT sets the line format of the stdout handler
    - Redis, jose and Uvicorn access chatter is held back (QUIET_LOGGERS)

    When something else (e.g. Uvicorn) already installed handlers, only the
    level is applied.
    """
    config = config or default_settings
    level = getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
    root_logger.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for a vetnet module: ``logger = get_logger(__name__)``."""
    return logging.getLogger(name)
