"""Logging helpers."""

import logging
from typing import Optional

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a module logger under the adminsync namespace."""
    return logging.getLogger(name)


def configure_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """
    Install a single stream handler on the package root logger.

    Calling this more than once replaces the handler instead of stacking them.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ...)
        fmt: Optional log format string
    """
    root = logging.getLogger("adminsync")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper())
