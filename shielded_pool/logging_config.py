"""
Logging setup shared by every shielded_pool module.

Modules call `get_logger("lean_imt")` and receive the `shielded_pool.lean_imt`
logger. Nothing is printed until an application calls `configure_logging()`;
library use stays silent thanks to the NullHandler on the package logger.
"""
import logging
import os
import sys
from typing import Optional

ROOT_LOGGER_NAME = "shielded_pool"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """
    Args:
        name: dotted suffix, e.g. "pool.eventlog"

    Returns:
        the `shielded_pool.<name>` logger
    """
    if name.startswith(ROOT_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: Optional[str] = None, fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """
    Attach a single stderr handler to the package logger.

    Level comes from the argument, then LOG_LEVEL, then INFO. Calling this
    twice does not duplicate handlers.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for h in root.handlers:
        if getattr(h, "_shielded_pool_handler", False):
            h.setFormatter(logging.Formatter(fmt))
            return root

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler._shielded_pool_handler = True
    root.addHandler(handler)
    return root
