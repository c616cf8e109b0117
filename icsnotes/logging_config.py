"""Console logging configuration for icsnotes."""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

DEBUG_ENV = "ICSNOTES_DEBUG"
LOG_LEVEL_ENV = "ICSNOTES_LOG_LEVEL"

# HH:MM:SS  LEVEL   logger.name: message
# Only the level is colorized.
LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Third-party loggers that are chatty at DEBUG/INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")

_HANDLER_NAME = "icsnotes-console"


def _env_debug() -> bool:
    return os.environ.get(DEBUG_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def resolve_level(level_name: Optional[str], debug_mode: bool = False) -> int:
    """Work out the root level from arguments and environment.

    ``ICSNOTES_DEBUG`` (or ``debug_mode``) forces DEBUG; otherwise
    ``ICSNOTES_LOG_LEVEL`` wins over ``level_name``. Unknown names mean INFO.
    """
    if debug_mode or _env_debug():
        return logging.DEBUG

    env_level = os.environ.get(LOG_LEVEL_ENV, "").strip()
    name = (env_level or level_name or "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level_name: Optional[str] = "INFO", debug_mode: bool = False) -> int:
    """Install a colorized stderr handler on the root logger.

    Calling it again only adjusts levels; the handler is added once.

    Args:
        level_name: Root level name, e.g. "INFO"
        debug_mode: Force DEBUG verbosity

    Returns:
        The effective root level
    """
    level = resolve_level(level_name, debug_mode)
    root = logging.getLogger()

    if not any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.set_name(_HANDLER_NAME)
        formatter = ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
    return level
