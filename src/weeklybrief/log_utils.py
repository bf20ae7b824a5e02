"""
Centralized logging configuration for weeklybrief.
"""

import logging
import sys

_initialized = False

ROOT_LOGGER = "weeklybrief"


def setup_logging(level: int | str = logging.INFO, format_string: str | None = None) -> logging.Logger:
    """
    Configure logging for the package.
    Only runs once, subsequent calls return the existing logger.
    """
    global _initialized

    if _initialized:
        return logging.getLogger(ROOT_LOGGER)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if format_string is None:
        format_string = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"

    logging.basicConfig(
        level=level,
        format=format_string,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # the google client libraries are chatty at INFO
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _initialized = True
    return logging.getLogger(ROOT_LOGGER)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.
    Initializes logging on first call.
    """
    setup_logging()
    if name.startswith(f"{ROOT_LOGGER}."):
        name = name[len(ROOT_LOGGER) + 1 :]
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
