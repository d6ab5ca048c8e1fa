"""Logging configuration for PingWatch."""

import logging
import os
import sys

LOG_LEVEL_ENV_VAR = "PINGWATCH_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_log_level(value: str | None) -> int:
    """Map a level name (any case) to a logging level, defaulting to INFO."""
    name = (value or "").strip().upper()
    if name not in _LEVEL_NAMES:
        return logging.INFO
    return getattr(logging, name)


def configure_logging() -> None:
    """Send PingWatch logs to stderr.

    The level comes from PINGWATCH_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR,
    CRITICAL); unset or unknown values mean INFO.

    Examples:
        # Trace every ping round and statistics report
        $ PINGWATCH_LOG_LEVEL=DEBUG python -m pingwatch settings.json
    """
    requested = os.environ.get(LOG_LEVEL_ENV_VAR)
    level = resolve_log_level(requested)

    # force=True replaces handlers installed before us (e.g. by Qt or a test runner)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT,
                        stream=sys.stderr, force=True)

    logging.getLogger(__name__).info(
        "Logging to stderr at %s (%s=%s)",
        logging.getLevelName(level),
        LOG_LEVEL_ENV_VAR,
        requested or "unset",
    )
