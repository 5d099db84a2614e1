"""
Core Module - Logging Setup.

One place for the log format used by every entry point.
Library modules only call logging.getLogger(__name__).
"""

import logging
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("aiohttp.access", "sqlalchemy.engine")


def configure_logging(
    level: Union[int, str] = logging.INFO,
    quiet_libraries: bool = True,
    fmt: Optional[str] = None,
) -> None:
    """
    Configure root logging for scripts and long-running processes.

    Args:
        level: Log level name or number
        quiet_libraries: Raise noisy third-party loggers to WARNING
        fmt: Override the log format
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format=fmt or LOG_FORMAT,
        datefmt=DATE_FORMAT,
        force=True,
    )

    if quiet_libraries:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
