"""Logging module."""

import logging
import os
from datetime import datetime
from typing import Optional

import pytz
from colorlog import ColoredFormatter

LOG_COLORS = {
    "DEBUG": "white",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def _log_timezone(name: str) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logging.getLogger("watcher").warning(
            "Unknown timezone `%s`, defaulting to `UTC`.",
            name,
        )
        return pytz.utc


class TimezoneFormatter(ColoredFormatter):
    """Colorized log formatter with timestamps in a specific timezone."""

    def __init__(self, fmt: str, tz: pytz.BaseTzInfo, **kwargs) -> None:
        super().__init__(fmt, **kwargs)
        self.tz = tz

    def formatTime(  # noqa: N802
        self,
        record: logging.LogRecord,
        datefmt: Optional[str] = None,
    ) -> str:
        """Convert record time to the configured timezone."""
        utc_dt = datetime.fromtimestamp(record.created, tz=pytz.utc)
        local_dt = utc_dt.astimezone(self.tz)
        if datefmt:
            return local_dt.strftime(datefmt)
        # Use ISO 8601 format
        return local_dt.isoformat()


def configure_logging(logger_name: str = "watcher") -> logging.Logger:
    """Set up logging with colorized output and a configurable timezone.

    The level comes from `LOG_LEVEL` and the timezone from `LOG_TZ`.
    Loggers of the `watcher` modules propagate to the configured one.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        # Avoid re-adding handlers if the logger is already configured
        return logger

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    level = getattr(logging, log_level, logging.INFO)
    logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    # Define the formatter with color and PID
    formatter = TimezoneFormatter(
        "%(log_color)s%(asctime)s - PID %(process)d - %(name)s - %(levelname)s - "
        "%(message)s",
        tz=_log_timezone(os.getenv("LOG_TZ", "UTC")),
        log_colors=LOG_COLORS,
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
