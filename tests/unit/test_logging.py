"""Unit tests for logging setup."""

import logging

import pytz

from watcher.logging import TimezoneFormatter, configure_logging


def test_configure_logging_is_idempotent():
    """Configuring twice does not add a second handler."""
    logger = configure_logging("watcher.tests.logging")
    try:
        assert configure_logging("watcher.tests.logging") is logger
        assert len(logger.handlers) == 1
    finally:
        logger.handlers.clear()


def test_timestamps_in_configured_timezone():
    """Timestamps are rendered in the configured timezone."""
    formatter = TimezoneFormatter("%(message)s", tz=pytz.timezone("Asia/Tokyo"))
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    record.created = 0

    assert formatter.formatTime(record) == "1970-01-01T09:00:00+09:00"
