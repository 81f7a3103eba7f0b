"""Logging and time utilities."""

import datetime
import logging
import os
from typing import Optional

import coloredlogs


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
    std_out_log_level: Optional[int] = None,
) -> logging.Logger:
    """Set up coloured log output.

    - Helper function to have nicer logging output in scripts.
    - Tune down some noisy dependency library logging

    Log level is read from ``LOG_LEVEL`` environment variable.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if not std_out_log_level:
        std_out_log_level = numeric_level

    if simplified_logging:
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s %(name)-44s %(message)s"
    date_fmt = "%H:%M:%S"

    coloredlogs.install(level=std_out_log_level, fmt=fmt, date_fmt=date_fmt)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.providers.AsyncHTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("web3.manager.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    return logging.getLogger()


def native_datetime_utc_now() -> datetime.datetime:
    """Get current UTC time as a native datetime object.

    Replacement for the deprecated ``datetime.datetime.utcnow()``.
    All timestamps in this package are naive UTC.
    """
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
