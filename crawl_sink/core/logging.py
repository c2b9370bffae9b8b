"""
Logging setup for the crawl sink.

The sink runs inside a crawler host, so ``setup_logging`` is normally
called once by ``sink_lifespan``. Writer and pool lifecycle go to info,
skipped payloads and discarded writers to warning, and per-URI write
failures to error. The driver's own chatter is held at warning so the
per-document debug lines stay readable.
"""

import logging
import sys
from typing import Optional

from crawl_sink.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DRIVER_LOGGERS = ("pymongo", "pymongo.serverSelection", "pymongo.connection")


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route sink logs to stdout at ``level`` (default: ``settings.log_level``).

    Unknown level names fall back to INFO. Reconfigures the root logger
    even if the host already configured it.
    """
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
        force=True,
    )

    for name in DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
