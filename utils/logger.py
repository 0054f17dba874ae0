"""Application logger shared by every module"""

import logging
import os
import sys

LOGGER_NAME = "devotional"


def setup_logger(name: str = LOGGER_NAME, level: str = None) -> logging.Logger:
    """Configure and return the application logger"""
    log = logging.getLogger(name)

    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        log.addHandler(handler)

    log.setLevel((level or os.environ.get("LOG_LEVEL", "INFO")).upper())
    return log


logger = setup_logger()
