from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

from PHARMALINK.server.utils.constants import LOGS_PATH

LOGGER_NAME = "PHARMALINK"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILENAME = "pharmalink.log"


# -----------------------------------------------------------------------------
def build_logger(name: str = LOGGER_NAME, level: int = logging.DEBUG) -> logging.Logger:
    instance = logging.getLogger(name)
    if instance.handlers:
        return instance
    instance.setLevel(level)
    instance.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    instance.addHandler(console)

    try:
        os.makedirs(LOGS_PATH, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(LOGS_PATH, LOG_FILENAME),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
    except OSError:
        # read-only checkouts still get console logging
        return instance
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    instance.addHandler(file_handler)
    return instance


logger = build_logger()
