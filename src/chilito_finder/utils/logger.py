"""
Chilito Finder Logger Module
----------------------------

This module configures the package logger for the search pipeline. Console output is
human readable; the optional log file receives one-line JSON entries with the following
core fields:

  - timestamp: ISO-formatted datetime string when the event occurred
  - level:     logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
  - logger:    the name of the logger that emitted the record
  - message:   the formatted log message

Any extra attributes you attach to log calls (via the `extra=` argument)
are automatically included in the JSON payload under their own keys.

Classes:
    JsonFormatter: Custom formatter that introspects a LogRecord and serializes
                   its data to JSON, omitting the standard logging attributes
                   listed in its `builtins` ignore set.

Globals:
    logger (logging.Logger): Package-level logger ("chilito_finder"). Handlers are
                             attached by `setup_logger`, normally from the CLI.

Usage:
    from chilito_finder.utils.logger import logger

    logger.debug("Starting search", extra={"search_id": sid})
    logger.info("Found %d stores", count, extra={"operation": "locate"})
    logger.error("Menu request failed", exc_info=True)
"""

import json
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from ..config import LOGS_DIR, LOG_TO_FILE

LOGGER_NAME = "chilito_finder"


class JsonFormatter(logging.Formatter):
    builtins = {
        "name", "msg", "args", "levelname", "levelno",
        "pathname", "filename", "module", "exc_info",
        "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread",
        "threadName", "processName", "process", "taskName",
    }

    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level":     record.levelname,
            "logger":    record.name,
            "message":   record.getMessage(),
        }
        # Pick up any extra attributes
        for key, value in record.__dict__.items():
            if key not in self.builtins:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)

# ----------------------------------------------------------------------------------------------------------

logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(logging.DEBUG)
logger.addHandler(logging.NullHandler())

# ----------------------------------------------------------------------------------------------------------

def setup_logger(
    name: str = LOGGER_NAME,
    level: int = logging.INFO,
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Attach a console handler and a rotating JSON file handler to a logger.

    Args:
        name: Name of the logger (default: the package logger)
        level: Console logging level (default: INFO). The file always receives DEBUG.
        log_file: Optional path to log file (default: LOGS_DIR/chilito_<timestamp>.log).
                  Skipped entirely when CHILITO_LOG_TO_FILE is off and no path is given.

    Returns:
        Configured logger instance
    """
    configured = logging.getLogger(name)
    configured.setLevel(logging.DEBUG)

    for handler in list(configured.handlers):
        if not isinstance(handler, logging.NullHandler):
            configured.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    ))
    configured.addHandler(console_handler)

    if log_file is None and LOG_TO_FILE:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = LOGS_DIR / f"chilito_{ts}.log"

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=10_000_000,
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        configured.addHandler(file_handler)

    return configured
