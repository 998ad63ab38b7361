"""
Logging setup: console and rotating file handlers, per-module levels and the
protocol capture buffer.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List

from powerbox_alpaca.config.models import LoggingConfig
from powerbox_alpaca.protocol.logger import get_protocol_logger


LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Third-party loggers that report every request at INFO
QUIET_LOGGERS = ("uvicorn.access",)


def _build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if config.file:
        try:
            handlers.append(RotatingFileHandler(
                config.file,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            ))
        except OSError as e:
            print(f"Failed to open log file {config.file}: {e}", file=sys.stderr)

    return handlers


def setup_logging(config: LoggingConfig) -> None:
    """
    Configure the root logger from the logging section of the config.

    Replaces any handlers already installed, applies per-module level
    overrides and switches the protocol capture buffer on or off.

    Args:
        config: Logging configuration.
    """
    root = logging.getLogger()
    root.setLevel(config.level)

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _build_handlers(config):
        handler.setLevel(config.level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name, level in config.module_levels.items():
        logging.getLogger(name).setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    get_protocol_logger().enabled = config.protocol_capture

    root.info(
        f"Logging initialized at level {config.level}"
        + (f", file {config.file}" if config.file else "")
        + ("" if config.protocol_capture else ", protocol capture off")
    )
