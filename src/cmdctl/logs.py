"""Logging setup for the cmdctl command line entry point.

Library code only calls ``logging.getLogger(__name__)``; handlers are
installed here, by the application.
"""

from __future__ import annotations

import logging
import sys

from .config import Config

__all__ = ["LOG_FORMAT", "setup_logging"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config, verbose: bool = False) -> None:
    """Install log handlers.

    With ``config.log_debug`` everything at DEBUG goes to ``config.log_file``;
    otherwise INFO (DEBUG when verbose) goes to stderr. Third party loggers
    stay at WARNING.
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    logging.getLogger("cmdctl").setLevel(log_level)
