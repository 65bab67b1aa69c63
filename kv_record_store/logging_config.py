"""
Logging setup for applications embedding kv_record_store.

The library itself only emits through ``logging.getLogger(__name__)``;
handlers are attached here on request.
"""

from __future__ import annotations
import logging
import sys
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "kv_record_store"


def configure_logging(level: Union[int, str] = logging.INFO, rich_output: bool = True) -> logging.Handler:
    """
    Attach a single handler to the package logger and return it.

    Calling this again replaces the previously attached handler, so it is
    safe to call from both an application and its test setup.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        if getattr(h, "_kv_record_store", False):
            logger.removeHandler(h)

    handler: logging.Handler
    if rich_output:
        handler = RichHandler(
            console=Console(file=sys.stderr),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
    handler._kv_record_store = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
