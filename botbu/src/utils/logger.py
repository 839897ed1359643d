"""
Bot Bu - Logging
=================
Pre-configured logger factory so every module logs with the same
format.  The component tag convention is ``[RAG]``, ``[TIER1]``,
``[RATE]`` … at the start of each message.

Logging verbosity is driven by ``settings.ENV``:
  • ``"dev"``  → DEBUG level  (maximum detail)
  • ``"prod"`` → WARNING level (errors & warnings only)

Usage:
    from botbu.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[RAG] Cache hit")
"""

import logging
import sys

from botbu.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return a named logger with the standard console handler attached.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level override; defaults to the ``ENV`` mapping.
    """
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(resolved_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved_level)
        console_handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(console_handler)

        # Keep uvicorn's root handlers from printing every line twice
        logger.propagate = False

    return logger
