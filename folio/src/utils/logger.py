"""
Folio - Logging
================
Logger factory shared by every Folio module, the API and the CLI scripts.

Level resolution, first match wins:
  • ``settings.LOG_LEVEL`` (e.g. ``INFO``) when set
  • ``settings.ENV == "dev"``  → DEBUG
  • ``settings.ENV == "prod"`` → WARNING

Usage:
    from folio.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Synced %d chunk(s)", count)
"""

import logging
import sys

from folio.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP clients used by the Gemini and LanceDB SDKs log every request at INFO.
_NOISY_LIBRARIES = ("httpx", "httpcore", "urllib3", "google_genai", "lancedb")


def resolve_level() -> int:
    if settings.LOG_LEVEL:
        return logging.getLevelName(settings.LOG_LEVEL.upper())
    return _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return a named logger writing ``asctime | level | name | message`` to stdout.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level; defaults to ``resolve_level()``.

    Returns:
        The configured ``logging.Logger``.  Handlers are attached once,
        and records do not propagate to the root logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved_level = level if level is not None else resolve_level()
    logger.setLevel(resolved_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def quiet_library_loggers(level: int = logging.WARNING) -> None:
    """Raise the threshold of chatty third-party loggers."""
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(level)
