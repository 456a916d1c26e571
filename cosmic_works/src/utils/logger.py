"""
Cosmic Works - Logging
=======================
Provides a pre-configured logger factory for consistent, readable
log output across all Cosmic Works modules.

Logging verbosity is driven by ``settings.ENV``:
  • ``"dev"``  → DEBUG level  (maximum detail)
  • ``"prod"`` → WARNING level (errors & warnings only)

Usage:
    from cosmic_works.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Something happened")
"""

import logging
import sys

from cosmic_works.config.settings import settings

# ── Resolve default level from environment mode ───────────────────────
_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Create and return a named logger with a standardised formatter.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit logging level override.
               If *None*, the level is derived from ``settings.ENV``.

    Returns:
        A configured ``logging.Logger`` instance.
    """
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(resolved_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved_level)

        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        # Keep records out of the root logger (no duplicate lines)
        logger.propagate = False

    return logger


def mask_connection_string(uri: str) -> str:
    """
    Return a log-safe form of a MongoDB connection string.

    Credentials and query options are dropped; only the scheme and the
    host list survive::

        "mongodb+srv://user:pw@cluster.mongocluster.cosmos.azure.com/?tls=true"
            → "mongodb+srv://cluster.mongocluster.cosmos.azure.com"
    """
    scheme, sep, rest = uri.partition("://")
    if not sep:
        return "****"
    hosts = rest.rsplit("@", 1)[-1].split("/", 1)[0].split("?", 1)[0]
    return f"{scheme}://{hosts}" if hosts else f"{scheme}://****"
