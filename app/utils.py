"""
Shared helpers.
"""
import logging
import os


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger.

    The root handler is configured once, on first use, at the level named by
    the LOG_LEVEL environment variable (default INFO).

    Usage:
        from app.utils import get_logger

        log = get_logger(__name__)
    """
    global _configured
    if not _configured:
        logging.basicConfig(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            format=LOG_FORMAT,
        )
        _configured = True
    return logging.getLogger(name)
