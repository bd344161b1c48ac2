"""Loguru sink configuration for the echo ledger."""

import sys

from loguru import logger

from .config import Settings


def configure_logging(settings: Settings) -> None:
    """Replace loguru's default sink with one honouring ``settings``."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level.upper(),
        serialize=settings.log_json,
        backtrace=False,
        diagnose=False,
    )
    logger.bind(level=settings.log_level, json=settings.log_json).debug("Logging configured")
