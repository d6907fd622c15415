"""Loguru configuration shared by every ccx entry point."""

import sys

from loguru import logger

from ccx.core.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

STDERR_FORMAT = "<level>{level: <8}</level> | <level>{message}</level>"


def configure_logging(settings: Settings) -> None:
    """Configure loguru based on settings."""
    logger.remove()  # Remove default handler

    level = "DEBUG" if settings.debug else settings.log_level

    # sys.stderr is resolved per message so that redirected streams are honoured
    logger.add(
        lambda msg: print(msg, end="", file=sys.stderr),
        level=level,
        format=LOG_FORMAT if settings.debug else STDERR_FORMAT,
        colorize=True,
    )

    try:
        settings.debug_log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Debug log disabled: {e}")
        return

    logger.add(
        str(settings.debug_log_path),
        rotation="1 day",
        retention="7 days",
        level="DEBUG",
        format=LOG_FORMAT,
    )
