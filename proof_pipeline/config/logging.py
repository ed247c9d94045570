"""Logging configuration using loguru with automatic dev/prod detection."""

import sys

from loguru import logger

from proof_pipeline.config.settings import settings


def configure_logging(level: str | None = None) -> None:
    """
    Configure loguru based on environment settings.

    Behavior:
    - Development (TTY + console format): Colorized, human-readable output
    - Production (non-TTY or json format): JSON-structured logs to stdout
    - Respects LOG_LEVEL from settings unless ``level`` overrides it
    """
    logger.remove()

    level = level or settings.log_level
    is_tty = sys.stderr.isatty()
    use_console_format = settings.log_format.lower() == "console"

    # Records logged without a bound component still render.
    logger.configure(extra={"component": "proof_pipeline"})

    if is_tty and use_console_format:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[component]}</cyan> | <level>{message}</level>",
            level=level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stdout,
            format="{message}",
            level=level,
            serialize=True,
            diagnose=False,
        )


def get_logger(component: str):
    """
    Get a logger instance bound to a specific component name.

    Example:
        >>> log = get_logger("gateway.moderation")
        >>> log.info("Moderation service unavailable, using mock")
    """
    return logger.bind(component=component)


configure_logging()

__all__ = ["logger", "get_logger", "configure_logging"]
