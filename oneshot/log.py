"""Logging setup for loguru sinks."""
import sys

from loguru import logger

from .config import Settings, settings as default_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> - <level>{message}</level>"
)


def setup_logging(settings: Settings | None = None) -> list[int]:
    """Replace loguru's default sink with the configured ones.

    Installs a stderr sink at ``settings.log_level`` and, when
    ``settings.log_file`` is set, a rotating file sink that keeps DEBUG.
    Call this once, early; calling it again resets the sinks.

    Returns:
        Ids of the sinks added, for ``logger.remove``
    """
    settings = settings or default_settings

    logger.remove()
    logger.configure(extra={"module": "oneshot"})

    sink_ids = [logger.add(
        sys.stderr,
        level=settings.log_level,
        format=LOG_FORMAT,
        backtrace=settings.debug,
        diagnose=settings.debug,
    )]

    if settings.log_file:
        sink_ids.append(logger.add(
            settings.log_file,
            level="DEBUG",
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
        ))

    return sink_ids
