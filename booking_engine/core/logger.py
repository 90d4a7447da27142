import sys
from typing import Optional
from loguru import logger
import logging

from booking_engine.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Libraries whose INFO chatter drowns out booking logs
NOISY_LOGGERS = ("uvicorn.access", "httpx", "hpack", "stripe")

class InterceptHandler(logging.Handler):
    """Routes stdlib logging records (uvicorn, supabase, stripe) into loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk past the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

def setup_logging(level: Optional[str] = None, error_log: Optional[str] = None, serialize: Optional[bool] = None):
    """
    Console sink plus a rotated error file.
    Production deployments get JSON lines on stdout for the log collector.
    """
    level = level or settings.LOG_LEVEL
    error_log = error_log or settings.ERROR_LOG_PATH
    if serialize is None:
        serialize = settings.ENVIRONMENT == "production"

    logger.remove()
    if serialize:
        logger.add(sys.stdout, level=level, serialize=True)
    else:
        logger.add(sys.stdout, level=level, format=CONSOLE_FORMAT)

    if error_log:
        logger.add(
            error_log,
            level="ERROR",
            rotation="10 MB",
            retention="1 month",
            compression="zip",
            format=FILE_FORMAT,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

__all__ = ["logger", "setup_logging", "InterceptHandler"]
