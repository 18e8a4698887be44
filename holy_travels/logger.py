import sys

from loguru import logger

from holy_travels.config import settings


def configure_logging():
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        backtrace=True,
        diagnose=False,
        serialize=settings.LOG_JSON,
    )
    return logger
