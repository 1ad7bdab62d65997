import logging
import sys

from loguru import logger

from app.core.config import settings

_configured = False


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (uvicorn, sqlalchemy, apscheduler) into loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging():
    """Setup logging configuration."""
    global _configured
    if _configured:
        return

    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=settings.log_level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level}</level> | {name}:{line} | {message}"
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="10 MB",
            retention="7 days",
            level=settings.log_level.upper(),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "apscheduler"):
        logging.getLogger(name).handlers = [InterceptHandler()]

    _configured = True
