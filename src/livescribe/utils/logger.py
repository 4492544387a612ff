import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

APP_LOGGER_NAME = "livescribe"

_null_logger = logging.Logger(f"{APP_LOGGER_NAME}.null")
_null_logger.addHandler(logging.NullHandler())
_null_logger.propagate = False


def null_logger() -> logging.Logger:
    """Logger that drops everything. Used by components built without one."""
    return _null_logger


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    if name != APP_LOGGER_NAME and not name.startswith(APP_LOGGER_NAME + "."):
        name = f"{APP_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    console_level: int = logging.INFO,
) -> logging.Logger:
    """
    Attach console and rotating file handlers to the application logger.

    Calling it again is a no-op once handlers exist (prevents duplicate logs).
    Returns the application logger so callers can hand it to components.
    """
    logger = logging.getLogger(APP_LOGGER_NAME)

    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        common_format = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(common_format)
        logger.addHandler(console_handler)

        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            filename = f"livescribe_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.log"

            file_handler = RotatingFileHandler(
                log_dir / filename, maxBytes=5*1024*1024, backupCount=2
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(common_format)
            logger.addHandler(file_handler)

        logger.propagate = False
        logger.debug("Logging initialized")

    return logger


def log_file_path(logger: logging.Logger) -> Optional[str]:
    """Path of the first file handler on the logger, if any."""
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return handler.baseFilename
    return None
