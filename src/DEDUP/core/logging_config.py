"""
Centralized logging configuration for the application.

Provides standardized logging setup with console and rotating file handlers,
ensuring consistent log formatting across the extraction, store, pipeline and
API modules.

Module Input:
    - Logger name strings from calling modules
    - Level, directory and file name from settings

Module Output:
    - Formatted log entries to console (stdout)
    - Formatted log entries to rotating file (logs/app.log)
    - Configured logger instances for modules
"""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

from .settings import settings


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggerConfig:
    """Class to manage logger configuration and creation."""

    # Loggers already wired with handlers
    _configured_loggers = set()

    def __init__(
        self,
        log_level: Union[int, str] = logging.INFO,
        log_dir: Union[str, Path] = "logs",
        log_file: str = "app.log",
        log_to_file: bool = True,
        max_bytes: int = 10_485_760,  # 10MB
        backup_count: int = 5
    ):
        """
        Initialize logger configuration.

        Args:
            log_level: Minimum logging level, as int or name (default: INFO)
            log_dir: Directory where log files are saved
            log_file: Name of the log file
            log_to_file: Attach a rotating file handler
            max_bytes: Maximum size of log file before rotation (10MB default)
            backup_count: Number of backup log files to keep
        """
        if isinstance(log_level, str):
            log_level = logging.getLevelName(log_level.upper())
            if not isinstance(log_level, int):
                log_level = logging.INFO

        self.log_level = log_level
        self.log_dir = Path(log_dir)
        self.log_file = log_file
        self.log_to_file = log_to_file
        self.max_bytes = max_bytes
        self.backup_count = backup_count

    def _create_formatter(self) -> logging.Formatter:
        # "2024-01-15 10:30:45 | INFO     | DEDUP.services...:write:120 | message"
        return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    def _create_console_handler(self) -> logging.StreamHandler:
        """
        Create console handler that outputs to stdout.

        Returns:
            logging.StreamHandler: Configured console handler
        """
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(self._create_formatter())
        return console_handler

    def _create_file_handler(self) -> Optional[RotatingFileHandler]:
        """
        Create rotating file handler.

        Returns:
            RotatingFileHandler or None: File handler (None when file logging is off)

        Note:
            - Automatically rotates when file reaches max_bytes
            - Keeps backup_count number of old log files
        """
        if not self.log_to_file:
            return None

        self.log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            self.log_dir / self.log_file,
            maxBytes=self.max_bytes,
            backupCount=self.backup_count
        )
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(self._create_formatter())
        return file_handler

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get or create a logger with standardized configuration.

        Creates a logger instance with console and (optionally) rotating file
        handlers. Prevents duplicate handler configuration on repeated calls.

        Args:
            name: Logger name, typically __name__ from calling module

        Returns:
            logging.Logger: Configured logger instance ready for use

        Side Effects:
            - Creates log directory if it doesn't exist
            - Adds logger name to _configured_loggers set
        """
        if name in LoggerConfig._configured_loggers:
            return logging.getLogger(name)

        logger = logging.getLogger(name)
        logger.setLevel(self.log_level)

        # Handlers are attached only once per logger
        if logger.handlers:
            return logger

        logger.addHandler(self._create_console_handler())

        file_handler = self._create_file_handler()
        if file_handler is not None:
            logger.addHandler(file_handler)

        # Records are already emitted here; root handlers would print them twice
        logger.propagate = False

        LoggerConfig._configured_loggers.add(name)
        return logger


def setup_root_logger(log_level: Union[int, str, None] = None):
    """
    Configure the root logger for libraries that use it.

    Sets up basic configuration for the root logger, which is inherited by
    third-party libraries (uvicorn, botocore) that don't configure their own.

    Args:
        log_level: Minimum logging level (default: settings.log_level)
    """
    level = log_level if log_level is not None else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt=DATE_FORMAT
    )
    # botocore is very chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)


# Default logger configuration instance
_default_config = LoggerConfig(
    log_level=settings.log_level,
    log_dir=settings.log_dir,
    log_file=settings.log_file,
    log_to_file=settings.log_to_file,
)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with default configuration.

    Args:
        name: Logger name, typically __name__ from calling module

    Returns:
        logging.Logger: Configured logger instance ready for use

    Example:
        from DEDUP.core.logging_config import get_logger

        logger = get_logger(__name__)
        logger.info("Pipeline started")
    """
    return _default_config.get_logger(name)
