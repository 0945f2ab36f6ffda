"""
Logging configuration for QDS Cleanup

Console output goes to stderr so stdout carries only the reports. Progress
messages (INFO) are printed bare, the way an operator reads a maintenance
job's output; warnings and errors keep their level tag. The daily log file
records everything with the database each line refers to.
"""

import sys
import logging
from pathlib import Path
from typing import Optional
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime

from qdsclean.core.constants import APP_NAME, LOG_FILE

NO_DATABASE = "-"


class RunContextFilter(logging.Filter):
    """Stamps every record with the database the current run works on"""

    def __init__(self):
        super().__init__()
        self.database = NO_DATABASE

    def filter(self, record: logging.LogRecord) -> bool:
        record.database = self.database
        return True


class ConsoleFormatter(logging.Formatter):
    """Bare INFO lines, tagged and optionally colored other levels"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',      # Reset
    }

    def __init__(self, use_colors: bool = True):
        super().__init__("%(message)s")
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno == logging.INFO:
            return message

        tag = record.levelname
        if self.use_colors:
            tag = f"{self.COLORS.get(tag, '')}{tag}{self.COLORS['RESET']}"
        return f"{tag}: {message}"


class QDSCleanLogger:
    """Application logger with file and console handlers"""

    _instance: Optional['QDSCleanLogger'] = None
    _initialized: bool = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.logger = logging.getLogger(APP_NAME.replace(' ', ''))
        self.logger.setLevel(logging.DEBUG)
        self.context = RunContextFilter()
        self._handlers: dict[str, logging.Handler] = {}
        self._initialized = True

    def setup(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        file_enabled: bool = True,
        retention_days: int = 7,
        console_colors: bool = True,
    ) -> logging.Logger:
        """
        Configure logging with file and console handlers

        Args:
            level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files
            file_enabled: Enable file logging
            retention_days: Number of daily log files to keep
            console_colors: Use colored level tags in the console

        Returns:
            Configured logger instance
        """
        for handler in self.logger.handlers:
            handler.close()
        self.logger.handlers.clear()
        self._handlers.clear()

        log_level = getattr(logging, level.upper(), logging.INFO)
        self.logger.setLevel(logging.DEBUG if file_enabled and log_dir else log_level)

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(ConsoleFormatter(use_colors=console_colors))
        console_handler.addFilter(self.context)
        self.logger.addHandler(console_handler)
        self._handlers['console'] = console_handler

        if file_enabled and log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = TimedRotatingFileHandler(
                log_dir / LOG_FILE,
                when='midnight',
                interval=1,
                backupCount=max(1, int(retention_days)),
                encoding='utf-8'
            )
            file_handler.suffix = "%Y-%m-%d"
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(
                fmt="%(asctime)s | %(levelname)-8s | [%(database)s] | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            ))
            file_handler.addFilter(self.context)
            self.logger.addHandler(file_handler)
            self._handlers['file'] = file_handler

        return self.logger

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Get a child logger with optional name"""
        if name:
            return self.logger.getChild(name)
        return self.logger


# Module-level functions for convenience

_app_logger: Optional[QDSCleanLogger] = None


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    file_enabled: bool = True,
    retention_days: int = 7,
) -> logging.Logger:
    """
    Setup application logging

    This should be called once at application startup.
    """
    global _app_logger
    _app_logger = QDSCleanLogger()
    return _app_logger.setup(
        level=level,
        log_dir=log_dir,
        file_enabled=file_enabled,
        retention_days=retention_days,
    )


def set_log_database(database: Optional[str]) -> None:
    """Database name written with every following log line (None clears it)"""
    QDSCleanLogger().context.database = database or NO_DATABASE


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance

    Args:
        name: Optional name for child logger (e.g., 'database', 'services.deletion')

    Example:
        >>> logger = get_logger('services.deletion')
        >>> logger.info('Remove query : 42')
    """
    # Child of the application logger; handlers are attached by setup_logging()
    return QDSCleanLogger().get_logger(name)


class LogContext:
    """
    Times one phase of a cleanup run

    Example:
        >>> with LogContext(logger, "Selecting candidates"):
        ...     select()
        # Logs: "Selecting candidates..."
        # Logs: "Selecting candidates done (1.23s)"
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.level, f"{self.operation}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.now() - self.start_time).total_seconds()

        if exc_type is not None:
            self.logger.error(f"{self.operation} failed after {duration:.2f}s: {exc_val}")
        else:
            self.logger.log(self.level, f"{self.operation} done ({duration:.2f}s)")

        return False  # Don't suppress exceptions
