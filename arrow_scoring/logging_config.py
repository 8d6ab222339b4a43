"""Logging setup shared by every arrow scoring component."""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

PACKAGE_LOGGER = "arrow_scoring"
PERFORMANCE_LOGGER = f"{PACKAGE_LOGGER}.performance"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
LOCATION_SUFFIX = " | %(pathname)s:%(lineno)d"

MAIN_LOG = "scoring.log"
ERROR_LOG = "errors.log"
PERFORMANCE_LOG = "performance.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def format_pairs(values: Dict[str, Any]) -> str:
    """Render ``{'a': 1, 'b': 2}`` as ``a=1 | b=2``."""
    return " | ".join(f"{key}={value}" for key, value in values.items())


class StructuredFormatter(logging.Formatter):
    """Pipe-separated log lines.

    A ``context`` dict passed through ``extra`` is appended to the line, and
    errors carrying exception info also get the source location.
    """

    def __init__(self, include_context: bool = True):
        super().__init__(LOG_FORMAT)
        self.include_context = include_context
        self._with_location = logging.Formatter(LOG_FORMAT + LOCATION_SUFFIX)

    def format(self, record: logging.LogRecord) -> str:
        if record.exc_info and record.levelno >= logging.ERROR:
            line = self._with_location.format(record)
        else:
            line = super().format(record)

        context = getattr(record, 'context', None)
        if self.include_context and context:
            line = f"{line} | Context: {format_pairs(context)}"
        return line


class ContextFilter(logging.Filter):
    """Tags records with the emitting component and the process id."""

    def __init__(self, component: Optional[str] = None):
        super().__init__()
        self.component = component
        self.pid = os.getpid()

    def filter(self, record: logging.LogRecord) -> bool:
        record.pid = self.pid
        if self.component:
            record.component = self.component
        return True


class LoggingManager:
    """Owns the handlers of the ``arrow_scoring`` logger tree.

    Without a ``log_dir`` only console output is configured; with one, rotating
    files for the main log, errors and performance metrics are added.
    """

    def __init__(self, log_dir: Optional[str] = None, configure_root: bool = False):
        self.log_dir = Path(log_dir) if log_dir else None
        self.level = logging.INFO
        self._loggers: Dict[str, logging.Logger] = {}

        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        if configure_root:
            self.configure()

    def _rotating_handler(self, file_name: str, level: int,
                          formatter: logging.Formatter) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / file_name, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler

    def configure(self) -> None:
        """Replace the package logger's handlers with console and file output."""
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(self.level)

        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(StructuredFormatter(include_context=False))
        package_logger.addHandler(console)

        if self.log_dir is not None:
            package_logger.addHandler(self._rotating_handler(MAIN_LOG, logging.DEBUG,
                                                             StructuredFormatter()))
            package_logger.addHandler(self._rotating_handler(ERROR_LOG, logging.ERROR,
                                                             StructuredFormatter()))

        self._loggers.pop(PERFORMANCE_LOGGER, None)
        self.get_performance_logger()

        package_logger.info(f"Logging configured (level={logging.getLevelName(self.level)}, "
                            f"log_dir={self.log_dir})")

    def get_component_logger(self, component_name: str,
                             level: Optional[int] = None) -> logging.Logger:
        """Logger named ``arrow_scoring.<component_name>``."""
        logger = self._loggers.get(component_name)
        if logger is None:
            logger = logging.getLogger(f"{PACKAGE_LOGGER}.{component_name}")
            logger.addFilter(ContextFilter(component_name))
            self._loggers[component_name] = logger

        if level:
            logger.setLevel(level)
        return logger

    def get_performance_logger(self) -> logging.Logger:
        """Dedicated performance logger; writes only to ``performance.log``."""
        logger = self._loggers.get(PERFORMANCE_LOGGER)
        if logger is None:
            logger = logging.getLogger(PERFORMANCE_LOGGER)
            logger.propagate = False
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()

            if self.log_dir is not None:
                logger.addHandler(self._rotating_handler(
                    PERFORMANCE_LOG, logging.INFO, logging.Formatter("%(asctime)s | %(message)s")
                ))
            self._loggers[PERFORMANCE_LOGGER] = logger
        return logger

    def set_log_level(self, level: int) -> None:
        self.level = level
        logging.getLogger(PACKAGE_LOGGER).setLevel(level)

    def get_log_stats(self) -> Dict[str, Any]:
        """Describe the log directory, its files and the loggers handed out."""
        files: Dict[str, Dict[str, Any]] = {}
        if self.log_dir is not None:
            for path in sorted(self.log_dir.glob("*.log")):
                stat = path.stat()
                files[path.name] = {
                    "size_mb": round(stat.st_size / (1024 * 1024), 3),
                    "modified": datetime.fromtimestamp(stat.st_mtime).isoformat()
                }

        return {
            "log_directory": str(self.log_dir) if self.log_dir else None,
            "log_files": files,
            "active_loggers": sorted(logger.name for logger in self._loggers.values()),
            "log_level": logging.getLevelName(self.level)
        }


# Console-only until setup_logging() is called, so importing never touches disk
logging_manager = LoggingManager()


def get_logger(component_name: str) -> logging.Logger:
    return logging_manager.get_component_logger(component_name)


def log_performance(message: str, metrics: Optional[Dict[str, Any]] = None) -> None:
    """Write one line to the performance log, metrics appended as ``key=value``."""
    if metrics:
        message = f"{message} | {format_pairs(metrics)}"
    logging_manager.get_performance_logger().info(message)


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> LoggingManager:
    """Configure console (and optionally file) logging for the whole package."""
    global logging_manager

    level = logging.getLevelName(log_level.upper())
    manager = LoggingManager(log_dir)
    manager.level = level if isinstance(level, int) else logging.INFO
    manager.configure()

    logging_manager = manager
    return manager
