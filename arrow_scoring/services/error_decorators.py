"""Error handling decorators for the arrow scoring system."""

import functools
import logging
import time
from typing import Optional

from .error_handler import (
    ErrorHandler, ErrorSeverity, global_error_handler
)
from ..logging_config import get_logger


def with_error_handling(component: str, severity: ErrorSeverity = ErrorSeverity.MEDIUM,
                        error_handler: Optional[ErrorHandler] = None):
    """Decorator that records errors against a component, then re-raises them.

    Args:
        component: The component name for error tracking
        severity: The severity level of errors
        error_handler: Optional custom error handler

    Returns:
        Decorated function with error recording
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            handler = error_handler or global_error_handler

            try:
                return func(*args, **kwargs)
            except Exception as e:
                handler.handle_error(component, e, severity)
                raise
        return wrapper
    return decorator


def log_execution_time(logger_name: Optional[str] = None, level: int = logging.DEBUG):
    """Decorator to log function execution time.

    Args:
        logger_name: Optional logger name to use
        level: Logging level for the message

    Returns:
        Decorated function that logs execution time
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            log = get_logger(logger_name or func.__module__.rsplit('.', 1)[-1])

            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                execution_time = time.perf_counter() - start_time
                log.log(level, f"Function {func.__name__} executed in {execution_time:.4f} seconds")
        return wrapper
    return decorator
