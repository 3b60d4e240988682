"""Structured logging utilities with context support."""

import functools
import logging
import threading
from typing import Any, Callable, Dict, Optional

# Thread-local storage for log context
_thread_local = threading.local()


def get_log_context() -> Dict[str, Any]:
    """
    Return a copy of the fields currently attached to log records.

    Returns:
        Dictionary of active context fields (empty outside any LogContext)
    """
    return dict(getattr(_thread_local, "context", {}))


class LogContext:
    """
    Context manager for adding structured fields to log records.

    Fields are kept in thread-local storage and copied onto every record
    emitted inside the block by the filter installed in
    ``configure_logging``. Nested contexts merge, and the outer fields are
    restored on exit.

    Example:
        with LogContext(project_id="p-1", invoice_id="inv-7"):
            logger.info("Finalizing invoice")
            # Record carries project_id and invoice_id
    """

    def __init__(self, **kwargs):
        self.fields = {
            key: getattr(value, "value", value) for key, value in kwargs.items()
        }
        self.previous_context: Optional[Dict[str, Any]] = None

    def __enter__(self):
        if not hasattr(_thread_local, "context"):
            _thread_local.context = {}

        self.previous_context = _thread_local.context.copy()
        _thread_local.context.update(self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_context is not None:
            _thread_local.context = self.previous_context
        else:
            _thread_local.context = {}


class _ContextFilter(logging.Filter):
    """Logging filter that adds context fields to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in getattr(_thread_local, "context", {}).items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def log_function_call(
    func: Optional[Callable] = None, *, include_args: bool = False, level: str = "DEBUG"
) -> Callable:
    """
    Decorator to log function entry and exit.

    Engine errors (anything carrying a ``code`` attribute) are logged at
    WARNING with that code since they are expected rejections; any other
    exception is logged at ERROR with the traceback. Both are re-raised.

    Args:
        func: Function to decorate (when used without arguments)
        include_args: Whether to include function arguments in logs
        level: Log level to use for entry and exit lines

    Returns:
        Decorated function

    Example:
        @log_function_call
        def finalize(self, invoice_id, finalized_by):
            ...

        @log_function_call(include_args=True, level="INFO")
        def approve(self, record_id, reviewer_id):
            ...
    """

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(f.__module__)
            log_level = getattr(logging, level.upper())

            if include_args:
                args_repr = [repr(a) for a in args]
                kwargs_repr = [f"{k}={v!r}" for k, v in kwargs.items()]
                signature = ", ".join(args_repr + kwargs_repr)
                logger.log(log_level, f"Entering {f.__qualname__} with args: {signature}")
            else:
                logger.log(log_level, f"Entering {f.__qualname__}")

            try:
                result = f(*args, **kwargs)
            except Exception as e:
                code = getattr(e, "code", None)
                if code is not None:
                    logger.warning(
                        f"{f.__qualname__} rejected: {code}: {e}",
                        extra={"error_code": code},
                    )
                else:
                    logger.error(
                        f"Exception in {f.__qualname__}: {type(e).__name__}: {e}",
                        exc_info=True,
                    )
                raise

            logger.log(log_level, f"Exiting {f.__qualname__}")
            return result

        return wrapper

    if func is None:
        return decorator
    return decorator(func)
