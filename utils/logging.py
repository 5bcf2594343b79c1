import os
import time
import asyncio
import functools
import logging
from contextlib import contextmanager

# Configure logger
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def get_logger(name=None):
    """
    Get a logger with the specified name or the calling module's name.
    Every component of the import client logs through here so the
    output format stays the same across modules.
    """
    if name is None:
        import inspect
        frame = inspect.stack()[1]
        module = inspect.getmodule(frame[0])
        name = module.__name__ if module else __name__

    return logging.getLogger(name)

def timing_decorator(func=None, *, level="DEBUG", log_args=False):
    """
    Decorator that logs how long a call took.

    Works for plain functions and for coroutines; for a coroutine the
    elapsed time covers the awaited network round-trip.

    Args:
        func: The function to decorate
        level: Log level ("DEBUG", "INFO", "WARNING", "ERROR")
        log_args: Whether to log function arguments
    """
    def decorator(fn):
        fn_logger = logging.getLogger(fn.__module__)
        log_method = getattr(fn_logger, level.lower())

        def log_call(args, kwargs):
            if log_args:
                arg_str = ', '.join([str(arg) for arg in args[1:]])
                kwarg_str = ', '.join([f"{k}={v}" for k, v in kwargs.items()])
                all_args = ', '.join(filter(None, [arg_str, kwarg_str]))
                log_method(f"Calling {fn.__name__}({all_args})")

        if asyncio.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                log_call(args, kwargs)
                start_time = time.time()
                try:
                    return await fn(*args, **kwargs)
                finally:
                    log_method(f"{fn.__name__} finished in {time.time() - start_time:.4f} seconds")
            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            log_call(args, kwargs)
            start_time = time.time()
            result = fn(*args, **kwargs)
            log_method(f"{fn.__name__} executed in {time.time() - start_time:.4f} seconds")
            return result
        return wrapper

    # This allows the decorator to be used with or without arguments
    if func is not None:
        return decorator(func)
    return decorator

@contextmanager
def timer(name, level="INFO", logger_name=None):
    """
    Context manager for timing code blocks

    Args:
        name: Name of the operation being timed
        level: Log level ("DEBUG", "INFO", "WARNING", "ERROR")
        logger_name: Name of the logger to use (None for module-based logger)

    Example:
        with timer("Rendering error report"):
            ...
    """
    timer_logger = get_logger(logger_name or __name__)
    log_method = getattr(timer_logger, level.lower())

    start_time = time.time()
    try:
        yield
    finally:
        log_method(f"{name} completed in {time.time() - start_time:.4f} seconds")
