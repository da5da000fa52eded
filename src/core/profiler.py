import asyncio
import functools
import logging
import time

logger = logging.getLogger(__name__)


class Profiler:
    """
    Provides a decorator that logs the execution time of synchronous and asynchronous
    methods at debug level.
    """

    @staticmethod
    def _report(func, started):
        elapsed = time.perf_counter() - started
        logger.debug(f"[Profiler] {func.__qualname__} took {elapsed:.4f}s")

    @staticmethod
    def profile(func):
        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                started = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    Profiler._report(func, started)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                Profiler._report(func, started)

        return sync_wrapper
