import asyncio
import logging
from typing import Awaitable


def safe_ensure_future(coro: Awaitable, *args, **kwargs) -> asyncio.Future:
    """Schedule a coroutine and log any unhandled exception it raises."""
    future = asyncio.ensure_future(coro, *args, **kwargs)
    future.add_done_callback(_log_unhandled_exception)
    return future


def _log_unhandled_exception(future: asyncio.Future):
    if future.cancelled():
        return
    exception = future.exception()
    if exception is not None:
        logging.getLogger(__name__).error(
            f"Unhandled error in background task: {exception}",
            exc_info=(type(exception), exception, exception.__traceback__),
        )
