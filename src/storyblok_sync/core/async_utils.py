"""Thread offloading for the blocking ``requests`` client.

Collections sync as concurrent asyncio tasks, but ``StoryblokClient`` is
synchronous.  Its calls run in worker threads via ``asyncio.to_thread``;
API calls additionally share one semaphore so that a run with many
collections keeps at most ``max_parallel_requests`` requests open
against the space.  Local state file I/O skips the semaphore.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 5) -> None:
    """(Re)create the request semaphore for the current run."""
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.info("Allowing %d parallel Storyblok requests", max_parallel)


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """``func(*args, **kwargs)`` in a worker thread, not rate limited."""
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Like ``run_sync`` but waits for a request slot first.

    Before ``init_semaphore`` has been called there is no limit.
    """
    if _semaphore is None:
        return await run_sync(func, *args, **kwargs)
    async with _semaphore:
        return await run_sync(func, *args, **kwargs)


async def gather_limited(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Await *aws* concurrently; results keep the input order.

    The limit comes from ``run_sync_limited`` inside each awaitable.  The
    first exception propagates.
    """
    return list(await asyncio.gather(*aws))
