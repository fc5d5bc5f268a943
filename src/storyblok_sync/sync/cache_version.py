"""Space cache-version gate and single-flight version fetching.

Storyblok bumps a space's ``version`` whenever anything in it is
published.  If the version stored after the last sync equals the current
one, nothing changed and the whole fetch can be skipped.

Several collections usually sync from the same space at the same time.
``CacheVersionCoordinator`` makes sure they share a single
``cdn/spaces/me`` request: the first caller starts it, every caller that
arrives while it is in flight awaits the same task, and the slot is
released once the task settles so the next sync pass fetches afresh.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

CACHE_VERSION_KEY = "cacheVersion"


def is_up_to_date(stored_token: Any, fresh_token: Any) -> bool:
    """Return ``True`` when *stored_token* is numeric and equals *fresh_token*.

    *stored_token* is the string persisted in metadata; *fresh_token* the
    integer just fetched (``None`` when the fetch failed).  Anything
    missing or unparsable answers ``False`` so a fetch happens.
    """
    if stored_token is None or fresh_token is None:
        return False
    if isinstance(stored_token, bool) or isinstance(fresh_token, bool):
        return False
    try:
        stored = int(str(stored_token).strip(), 10)
        fresh = int(fresh_token)
    except (TypeError, ValueError):
        return False
    if isinstance(fresh_token, float) and fresh_token != fresh:
        return False
    return stored == fresh


def check_stored_version_up_to_date(
    meta: Any, collection: str, cache_version: int | None
) -> bool:
    """Gate a sync pass on the version persisted in *meta*."""
    stored = meta.get(CACHE_VERSION_KEY)
    if stored is not None:
        logger.debug("[%s] Found stored cache version: %s", collection, stored)
    if is_up_to_date(stored, cache_version):
        logger.info(
            "[%s] No changes detected (cv: %s), skipping fetch",
            collection,
            cache_version,
        )
        return True
    return False


class CoordinatorState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class CacheVersionCoordinator:
    """Share one in-flight version fetch between concurrent sync passes.

    Args:
        fetch_version: Coroutine function returning the space's current
            version.  It may raise; the error is logged and every waiter
            gets ``None``.

    One coordinator belongs to one space client and is handed to every
    engine syncing from that space.  Checking the slot and starting a
    fetch happen without an ``await`` in between, so on one event loop no
    two callers can both see ``IDLE`` and both start a request.
    """

    def __init__(self, fetch_version: Callable[[], Awaitable[int]]) -> None:
        self._fetch_version = fetch_version
        self._task: asyncio.Task[int] | None = None
        self._origin: str | None = None

    @property
    def state(self) -> CoordinatorState:
        if self._task is None:
            return CoordinatorState.IDLE
        return CoordinatorState.FETCHING

    @property
    def origin(self) -> str | None:
        """Collection that started the in-flight fetch, if any."""
        return self._origin

    async def get_version(self, collection: str) -> int | None:
        """Return the space's current version, or ``None`` if unknown.

        Never raises for fetch failures.  Cancelling one caller does not
        cancel the shared request.
        """
        task = self._task
        if task is None:
            logger.debug(
                "[%s] Fetching space's latest CV value from Storyblok...",
                collection,
            )
            task = asyncio.ensure_future(self._fetch_version())
            self._task = task
            self._origin = collection
            task.add_done_callback(self._release)
        else:
            logger.debug(
                "[%s] Waiting for CV update started by '%s'",
                collection,
                self._origin,
            )

        try:
            version = await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            logger.error("[%s] CV fetch was cancelled", collection)
            return None
        except Exception as exc:
            logger.error(
                "[%s] Failed updating CV value. Fetching error: %s",
                collection,
                exc,
            )
            return None

        logger.debug("[%s] Got CV value: %s", collection, version)
        return version

    def _release(self, task: asyncio.Task[int]) -> None:
        if self._task is task:
            self._task = None
            self._origin = None
        # Mark the outcome as retrieved even if every waiter went away.
        if not task.cancelled():
            task.exception()
