"""Async fetch collaborator used by the sync engines.

Wraps the blocking ``StoryblokClient`` with ``run_sync_limited`` and
turns every failure into a ``FetchError`` whose message says what was
being fetched.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import FetchError
from .async_utils import run_sync_limited
from .client import StoryblokClient

logger = logging.getLogger(__name__)


class StoryblokFetcher:
    """Async access to stories, datasource entries and the space version.

    Args:
        client: Blocking API client shared by every engine of a space.
    """

    def __init__(self, client: StoryblokClient) -> None:
        self.client = client

    async def fetch_stories(
        self,
        filter_params: dict[str, Any] | None = None,
        content_type: str | None = None,
        storyblok_params: dict[str, Any] | None = None,
    ) -> list[dict]:
        """Fetch all stories, optionally of one content type.

        *filter_params* (e.g. ``published_at_gt``) win over
        *storyblok_params*, which win over ``content_type``.
        """
        params: dict[str, Any] = {
            "content_type": content_type,
            **(storyblok_params or {}),
            **(filter_params or {}),
        }
        try:
            return await run_sync_limited(self.client.get_stories, params)
        except Exception as exc:
            type_info = (
                f' for content type "{content_type}"' if content_type else ""
            )
            raise FetchError(
                f"Failed to fetch stories{type_info}: {exc}"
            ) from exc

    async def fetch_datasource_entries(
        self,
        datasource: str,
        dimension: str | None = None,
        cv: int | None = None,
    ) -> dict[str, Any]:
        """Fetch all entries of *datasource* (``datasource_entries`` and ``cv``)."""
        try:
            return await run_sync_limited(
                self.client.get_datasource_entries, datasource, dimension, cv
            )
        except Exception as exc:
            raise FetchError(
                f'Failed to fetch datasource entries for "{datasource}": {exc}'
            ) from exc

    async def fetch_version_token(self) -> int:
        """Fetch the space's current cache version."""
        try:
            version = await run_sync_limited(self.client.get_space_version)
        except Exception as exc:
            raise FetchError(
                f"Failed to fetch space cache version: {exc}"
            ) from exc
        logger.debug("Fetched space cache version: %s", version)
        return version
