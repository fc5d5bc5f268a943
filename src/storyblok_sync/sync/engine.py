"""Sync engines: one incremental sync pass for one collection.

``StoriesSyncEngine.run`` ties together the cache-version gate, the
watermark and the merge reconciler.  It:

1. Applies a pushed (webhook) story directly, if one is given, and stops.
2. Gets the space's cache version through the shared coordinator.
3. Stops if the stored version equals the current one.
4. Builds the fetch filter from the stored watermark (``published_at_gt``)
   unless the collection syncs drafts, in which case the store is
   cleared and everything is re-fetched.
5. For each content type, in order: fetches, reconciles against the
   stored records of that type, and writes the result back.
6. Persists the new watermark and the cache version.

``DatasourceSyncEngine.run`` shares steps 2-3 and then replaces the
collection with the datasource's current entries.

Errors abort the pass and are re-raised as ``CollectionSyncError``;
records already written for earlier content types stay written.
Re-running the pass is safe because reconciliation replaces records by
identity.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..errors import CollectionSyncError
from .cache_version import (
    CACHE_VERSION_KEY,
    CacheVersionCoordinator,
    check_stored_version_up_to_date,
)
from .merger import reconcile, story_content_type
from .models import (
    CategoryResult,
    OrderingRule,
    Record,
    SyncReport,
    SyncStatus,
)
from .ordering import resolve_ordering
from .reporter import time_ago
from .store import DataStore, MetaStore
from .watermark import format_timestamp, parse_timestamp

if TYPE_CHECKING:
    from ..config_schema import (
        DatasourceCollectionConfig,
        StoriesCollectionConfig,
    )
    from ..core.fetcher import StoryblokFetcher

logger = logging.getLogger(__name__)

LAST_PUBLISHED_KEY = "lastPublishedAt"
DRAFT_VERSION = "draft"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def failed_report(
    collection: str, kind: str, error: BaseException, started_at: str
) -> SyncReport:
    """Build the report of a pass that raised *error*."""
    return SyncReport(
        collection=collection,
        kind=kind,
        status=SyncStatus.FAILED,
        started_at=started_at,
        completed_at=_now(),
        error=str(error),
    )


class _CollectionEngine:
    """Shared plumbing for the stories and datasource engines.

    Args:
        collection: Collection name (used in logs, reports and errors).
        fetcher: Async fetch collaborator.
        coordinator: Single-flight cache-version coordinator shared by
            every engine syncing from the same space.
        store: The collection's record store.
        meta: The collection's metadata store.
    """

    kind = ""

    def __init__(
        self,
        collection: str,
        fetcher: StoryblokFetcher,
        coordinator: CacheVersionCoordinator,
        store: DataStore,
        meta: MetaStore,
    ) -> None:
        self.collection = collection
        self.fetcher = fetcher
        self.coordinator = coordinator
        self.store = store
        self.meta = meta

    async def _cache_version_gate(self) -> tuple[int | None, bool]:
        """Return ``(cache_version, up_to_date)`` for this pass."""
        cache_version = await self.coordinator.get_version(self.collection)
        up_to_date = check_stored_version_up_to_date(
            self.meta, self.collection, cache_version
        )
        return cache_version, up_to_date

    def _store_cache_version(self, cache_version: int | None) -> None:
        if cache_version is None:
            return
        self.meta.set(CACHE_VERSION_KEY, str(cache_version))
        logger.debug(
            "[%s] Stored cacheVersion: %s", self.collection, cache_version
        )

    def _fail(self, what: str, exc: Exception) -> CollectionSyncError:
        logger.error(
            '[%s] Failed to load %s for "%s": %s',
            self.collection,
            what,
            self.collection,
            exc,
        )
        return CollectionSyncError(
            self.collection, f"Failed to load {what}: {exc}"
        )


class StoriesSyncEngine(_CollectionEngine):
    """Incrementally sync a collection of stories.

    Args:
        config: The collection's configuration.

    Other arguments as for the shared engine base.
    """

    kind = "stories"

    def __init__(
        self,
        collection: str,
        config: StoriesCollectionConfig,
        fetcher: StoryblokFetcher,
        coordinator: CacheVersionCoordinator,
        store: DataStore,
        meta: MetaStore,
    ) -> None:
        super().__init__(collection, fetcher, coordinator, store, meta)
        self.config = config
        self.rule: OrderingRule = resolve_ordering(config)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(self, push_record: Record | None = None) -> SyncReport:
        """Run one sync pass.

        Args:
            push_record: A story delivered out-of-band (webhook).  When
                given, it is written to the store and nothing is fetched.

        Returns:
            A ``SyncReport`` for the pass.

        Raises:
            CollectionSyncError: If fetching or storing failed.
        """
        started_at = _now()
        try:
            if push_record is not None:
                return self._apply_push(push_record, started_at)
            return await self._sync(started_at)
        except CollectionSyncError:
            raise
        except Exception as exc:
            raise self._fail("stories", exc) from exc

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _apply_push(self, record: Record, started_at: str) -> SyncReport:
        logger.info(
            "[%s] Syncing... story updated in Storyblok", self.collection
        )
        key = self.identity_of(record)
        skipped = 0
        if key is None:
            logger.warning(
                "[%s] Ignoring pushed story without %s (name: %s)",
                self.collection,
                self.identity_field,
                record.get("name"),
            )
            skipped = 1
        else:
            self._set_story(key, record)

        return SyncReport(
            collection=self.collection,
            kind=self.kind,
            status=SyncStatus.PUSH_APPLIED,
            categories=[
                CategoryResult(
                    category=story_content_type(record),
                    fetched=1,
                    skipped=skipped,
                    stored=1 - skipped,
                )
            ],
            started_at=started_at,
            completed_at=_now(),
        )

    async def _sync(self, started_at: str) -> SyncReport:
        cache_version, up_to_date = await self._cache_version_gate()
        stored_watermark = self.meta.get(LAST_PUBLISHED_KEY)

        if up_to_date:
            return SyncReport(
                collection=self.collection,
                kind=self.kind,
                status=SyncStatus.UP_TO_DATE,
                cache_version=cache_version,
                watermark=stored_watermark,
                started_at=started_at,
                completed_at=_now(),
            )

        full_refetch = self.config.version == DRAFT_VERSION
        filter_params: dict[str, Any] = {}
        if stored_watermark and not full_refetch:
            filter_params["published_at_gt"] = stored_watermark

        if full_refetch:
            logger.info("[%s] Clearing store (draft mode)", self.collection)
            self.store.clear()

        logger.info(
            "[%s] Loading stories (ordering: %s%s)",
            self.collection,
            self.rule.descriptor,
            f", published after {stored_watermark}" if filter_params else "",
        )

        watermark = parse_timestamp(stored_watermark)
        categories: list[CategoryResult] = []
        for content_type in self.config.content_types or [None]:
            result, watermark = await self._sync_category(
                content_type, filter_params, watermark
            )
            categories.append(result)

        if watermark is not None:
            self.meta.set(LAST_PUBLISHED_KEY, format_timestamp(watermark))
        self._store_cache_version(cache_version)

        return SyncReport(
            collection=self.collection,
            kind=self.kind,
            status=SyncStatus.SYNCED,
            cache_version=cache_version,
            watermark=self.meta.get(LAST_PUBLISHED_KEY),
            categories=categories,
            started_at=started_at,
            completed_at=_now(),
        )

    async def _sync_category(
        self,
        content_type: str | None,
        filter_params: dict[str, Any],
        watermark: datetime | None,
    ) -> tuple[CategoryResult, datetime | None]:
        """Fetch, reconcile and write back one content type."""
        response = await self.fetcher.fetch_stories(
            filter_params, content_type, self.config.storyblok_params
        )

        fresh: list[tuple[str, Record]] = []
        skipped = 0
        for story in response:
            key = self.identity_of(story)
            if key is None:
                logger.warning(
                    "[%s] Skipping story without %s (name: %s)",
                    self.collection,
                    self.identity_field,
                    story.get("name"),
                )
                skipped += 1
                continue
            fresh.append((key, story))

        stored = [(key, entry.data) for key, entry in self.store.entries()]
        result = reconcile(
            fresh,
            stored,
            content_type,
            self.rule,
            watermark,
            category_of=story_content_type,
        )

        if result.changed:
            for key in result.replaced_keys:
                self.store.delete(key)
            for key, story in result.records:
                self._set_story(key, story)

        # set() overwrites, so duplicate keys in one batch collapse
        stored_count = len({key for key, _ in result.records})
        type_info = f' of type "{content_type}"' if content_type else ""
        logger.info(
            "[%s] Loaded %d stories%s (%d replaced, %d in store)",
            self.collection,
            len(fresh),
            type_info,
            result.superseded,
            stored_count,
        )

        return (
            CategoryResult(
                category=content_type,
                fetched=len(response),
                skipped=skipped,
                superseded=result.superseded,
                stored=stored_count,
            ),
            result.watermark,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def identity_field(self) -> str:
        return "uuid" if self.config.use_uuids else "full_slug"

    def identity_of(self, story: Record) -> str | None:
        """Identity key of *story*, or ``None`` if it has none."""
        value = story.get(self.identity_field)
        if value is None or isinstance(value, bool):
            return None
        key = str(value)
        return key or None

    def _set_story(self, key: str, story: Record) -> None:
        logger.debug(
            "[%s] Storing story - ID: %s, Title: %s",
            self.collection,
            key,
            story.get("name"),
        )
        self.store.set(key, story)


class DatasourceSyncEngine(_CollectionEngine):
    """Sync a collection of datasource entries.

    Datasources are small and unversioned per entry, so every pass that
    gets past the cache-version gate replaces the whole collection.
    """

    kind = "datasource"

    def __init__(
        self,
        collection: str,
        config: DatasourceCollectionConfig,
        fetcher: StoryblokFetcher,
        coordinator: CacheVersionCoordinator,
        store: DataStore,
        meta: MetaStore,
    ) -> None:
        super().__init__(collection, fetcher, coordinator, store, meta)
        self.config = config

    async def run(self) -> SyncReport:
        """Run one sync pass.

        Raises:
            CollectionSyncError: If fetching or storing failed.
        """
        started_at = _now()
        try:
            return await self._sync(started_at)
        except CollectionSyncError:
            raise
        except Exception as exc:
            raise self._fail("datasource entries", exc) from exc

    async def _sync(self, started_at: str) -> SyncReport:
        cache_version, up_to_date = await self._cache_version_gate()
        if up_to_date:
            return SyncReport(
                collection=self.collection,
                kind=self.kind,
                status=SyncStatus.UP_TO_DATE,
                cache_version=cache_version,
                started_at=started_at,
                completed_at=_now(),
            )

        logger.info(
            '[%s] Loading datasource entries for "%s"',
            self.collection,
            self.config.datasource,
        )
        response = await self.fetcher.fetch_datasource_entries(
            self.config.datasource, self.config.dimension, cache_version
        )
        entries = response.get("datasource_entries") or []

        if self.config.switch_names_and_values:
            key_field, body_field = "value", "name"
        else:
            key_field, body_field = "name", "value"

        self.store.clear()
        skipped = 0
        for entry in entries:
            key = entry.get(key_field)
            if not isinstance(key, str) or not key:
                logger.warning(
                    "[%s] Skipping datasource entry without %s (id: %s)",
                    self.collection,
                    key_field,
                    entry.get("id"),
                )
                skipped += 1
                continue
            body = entry.get(body_field)
            self.store.set(key, entry, body if isinstance(body, str) else None)

        stored = len(entries) - skipped
        response_cv = response.get("cv")
        if isinstance(response_cv, (int, float)) and not isinstance(
            response_cv, bool
        ):
            updated = time_ago(
                datetime.fromtimestamp(response_cv, tz=timezone.utc)
            )
            logger.info(
                "[%s] Loaded %d entries (updated %s)",
                self.collection,
                stored,
                updated,
            )
        else:
            logger.info("[%s] Loaded %d entries", self.collection, stored)

        self._store_cache_version(cache_version)

        return SyncReport(
            collection=self.collection,
            kind=self.kind,
            status=SyncStatus.SYNCED,
            cache_version=cache_version,
            categories=[
                CategoryResult(
                    category=self.config.dimension,
                    fetched=len(entries),
                    skipped=skipped,
                    stored=stored,
                )
            ],
            started_at=started_at,
            completed_at=_now(),
        )
