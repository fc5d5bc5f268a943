"""Tests for the stories sync engine (sync/engine.py)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import pytest

from storyblok_sync.config_schema import StoriesCollectionConfig
from storyblok_sync.errors import CollectionSyncError, FetchError
from storyblok_sync.sync.cache_version import CacheVersionCoordinator
from storyblok_sync.sync.engine import StoriesSyncEngine
from storyblok_sync.sync.models import SyncStatus
from storyblok_sync.sync.store import MemoryDataStore, MemoryMetaStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _story(
    slug: str,
    component: str = "post",
    created: str | None = None,
    published: str | None = None,
    **extra: Any,
) -> dict:
    return {
        "name": slug.upper(),
        "full_slug": slug,
        "uuid": f"uuid-{slug}",
        "created_at": created,
        "published_at": published,
        "content": {"component": component},
        **extra,
    }


class FakeFetcher:
    """In-memory fetch collaborator.

    Returns canned stories per content type and records every call.
    """

    def __init__(
        self,
        stories: Optional[Dict[Optional[str], List[dict]]] = None,
        version: int = 43,
        fail_on: Optional[str] = None,
        version_error: Optional[Exception] = None,
    ) -> None:
        self.stories = stories or {}
        self.version = version
        self.fail_on = fail_on
        self.version_error = version_error
        self.story_calls: list[tuple] = []
        self.version_calls = 0

    async def fetch_stories(self, filter_params, content_type, storyblok_params):
        self.story_calls.append(
            (dict(filter_params), content_type, dict(storyblok_params))
        )
        if content_type is not None and content_type == self.fail_on:
            raise FetchError(
                f'Failed to fetch stories for content type "{content_type}": boom'
            )
        return list(self.stories.get(content_type, []))

    async def fetch_version_token(self) -> int:
        self.version_calls += 1
        if self.version_error is not None:
            raise self.version_error
        return self.version


def _engine(
    fetcher: FakeFetcher,
    store: MemoryDataStore | None = None,
    meta: MemoryMetaStore | None = None,
    **config: Any,
) -> StoriesSyncEngine:
    return StoriesSyncEngine(
        "blog",
        StoriesCollectionConfig(**config),
        fetcher,
        CacheVersionCoordinator(fetcher.fetch_version_token),
        store if store is not None else MemoryDataStore(),
        meta if meta is not None else MemoryMetaStore(),
    )


# ---------------------------------------------------------------------------
# Cache-version gate
# ---------------------------------------------------------------------------


class TestCacheVersionGate:
    async def test_unchanged_version_skips_fetch(self):
        fetcher = FakeFetcher(version=42)
        meta = MemoryMetaStore({"cacheVersion": "42"})

        report = await _engine(fetcher, meta=meta).run()

        assert report.status == SyncStatus.UP_TO_DATE
        assert fetcher.story_calls == []
        assert meta.get("cacheVersion") == "42"

    async def test_changed_version_runs_full_pass(self):
        fetcher = FakeFetcher(
            stories={None: [_story("a", published="2024-01-20T00:00:00Z")]},
            version=43,
        )
        meta = MemoryMetaStore(
            {
                "cacheVersion": "42",
                "lastPublishedAt": "2024-01-10T00:00:00.000Z",
            }
        )

        report = await _engine(fetcher, meta=meta).run()

        assert report.status == SyncStatus.SYNCED
        assert report.cache_version == 43
        assert meta.get("cacheVersion") == "43"
        assert meta.get("lastPublishedAt") == "2024-01-20T00:00:00.000Z"
        assert report.watermark == "2024-01-20T00:00:00.000Z"

    async def test_version_fetch_failure_forces_fetch(self, caplog):
        fetcher = FakeFetcher(
            stories={None: [_story("a")]},
            version_error=RuntimeError("space unavailable"),
        )
        meta = MemoryMetaStore({"cacheVersion": "42"})

        with caplog.at_level(logging.ERROR):
            report = await _engine(fetcher, meta=meta).run()

        assert report.status == SyncStatus.SYNCED
        assert len(fetcher.story_calls) == 1
        # Unknown version is not persisted
        assert meta.get("cacheVersion") == "42"
        assert "Failed updating CV value" in caplog.text


# ---------------------------------------------------------------------------
# Fetch filter
# ---------------------------------------------------------------------------


class TestFetchFilter:
    async def test_first_sync_fetches_everything(self):
        fetcher = FakeFetcher()

        await _engine(fetcher).run()

        assert fetcher.story_calls == [({}, None, {})]

    async def test_incremental_filter_uses_watermark(self):
        fetcher = FakeFetcher()
        meta = MemoryMetaStore({"lastPublishedAt": "2024-01-10T00:00:00.000Z"})

        await _engine(
            fetcher, meta=meta, storyblok_params={"version": "published"}
        ).run()

        filter_params, _, params = fetcher.story_calls[0]
        assert filter_params == {"published_at_gt": "2024-01-10T00:00:00.000Z"}
        assert params == {"version": "published"}

    async def test_draft_mode_clears_store_and_refetches(self):
        fetcher = FakeFetcher(stories={None: [_story("fresh")]})
        store = MemoryDataStore()
        store.set("stale", _story("stale"))
        meta = MemoryMetaStore({"lastPublishedAt": "2024-01-10T00:00:00.000Z"})

        await _engine(
            fetcher, store=store, meta=meta, storyblok_params={"version": "draft"}
        ).run()

        assert fetcher.story_calls[0][0] == {}
        assert store.keys() == ["fresh"]


# ---------------------------------------------------------------------------
# Reconciliation against the store
# ---------------------------------------------------------------------------


class TestStoreWrites:
    async def test_category_is_reordered_and_others_untouched(self):
        store = MemoryDataStore()
        store.set("a", _story("a", created="2024-01-10"))
        store.set("home", _story("home", component="page"))
        store.set("b", _story("b", created="2024-01-20"))
        fetcher = FakeFetcher(
            stories={"post": [_story("c", created="2024-01-15")]}
        )

        report = await _engine(
            fetcher,
            store=store,
            content_types=["post"],
            sort_by="created_at:desc",
        ).run()

        assert store.keys() == ["home", "b", "c", "a"]
        assert report.categories[0].stored == 3

    async def test_updated_story_replaces_stored_copy(self):
        store = MemoryDataStore()
        store.set("a", _story("a", title="old"))
        fetcher = FakeFetcher(stories={None: [_story("a", title="new")]})

        report = await _engine(fetcher, store=store).run()

        assert len(store) == 1
        assert store.get("a").data["title"] == "new"
        assert report.superseded == 1

    async def test_categories_processed_in_order(self):
        fetcher = FakeFetcher(
            stories={
                "post": [_story("p", published="2024-01-20T00:00:00Z")],
                "page": [
                    _story(
                        "g", component="page", published="2024-01-05T00:00:00Z"
                    )
                ],
            }
        )
        meta = MemoryMetaStore()

        report = await _engine(
            fetcher, meta=meta, content_types=["post", "page"]
        ).run()

        assert [call[1] for call in fetcher.story_calls] == ["post", "page"]
        assert [c.category for c in report.categories] == ["post", "page"]
        assert meta.get("lastPublishedAt") == "2024-01-20T00:00:00.000Z"

    async def test_use_uuids_keys_by_uuid(self):
        store = MemoryDataStore()
        fetcher = FakeFetcher(stories={None: [_story("a")]})

        await _engine(fetcher, store=store, use_uuids=True).run()

        assert store.keys() == ["uuid-a"]

    async def test_duplicate_identity_in_batch_keeps_last(self):
        store = MemoryDataStore()
        fetcher = FakeFetcher(
            stories={
                None: [
                    _story("a", title="first"),
                    _story("b"),
                    _story("a", title="second"),
                ]
            }
        )

        report = await _engine(fetcher, store=store).run()

        assert store.keys() == ["a", "b"]
        assert store.get("a").data["title"] == "second"
        assert report.categories[0].fetched == 3
        assert report.categories[0].stored == 2

    async def test_story_without_identity_is_skipped(self, caplog):
        broken = _story("x")
        del broken["full_slug"]
        store = MemoryDataStore()
        fetcher = FakeFetcher(stories={None: [broken, _story("a")]})

        with caplog.at_level(logging.WARNING):
            report = await _engine(fetcher, store=store).run()

        assert store.keys() == ["a"]
        assert report.skipped == 1
        assert "[blog] Skipping story without full_slug" in caplog.text

    async def test_empty_batch_keeps_store_and_watermark(self):
        store = MemoryDataStore()
        store.set("a", _story("a"))
        meta = MemoryMetaStore({"lastPublishedAt": "2024-01-10T00:00:00.000Z"})

        await _engine(FakeFetcher(), store=store, meta=meta).run()

        assert store.keys() == ["a"]
        assert meta.get("lastPublishedAt") == "2024-01-10T00:00:00.000Z"
        assert meta.get("cacheVersion") == "43"


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


class TestPush:
    async def test_push_writes_record_without_fetching(self):
        store = MemoryDataStore()
        fetcher = FakeFetcher()

        report = await _engine(fetcher, store=store).run(_story("pushed"))

        assert report.status == SyncStatus.PUSH_APPLIED
        assert store.keys() == ["pushed"]
        assert fetcher.story_calls == []
        assert fetcher.version_calls == 0

    async def test_push_without_identity_is_ignored(self):
        store = MemoryDataStore()
        story = _story("pushed")
        del story["full_slug"]

        report = await _engine(FakeFetcher(), store=store).run(story)

        assert len(store) == 0
        assert report.skipped == 1


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_fetch_error_is_wrapped_and_partial_writes_kept(self, caplog):
        store = MemoryDataStore()
        meta = MemoryMetaStore({"cacheVersion": "42"})
        fetcher = FakeFetcher(
            stories={"post": [_story("p")]}, fail_on="page"
        )

        with caplog.at_level(logging.ERROR):
            with pytest.raises(CollectionSyncError) as exc_info:
                await _engine(
                    fetcher,
                    store=store,
                    meta=meta,
                    content_types=["post", "page"],
                ).run()

        assert exc_info.value.collection == "blog"
        assert 'content type "page"' in str(exc_info.value)
        assert str(exc_info.value).startswith("[blog] Failed to load stories:")
        # First category stays written, the version is not advanced
        assert store.keys() == ["p"]
        assert meta.get("cacheVersion") == "42"
        assert '[blog] Failed to load stories for "blog"' in caplog.text
