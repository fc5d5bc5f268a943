"""Incremental collection sync engine.

Public API for keeping local collections of Storyblok stories and
datasource entries up to date.

Architecture
------------
A sync pass is gated by the space's **cache version**: when the version
stored after the previous pass equals the current one, nothing is
fetched.  Otherwise only stories published after the stored
**watermark** (``lastPublishedAt``) are fetched, and each content type's
fresh batch is **reconciled** with the stored stories of that type:
stale copies are replaced, the configured ordering is re-applied and the
watermark advances monotonically.

Modules:

- ``engine``        -- ``StoriesSyncEngine`` / ``DatasourceSyncEngine``:
  one sync pass for one collection.
- ``cache_version`` -- version gate and ``CacheVersionCoordinator``
  (single-flight version fetch shared by concurrent passes).
- ``merger``        -- ``reconcile``: merge a fresh batch into a category.
- ``ordering``      -- sort descriptor parsing and record comparison.
- ``watermark``     -- published timestamp parsing, folding, formatting.
- ``store``         -- ``DataStore`` / ``MetaStore`` protocols and the
  in-memory stores.
- ``state``         -- ``SyncState``: JSON state files per collection.
- ``models``        -- ordering types, ``ReconcileResult``, ``SyncReport``.
- ``reporter``      -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from storyblok_sync.sync import (
        CacheVersionCoordinator,
        StoriesSyncEngine,
        SyncState,
        format_sync_report,
    )

    state = SyncState(Path(".storyblok_sync/state"))
    store, meta = state.load_stores("blog")
    coordinator = CacheVersionCoordinator(fetcher.fetch_version_token)

    engine = StoriesSyncEngine(
        "blog", collection_config, fetcher, coordinator, store, meta
    )
    report = await engine.run()
    state.save_stores("blog", store, meta)
    print(format_sync_report(report))
"""

from .cache_version import CacheVersionCoordinator
from .engine import DatasourceSyncEngine, StoriesSyncEngine
from .merger import reconcile
from .models import (
    CategoryResult,
    OrderingRule,
    SortBy,
    SyncReport,
    SyncStatus,
)
from .ordering import compare_records, sort_records
from .reporter import format_sync_report, report_to_json, time_ago
from .state import SyncState
from .store import MemoryDataStore, MemoryMetaStore

__all__ = [
    "CacheVersionCoordinator",
    "CategoryResult",
    "DatasourceSyncEngine",
    "MemoryDataStore",
    "MemoryMetaStore",
    "OrderingRule",
    "SortBy",
    "StoriesSyncEngine",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    "compare_records",
    "format_sync_report",
    "reconcile",
    "report_to_json",
    "sort_records",
    "time_ago",
]
