"""Command line entry point: sync the configured collections once.

All selected collections run concurrently as independent asyncio tasks
that share one ``StoryblokClient`` and one ``CacheVersionCoordinator``,
so the space's version is requested once per run.  A failing collection
does not stop the others, and every collection's state is saved,
including the partial progress of failed ones.  A collection whose state
file cannot be read is reported as failed and its file is left as is.

Output: the sync report goes to stdout (text or ``--json``); log records
and user-facing messages go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from .config_schema import (
    DatasourceCollectionConfig,
    StoriesCollectionConfig,
    UnifiedConfig,
    build_config,
)
from .core.async_utils import gather_limited, init_semaphore, run_sync
from .core.client import StoryblokClient
from .core.fetcher import StoryblokFetcher
from .errors import CollectionSyncError
from .logger import setup_logging
from .sync.cache_version import CacheVersionCoordinator
from .sync.engine import (
    DatasourceSyncEngine,
    StoriesSyncEngine,
    failed_report,
)
from .sync.models import Record, SyncReport
from .sync.reporter import format_run_summary, report_to_json
from .sync.state import SyncState

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback."""
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Push payloads
# ---------------------------------------------------------------------------


def load_push_record(path: Path) -> Record:
    """Read a pushed story from *path*.

    Accepts either the bare story object or an envelope with a
    ``story`` key, as delivered by the Storyblok webhook relay.

    Raises:
        ValueError: If the file does not hold a JSON object.
    """
    with open(path, encoding="utf-8") as fh:
        payload = json.load(fh)
    if isinstance(payload, dict) and isinstance(payload.get("story"), dict):
        payload = payload["story"]
    if not isinstance(payload, dict):
        raise ValueError(f"{path} does not contain a story object")
    return payload


# ---------------------------------------------------------------------------
# Sync run
# ---------------------------------------------------------------------------


async def sync_collection(
    name: str,
    collection: StoriesCollectionConfig | DatasourceCollectionConfig,
    fetcher: StoryblokFetcher,
    coordinator: CacheVersionCoordinator,
    state: SyncState,
    push_record: Record | None = None,
) -> SyncReport:
    """Run one collection's sync pass and save its state.

    Failures are turned into a failed report.  Once loaded, state is saved
    either way; a state file that cannot be read is left untouched.
    """
    started_at = datetime.now(timezone.utc).isoformat()
    try:
        store, meta = await run_sync(state.load_stores, name)
    except (OSError, ValueError) as exc:
        logger.error("[%s] Failed to load state: %s", name, exc)
        return failed_report(
            name,
            collection.kind,
            CollectionSyncError(name, f"Failed to load state: {exc}"),
            started_at,
        )

    try:
        if isinstance(collection, StoriesCollectionConfig):
            engine = StoriesSyncEngine(
                name, collection, fetcher, coordinator, store, meta
            )
            report = await engine.run(push_record)
        else:
            engine = DatasourceSyncEngine(
                name, collection, fetcher, coordinator, store, meta
            )
            report = await engine.run()
    except CollectionSyncError as exc:
        report = failed_report(name, collection.kind, exc, started_at)

    try:
        await run_sync(state.save_stores, name, store, meta)
    except (OSError, ValueError) as exc:
        logger.error("[%s] Failed to save state: %s", name, exc)
        return failed_report(
            name,
            collection.kind,
            CollectionSyncError(name, f"Failed to save state: {exc}"),
            started_at,
        )
    logger.debug("[%s] State saved", name)
    return report


async def sync_all(
    unified: UnifiedConfig,
    config: Config,
    names: list[str],
    state: SyncState,
    push_record: Record | None = None,
) -> list[SyncReport]:
    """Sync *names* concurrently against one client and one coordinator."""
    init_semaphore(config.max_parallel_requests)
    client = StoryblokClient(config)
    fetcher = StoryblokFetcher(client)
    coordinator = CacheVersionCoordinator(fetcher.fetch_version_token)

    logger.info(
        "Syncing %d collection(s) from %s", len(names), config.base_url
    )
    return await gather_limited(
        [
            sync_collection(
                name,
                unified.collections[name],
                fetcher,
                coordinator,
                state,
                push_record,
            )
            for name in names
        ]
    )


def select_collections(
    unified: UnifiedConfig, requested: list[str] | None
) -> list[str]:
    """Return the collection names to sync, in config order.

    Raises:
        ValueError: On an unknown collection name or nothing to sync.
    """
    if not unified.collections:
        raise ValueError(
            "No collections configured. Run 'storyblok-sync --init' and "
            "add collections to the config file."
        )
    if not requested:
        return list(unified.collections)
    unknown = [n for n in requested if n not in unified.collections]
    if unknown:
        raise ValueError(
            f"Unknown collection(s): {', '.join(unknown)} "
            f"(configured: {', '.join(unified.collections)})"
        )
    return [n for n in unified.collections if n in requested]


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storyblok-sync",
        description="Incrementally sync Storyblok stories and datasources "
        "into local collection state files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a starter config file
  storyblok-sync --init

  # Sync every configured collection
  storyblok-sync

  # Sync one collection and print a JSON report
  storyblok-sync --collection blog --json

  # Apply a story delivered by a webhook without fetching
  storyblok-sync --collection blog --push-file story.json

Configuration: STORYBLOK_ACCESS_TOKEN / STORYBLOK_REGION env vars (or
.env), then .storyblok_sync/config.yml.
        """,
    )
    parser.add_argument(
        "--collection",
        action="append",
        dest="collections",
        metavar="NAME",
        help="Collection to sync (repeatable; default: all configured)",
    )
    parser.add_argument(
        "--push-file",
        type=Path,
        help="JSON file holding a pushed story to apply to the single "
        "selected stories collection",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        help="Directory for collection state files (overrides state.dir)",
    )
    parser.add_argument(
        "--token",
        help="Override access token (takes precedence over "
        "STORYBLOK_ACCESS_TOKEN env var and config files)",
    )
    parser.add_argument(
        "--region",
        help="Override space region (eu, us, ap, ca, cn)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable DEBUG logging",
    )
    parser.add_argument(
        "--log-file",
        help="Also append log records to this file",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create a starter config file and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"storyblok-sync version {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return its exit status."""
    args = build_parser().parse_args(argv)

    if args.init:
        path = ensure_config()
        _stderr_print(f"Config file: {path}")
        return 0

    # .env first so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    try:
        unified = build_config(load_hierarchical_config())
    except Exception as e:
        setup_logging(debug=args.debug, log_file=args.log_file)
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        return 2

    setup_logging(
        debug=args.debug,
        level=unified.logging.level,
        log_file=args.log_file or unified.logging.file,
    )

    config_files = discover_config_files()
    if config_files:
        logger.info("Configuration loaded from: %s", config_files[0])

    yaml_fallbacks: dict[str, Any] = {
        k: v
        for k, v in unified.storyblok.model_dump().items()
        if v is not None
    }
    try:
        config = load_config(
            access_token=args.token,
            region=args.region,
            yaml_fallbacks=yaml_fallbacks,
        )
        names = select_collections(unified, args.collections)
        push_record = None
        if args.push_file:
            if len(names) != 1 or not isinstance(
                unified.collections[names[0]], StoriesCollectionConfig
            ):
                raise ValueError(
                    "--push-file needs exactly one stories collection "
                    "(use --collection)"
                )
            push_record = load_push_record(args.push_file)
    except (OSError, ValueError) as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: {e}")
        return 2

    state = SyncState(args.state_dir or Path(unified.state.dir))

    try:
        reports = asyncio.run(
            sync_all(unified, config, names, state, push_record)
        )
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        return 130

    if args.json:
        print(json.dumps([report_to_json(r) for r in reports], indent=2))
    else:
        print(format_run_summary(reports))

    return 0 if all(r.success for r in reports) else 1


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
