"""Collection state persistence layer.

Each collection gets its own JSON state file
(``collection_{name}.json``) in the state directory holding its ordered
entries and its metadata (``lastPublishedAt``, ``cacheVersion``).

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Ordered entries** -- entries are stored as a JSON list so the
  collection order produced by reconciliation survives a round-trip.
* **Dict-based state** -- the on-disk state is a plain ``dict``;
  ``load_stores`` / ``save_stores`` convert it to and from the in-memory
  stores the engines work on.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from .store import MemoryDataStore, MemoryMetaStore, StoredEntry

STATE_VERSION = 1

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class SyncState:
    """Load and save per-collection state.

    Args:
        state_dir: Directory where state files are stored.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = state_dir

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, collection: str) -> dict:
        """Load collection state from disk.

        Returns:
            The state dict.  If the file does not exist an empty state
            with ``version=1`` is returned.
        """
        path = self._state_path(collection)
        if not path.exists():
            return {
                "version": STATE_VERSION,
                "last_saved": None,
                "collection": collection,
                "meta": {},
                "entries": [],
            }
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)

    def save(self, collection: str, state: dict) -> None:
        """Persist collection state to disk atomically.

        Creates ``state_dir`` if needed and sets ``last_saved`` to the
        current UTC ISO 8601 timestamp before writing.
        """
        self._state_dir.mkdir(parents=True, exist_ok=True)
        state["last_saved"] = datetime.now(timezone.utc).isoformat()

        target = self._state_path(collection)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Store conversion
    # ------------------------------------------------------------------

    def load_stores(
        self, collection: str
    ) -> tuple[MemoryDataStore, MemoryMetaStore]:
        """Load *collection* into fresh in-memory stores.

        Raises:
            ValueError: If the state file is not valid JSON or has an
                unexpected shape.
        """
        state = self.load(collection)
        try:
            entries = [
                StoredEntry(
                    id=item["id"],
                    data=item.get("data") or {},
                    body=item.get("body"),
                )
                for item in state.get("entries", [])
            ]
        except (AttributeError, KeyError, TypeError) as e:
            raise ValueError(
                f"Malformed state file {self._state_path(collection)}: {e}"
            ) from e
        return MemoryDataStore(entries), MemoryMetaStore(state.get("meta"))

    def save_stores(
        self,
        collection: str,
        store: MemoryDataStore,
        meta: MemoryMetaStore,
    ) -> None:
        """Persist the in-memory stores of *collection*."""
        entries = []
        for key, entry in store.entries():
            item: dict = {"id": key, "data": entry.data}
            if entry.body is not None:
                item["body"] = entry.body
            entries.append(item)

        self.save(
            collection,
            {
                "version": STATE_VERSION,
                "collection": collection,
                "meta": meta.to_dict(),
                "entries": entries,
            },
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _state_path(self, collection: str) -> Path:
        """Return the path to the state file for *collection*."""
        safe = _UNSAFE_CHARS.sub("_", collection)
        return self._state_dir / f"collection_{safe}.json"
