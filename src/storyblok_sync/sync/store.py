"""Keyed record store and metadata store used by the sync engines.

The engines only rely on the ``DataStore`` and ``MetaStore`` protocols;
``MemoryDataStore`` and ``MemoryMetaStore`` are the insertion-ordered
in-memory implementations that ``SyncState`` loads from and saves to
disk.  Iteration order is meaningful: it is the collection's order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Protocol, runtime_checkable


@dataclass
class StoredEntry:
    """One entry of a collection.

    Attributes:
        id: Identity key of the entry.
        data: The record as returned by the API.
        body: Optional rendered body (datasource entries store their
            value or name here).
    """

    id: str
    data: dict
    body: str | None = None


@runtime_checkable
class DataStore(Protocol):
    def get(self, key: str) -> StoredEntry | None: ...

    def set(self, key: str, data: dict, body: str | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def entries(self) -> Iterator[tuple[str, StoredEntry]]: ...


@runtime_checkable
class MetaStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryDataStore:
    """Insertion-ordered in-memory ``DataStore``.

    Setting an existing key updates it in place; to move a record to the
    end, delete it first.
    """

    def __init__(self, entries: list[StoredEntry] | None = None) -> None:
        self._entries: dict[str, StoredEntry] = {}
        for entry in entries or []:
            self._entries[entry.id] = entry

    def get(self, key: str) -> StoredEntry | None:
        return self._entries.get(key)

    def set(self, key: str, data: dict, body: str | None = None) -> None:
        self._entries[key] = StoredEntry(id=key, data=data, body=body)

    def delete(self, key: str) -> None:
        """Remove *key*; no-op if absent."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> Iterator[tuple[str, StoredEntry]]:
        # Snapshot so callers may mutate the store while iterating.
        return iter(list(self._entries.items()))

    def keys(self) -> list[str]:
        return list(self._entries)

    def values(self) -> list[StoredEntry]:
        return list(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class MemoryMetaStore:
    """String-keyed in-memory ``MetaStore``."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def to_dict(self) -> dict[str, str]:
        return dict(self._values)
