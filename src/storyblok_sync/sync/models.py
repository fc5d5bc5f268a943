"""Data contracts for the incremental sync engine.

- ``SortBy``: the standard ``field:direction`` descriptors; a configured
  ``sort_by`` that matches one is normalised to it.
- ``DateValue`` / ``StringValue`` / ``NumericValue`` / ``Unordered``:
  tagged union returned by the field extractor.
- ``OrderingRule``: the single effective ordering of one sync pass.
- ``ReconcileResult``: output of the merge reconciler.
- ``CategoryResult`` / ``SyncReport``: outcome of one engine run.

Value and rule types are frozen dataclasses (they hold datetimes and
callables); report types are frozen Pydantic models so they serialise
cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Union

from pydantic import BaseModel

Record = dict
"""A story or datasource entry exactly as returned by the API."""

CompareFunction = Callable[[Record, Record], int]
"""Three-way comparison: negative, zero or positive like ``cmp``."""


class SortBy(str, Enum):
    """Standard sort descriptors understood by the Storyblok API."""

    CREATED_AT_ASC = "created_at:asc"
    CREATED_AT_DESC = "created_at:desc"
    FIRST_PUBLISHED_AT_ASC = "first_published_at:asc"
    FIRST_PUBLISHED_AT_DESC = "first_published_at:desc"
    NAME_ASC = "name:asc"
    NAME_DESC = "name:desc"
    PUBLISHED_AT_ASC = "published_at:asc"
    PUBLISHED_AT_DESC = "published_at:desc"
    SLUG_ASC = "slug:asc"
    SLUG_DESC = "slug:desc"
    UPDATED_AT_ASC = "updated_at:asc"
    UPDATED_AT_DESC = "updated_at:desc"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# ---------------------------------------------------------------------------
# Sortable values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateValue:
    value: datetime


@dataclass(frozen=True)
class StringValue:
    """A string compared case-insensitively (``value`` is already folded)."""

    value: str


@dataclass(frozen=True)
class NumericValue:
    value: float


@dataclass(frozen=True)
class Unordered:
    """Missing or unparsable field value; always sorts last."""


UNORDERED = Unordered()

SortableValue = Union[DateValue, StringValue, NumericValue, Unordered]


# ---------------------------------------------------------------------------
# Ordering rule
# ---------------------------------------------------------------------------


class OrderingKind(str, Enum):
    NONE = "none"
    STANDARD = "standard"
    CUSTOM = "custom"


@dataclass(frozen=True)
class OrderingRule:
    """The effective ordering of a sync pass.

    Attributes:
        kind: ``none``, ``standard`` or ``custom``.
        sort_field: Sort field for ``standard`` rules.
        direction: Sort direction for ``standard`` rules.
        compare: Comparison function for ``custom`` rules.
    """

    kind: OrderingKind = OrderingKind.NONE
    sort_field: str | None = None
    direction: SortDirection = SortDirection.ASC
    compare: CompareFunction | None = None

    @classmethod
    def none(cls) -> OrderingRule:
        return cls()

    @classmethod
    def standard(
        cls, field_name: str, direction: SortDirection
    ) -> OrderingRule:
        return cls(
            kind=OrderingKind.STANDARD,
            sort_field=field_name,
            direction=direction,
        )

    @classmethod
    def custom(cls, compare: CompareFunction) -> OrderingRule:
        return cls(kind=OrderingKind.CUSTOM, compare=compare)

    @property
    def descriptor(self) -> str:
        """Short human-readable form used in log messages."""
        if self.kind == OrderingKind.STANDARD:
            return f"{self.sort_field}:{self.direction.value}"
        return self.kind.value


# ---------------------------------------------------------------------------
# Reconciliation output
# ---------------------------------------------------------------------------


@dataclass
class ReconcileResult:
    """Result of merging a fresh batch into the stored records.

    Attributes:
        records: Final ``(identity, record)`` pairs for the scoped
            category, in their final order.
        replaced_keys: Identities of every stored record in scope.  The
            caller removes these from the store before writing *records*.
        superseded: Number of stored records replaced by a fresh record
            with the same identity.
        watermark: Maximum published timestamp after the merge.
        changed: ``False`` when the fresh batch was empty and nothing
            needs to be written back.
    """

    records: list[tuple[str, Record]] = field(default_factory=list)
    replaced_keys: list[str] = field(default_factory=list)
    superseded: int = 0
    watermark: datetime | None = None
    changed: bool = True


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class SyncStatus(str, Enum):
    """Outcome of one collection sync pass."""

    SYNCED = "synced"
    UP_TO_DATE = "up_to_date"
    PUSH_APPLIED = "push_applied"
    FAILED = "failed"


class CategoryResult(BaseModel):
    """Counts for one category (content type) of a sync pass.

    Attributes:
        category: Content type, or ``None`` for an uncategorised pass.
        fetched: Records returned by the API.
        skipped: Fetched records dropped for lacking an identity.
        superseded: Stored records replaced by a fresher copy.
        stored: Records in the category after the merge.
    """

    category: str | None = None
    fetched: int = 0
    skipped: int = 0
    superseded: int = 0
    stored: int = 0

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one collection sync pass.

    Attributes:
        collection: Collection name.
        kind: ``stories`` or ``datasource``.
        status: What the pass did.
        cache_version: Version token obtained for this pass, if known.
        watermark: Persisted ``lastPublishedAt`` after the pass.
        categories: Per-category counts, in processing order.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass completed.
        error: Error message for failed passes.
    """

    collection: str
    kind: str
    status: SyncStatus
    cache_version: int | None = None
    watermark: str | None = None
    categories: list[CategoryResult] = []
    started_at: str
    completed_at: str | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def fetched(self) -> int:
        """Total records fetched across categories."""
        return sum(c.fetched for c in self.categories)

    @property
    def skipped(self) -> int:
        """Total fetched records dropped for lacking an identity."""
        return sum(c.skipped for c in self.categories)

    @property
    def superseded(self) -> int:
        """Total stored records replaced by a fresher copy."""
        return sum(c.superseded for c in self.categories)

    @property
    def success(self) -> bool:
        return self.status != SyncStatus.FAILED
