"""Merge reconciliation of freshly fetched records into stored ones.

``reconcile`` works on ``(identity, record)`` pairs and never touches a
store; the engine removes ``replaced_keys`` and writes ``records`` back
so the category ends up in its final order.

Key design choices:

* **Category scoping** -- only stored records of the category being
  synced are considered.  Everything else is left where it is.
* **Supersede by identity** -- a stored record whose identity also
  appears in the fresh batch is dropped in favour of the fresh copy.
  Identities are *not* deduplicated within the fresh batch itself.
* **Stable ordering** -- stored records keep their relative order and
  fresh records keep the order the API returned them in whenever the
  comparator calls them equal.  With no ordering rule, fresh records are
  simply appended.
* **Scoped watermark** -- the returned watermark folds the final scoped
  records only, starting from the watermark passed in, so it never moves
  backwards.
"""

from __future__ import annotations

from datetime import datetime
from functools import cmp_to_key
from typing import Callable, Iterable, Sequence

from .models import OrderingKind, OrderingRule, ReconcileResult, Record
from .ordering import compare_records
from .watermark import fold

CategoryFunction = Callable[[Record], "str | None"]


def story_content_type(record: Record) -> str | None:
    """Category of a story: its root component name."""
    content = record.get("content")
    if isinstance(content, dict):
        component = content.get("component")
        if isinstance(component, str):
            return component
    return None


def reconcile(
    fresh: Sequence[tuple[str, Record]],
    stored: Iterable[tuple[str, Record]],
    category: str | None,
    rule: OrderingRule,
    watermark: datetime | None = None,
    category_of: CategoryFunction = story_content_type,
) -> ReconcileResult:
    """Merge *fresh* records into the *stored* records of one category.

    Args:
        fresh: ``(identity, record)`` pairs from the API, in API order.
        stored: ``(identity, record)`` pairs currently in the store, in
            store order.
        category: Category being synced; ``None`` scopes every record.
        rule: Effective ordering rule of the pass.
        watermark: Watermark before this merge.
        category_of: Maps a record to its category.

    Returns:
        A ``ReconcileResult`` with the final scoped records, the stored
        identities they replace, and the advanced watermark.
    """
    scoped = [
        (key, record)
        for key, record in stored
        if category is None or category_of(record) == category
    ]
    scoped_keys = [key for key, _ in scoped]

    if not fresh:
        return ReconcileResult(
            records=scoped,
            replaced_keys=scoped_keys,
            superseded=0,
            watermark=watermark,
            changed=False,
        )

    fresh_keys = {key for key, _ in fresh}
    kept = [(key, record) for key, record in scoped if key not in fresh_keys]
    merged = kept + list(fresh)

    if rule.kind != OrderingKind.NONE:
        merged.sort(
            key=cmp_to_key(
                lambda a, b: compare_records(a[1], b[1], rule)
            )
        )

    return ReconcileResult(
        records=merged,
        replaced_keys=scoped_keys,
        superseded=len(scoped) - len(kept),
        watermark=fold((record for _, record in merged), watermark),
        changed=True,
    )
