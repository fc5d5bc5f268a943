"""Record ordering: field extraction, comparison and rule resolution.

Three layers, each usable on its own:

* ``get_sortable_value`` -- pulls a typed, comparable value out of a
  record (dates, case-folded strings, numbers) or ``UNORDERED``.
* ``compare_records`` -- three-way comparison under an ``OrderingRule``.
  Unordered values sort last regardless of direction.
* ``resolve_ordering`` -- picks the one effective rule from a stories
  collection config (custom > ``sort_by`` > ``storyblok_params.sort_by``
  > none).

``sort_records`` applies a rule with Python's stable sort, so records
that compare equal keep their input order.
"""

from __future__ import annotations

from functools import cmp_to_key
from numbers import Real
from typing import TYPE_CHECKING, Any

from .models import (
    UNORDERED,
    DateValue,
    NumericValue,
    OrderingKind,
    OrderingRule,
    Record,
    SortableValue,
    SortBy,
    SortDirection,
    StringValue,
    Unordered,
)
from .watermark import parse_timestamp

if TYPE_CHECKING:
    from ..config_schema import StoriesCollectionConfig

DATE_FIELDS = frozenset(
    {"created_at", "published_at", "first_published_at", "updated_at"}
)
STRING_FIELDS = frozenset({"name", "slug", "full_slug"})

# Rank used when two ordered values have different types.
_TYPE_RANK = {NumericValue: 0, StringValue: 1, DateValue: 2}


def parse_sort_by(
    descriptor: SortBy | str | None,
) -> tuple[str, SortDirection] | None:
    """Parse ``field:asc`` / ``field:desc``.

    Returns:
        ``(field, direction)`` or ``None`` when *descriptor* is empty or
        malformed.
    """
    if not descriptor:
        return None
    if isinstance(descriptor, SortBy):
        descriptor = descriptor.value
    parts = str(descriptor).split(":")
    if len(parts) != 2 or not parts[0]:
        return None
    try:
        direction = SortDirection(parts[1])
    except ValueError:
        return None
    return parts[0], direction


def _wrap(value: Any) -> SortableValue:
    # bool is a Real subclass but not a meaningful sort key
    if isinstance(value, bool):
        return UNORDERED
    if isinstance(value, str):
        return StringValue(value.casefold())
    if isinstance(value, Real):
        return NumericValue(float(value))
    return UNORDERED


def get_sortable_value(record: Record, field_name: str) -> SortableValue:
    """Extract *field_name* from *record* as a comparable value.

    Well-known date fields are parsed as timestamps, well-known string
    fields are case-folded.  Any other field is looked up in the record's
    ``content`` payload.  Missing or unparsable values give ``UNORDERED``;
    this function never raises.
    """
    if field_name in DATE_FIELDS:
        parsed = parse_timestamp(record.get(field_name))
        return DateValue(parsed) if parsed is not None else UNORDERED

    if field_name in STRING_FIELDS:
        value = record.get(field_name)
        if isinstance(value, str):
            return StringValue(value.casefold())
        return UNORDERED

    content = record.get("content")
    if not isinstance(content, dict) or field_name not in content:
        return UNORDERED
    return _wrap(content[field_name])


def _compare_values(a: SortableValue, b: SortableValue) -> int:
    if type(a) is not type(b):
        return _TYPE_RANK[type(a)] - _TYPE_RANK[type(b)]
    if a.value < b.value:  # type: ignore[union-attr]
        return -1
    if a.value > b.value:  # type: ignore[union-attr]
        return 1
    return 0


def compare_records(a: Record, b: Record, rule: OrderingRule) -> int:
    """Three-way comparison of two records under *rule*.

    Returns a negative number when *a* sorts first, zero when they are
    equal, positive when *b* sorts first.
    """
    if rule.kind == OrderingKind.CUSTOM and rule.compare is not None:
        return rule.compare(a, b)
    if rule.kind != OrderingKind.STANDARD or not rule.sort_field:
        return 0

    value_a = get_sortable_value(a, rule.sort_field)
    value_b = get_sortable_value(b, rule.sort_field)
    a_missing = isinstance(value_a, Unordered)
    b_missing = isinstance(value_b, Unordered)

    if a_missing and b_missing:
        return 0
    # Unordered sorts last in both directions
    if a_missing:
        return 1
    if b_missing:
        return -1

    result = _compare_values(value_a, value_b)
    return -result if rule.direction == SortDirection.DESC else result


def sort_records(records: list[Record], rule: OrderingRule) -> list[Record]:
    """Return a new list of *records* stably sorted under *rule*."""
    if rule.kind == OrderingKind.NONE:
        return list(records)
    return sorted(records, key=cmp_to_key(lambda a, b: compare_records(a, b, rule)))


def resolve_ordering(config: StoriesCollectionConfig) -> OrderingRule:
    """Derive the effective ordering rule from a stories collection config.

    Precedence: ``custom_sort`` > ``sort_by`` > legacy
    ``storyblok_params.sort_by`` > none.  A descriptor that does not parse
    resolves to none.
    """
    if config.custom_sort is not None:
        return OrderingRule.custom(config.custom_sort)

    descriptor = config.sort_by or config.storyblok_params.get("sort_by")
    parsed = parse_sort_by(descriptor)
    if parsed is None:
        return OrderingRule.none()
    field_name, direction = parsed
    return OrderingRule.standard(field_name, direction)
