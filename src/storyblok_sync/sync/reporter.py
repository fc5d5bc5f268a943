"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync passes:

- ``format_sync_report`` -- summary of one collection pass.
- ``format_run_summary`` -- summary of a run over several collections.
- ``report_to_json`` -- structured dict for ``--json`` output.
- ``time_ago`` -- relative age used in log lines.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .models import SyncStatus

if TYPE_CHECKING:
    from .models import SyncReport

_STATUS_LABELS = {
    SyncStatus.SYNCED: "synced",
    SyncStatus.UP_TO_DATE: "up to date",
    SyncStatus.PUSH_APPLIED: "push applied",
    SyncStatus.FAILED: "FAILED",
}


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def time_ago(when: datetime, now: datetime | None = None) -> str:
    """Describe how long ago *when* was (``"3 hours ago"``).

    Naive datetimes are taken as UTC.  Months are counted as 30 days.
    """
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    minutes = int((now - when).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 30:
        return _plural(days, "day")
    return _plural(days // 30, "month")


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format one collection's sync report as human-readable text.

    Per-category lines are only included for passes that fetched.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = (
        f"[{report.collection}] {report.kind}: "
        f"{_STATUS_LABELS[report.status]}"
    )
    if report.cache_version is not None:
        header += f" (cv: {report.cache_version})"
    lines.append(header)

    if report.status == SyncStatus.FAILED:
        lines.append(f"  Error: {report.error}")
        return "\n".join(lines)

    if report.categories:
        lines.append(
            f"  Fetched {report.fetched}, "
            f"replaced {report.superseded}, skipped {report.skipped}"
        )
        for c in report.categories:
            name = c.category or "(all)"
            lines.append(
                f"  {name}: {c.fetched} fetched, {c.stored} stored"
            )

    if report.watermark:
        lines.append(f"  Last published: {report.watermark}")

    return "\n".join(lines)


def format_run_summary(reports: list[SyncReport]) -> str:
    """Format the reports of a whole run, followed by a totals line."""
    blocks = [format_sync_report(r) for r in reports]
    failed = sum(1 for r in reports if not r.success)
    blocks.append(
        f"{len(reports)} collections: "
        f"{len(reports) - failed} ok, {failed} failed"
    )
    return "\n\n".join(blocks)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with collection info, counts, and per-category details.
    """
    result: dict = {
        "collection": report.collection,
        "kind": report.kind,
        "status": report.status.value,
        "success": report.success,
        "cache_version": report.cache_version,
        "watermark": report.watermark,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "fetched": report.fetched,
            "superseded": report.superseded,
            "skipped": report.skipped,
        },
        "categories": [c.model_dump() for c in report.categories],
    }
    if report.error:
        result["error"] = report.error
    return result
