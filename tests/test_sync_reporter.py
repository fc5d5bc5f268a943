"""Tests for sync/reporter.py: text/JSON reports and relative ages."""

from datetime import datetime, timedelta, timezone

import pytest

from storyblok_sync.sync.models import CategoryResult, SyncReport, SyncStatus
from storyblok_sync.sync.reporter import (
    format_run_summary,
    format_sync_report,
    report_to_json,
    time_ago,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _report(**overrides) -> SyncReport:
    defaults = {
        "collection": "blog",
        "kind": "stories",
        "status": SyncStatus.SYNCED,
        "cache_version": 43,
        "watermark": "2024-01-20T00:00:00.000Z",
        "categories": [
            CategoryResult(
                category="post", fetched=3, skipped=1, superseded=1, stored=5
            ),
            CategoryResult(category="page", fetched=2, stored=2),
        ],
        "started_at": "2024-06-01T12:00:00+00:00",
        "completed_at": "2024-06-01T12:00:01+00:00",
    }
    defaults.update(overrides)
    return SyncReport(**defaults)


class TestTimeAgo:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=30), "just now"),
            (timedelta(minutes=1), "1 minute ago"),
            (timedelta(minutes=45), "45 minutes ago"),
            (timedelta(hours=1), "1 hour ago"),
            (timedelta(hours=23, minutes=59), "23 hours ago"),
            (timedelta(days=3), "3 days ago"),
            (timedelta(days=45), "1 month ago"),
            (timedelta(days=1370), "45 months ago"),
        ],
    )
    def test_buckets(self, delta, expected):
        assert time_ago(NOW - delta, now=NOW) == expected

    def test_naive_datetime_is_utc(self):
        assert time_ago(datetime(2024, 6, 1, 10, 0), now=NOW) == "2 hours ago"


class TestFormatSyncReport:
    def test_synced_report(self):
        text = format_sync_report(_report())

        assert text.splitlines()[0] == "[blog] stories: synced (cv: 43)"
        assert "Fetched 5, replaced 1, skipped 1" in text
        assert "post: 3 fetched, 5 stored" in text
        assert "Last published: 2024-01-20T00:00:00.000Z" in text

    def test_failed_report_shows_error(self):
        text = format_sync_report(
            _report(
                status=SyncStatus.FAILED,
                categories=[],
                cache_version=None,
                error="[blog] Failed to load stories: boom",
            )
        )

        assert text.splitlines() == [
            "[blog] stories: FAILED",
            "  Error: [blog] Failed to load stories: boom",
        ]

    def test_uncategorised_pass(self):
        text = format_sync_report(
            _report(categories=[CategoryResult(fetched=1, stored=1)])
        )
        assert "(all): 1 fetched, 1 stored" in text

    def test_run_summary_counts_failures(self):
        text = format_run_summary(
            [_report(), _report(collection="pages", status=SyncStatus.FAILED)]
        )
        assert text.endswith("2 collections: 1 ok, 1 failed")


class TestReportToJson:
    def test_structure(self):
        data = report_to_json(_report())

        assert data["collection"] == "blog"
        assert data["status"] == "synced"
        assert data["success"] is True
        assert data["counts"] == {"fetched": 5, "superseded": 1, "skipped": 1}
        assert data["categories"][1]["category"] == "page"
        assert "error" not in data

    def test_error_included_for_failures(self):
        data = report_to_json(
            _report(status=SyncStatus.FAILED, error="boom")
        )
        assert data["success"] is False
        assert data["error"] == "boom"
