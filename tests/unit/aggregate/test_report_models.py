"""Tests for report windows and author statistics models."""

from __future__ import annotations

from datetime import timedelta

import pendulum
import pytest

from commitboard.aggregate.models import AuthorStats, CacheKey, Period, build_window
from tests.factories import build_report


@pytest.mark.parametrize(
    ("period", "since"),
    [
        (Period.DAILY, pendulum.datetime(2024, 1, 15, tz="UTC")),
        (Period.WEEKLY, pendulum.datetime(2024, 1, 8, tz="UTC")),
        (Period.MONTHLY, pendulum.datetime(2023, 12, 16, tz="UTC")),
    ],
)
def test_build_window_ends_after_anchor_day(period: Period, since: pendulum.DateTime) -> None:
    """Every window should end at the midnight following the anchor day."""
    window = build_window(period, pendulum.datetime(2024, 1, 15, 17, 30, tz="UTC"))

    assert window.since == since
    assert window.until == pendulum.datetime(2024, 1, 16, tz="UTC")


def test_build_window_uses_reporting_timezone() -> None:
    """Day boundaries should follow the configured timezone."""
    window = build_window(Period.DAILY, pendulum.date(2024, 1, 15), tz="Asia/Tokyo")

    assert window.since == pendulum.datetime(2024, 1, 14, 15, tz="UTC")
    assert window.until - window.since == timedelta(days=1)


def test_window_rejects_missing_timestamp() -> None:
    """Commits without an author date never fall inside a window."""
    window = build_window(Period.DAILY, pendulum.date(2024, 1, 15))

    assert not window.includes(None)
    assert window.includes(window.since)
    assert not window.includes(window.until)


def test_author_stats_add_unions_repositories() -> None:
    """Adding stats should sum counts and union the touched repositories."""
    first = AuthorStats(commits=1, additions=5, deletions=9, repositories=frozenset({"api"}), name="Alice")
    second = AuthorStats(commits=2, additions=1, deletions=0, repositories=frozenset({"api", "web"}), email="a@x.io")

    total = first.add(second)

    assert total.commits == 3
    assert total.net_lines == -3
    assert total.repositories == frozenset({"api", "web"})
    assert (total.name, total.email) == ("Alice", "a@x.io")
    assert first.commits == 1


def test_report_document_uses_wire_names() -> None:
    """The snapshot document should expose camelCase keys and derived totals."""
    document = build_report(Period.WEEKLY).to_document()

    assert document["period"] == "weekly"
    assert document["date"] == "2024-01-15"
    assert document["totalDevelopers"] == 2
    assert document["totalRepositories"] == 1
    assert document["allContributors"] == ["alice", "bob"]
    alice = document["aggregated"]["alice"]
    assert alice == {
        "commits": 2,
        "additions": 10,
        "deletions": 3,
        "repositories": ["api"],
        "email": "",
        "name": "Alice",
        "netLines": 7,
    }
    assert document["byRepo"]["api"]["alice"]["netLines"] == 7


def test_cache_key_renders_deterministically() -> None:
    """Cache keys should render scope, period, date and repository."""
    key = CacheKey(scope="single", period=Period.DAILY, anchor_date=pendulum.date(2024, 1, 15), repository="api")

    assert str(key) == "single_daily_2024-01-15_api"
