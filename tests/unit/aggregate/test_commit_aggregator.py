"""Tests for per-repository commit aggregation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pendulum
import pytest

from commitboard.aggregate.models import BranchMode, Period, build_window
from commitboard.aggregate.repository import CommitAggregator
from commitboard.models import RepositoryRef
from tests.factories import commit_payload, stats_payload
from tests.fakes import FakeGitHubClient

if TYPE_CHECKING:
    from commitboard.config import AppSettings

COMMITS = "/repos/acme/api/commits"
WINDOW = build_window(Period.DAILY, pendulum.date(2024, 1, 15))


@pytest.mark.asyncio
async def test_aggregate_counts_shared_commits_once(settings: AppSettings) -> None:
    """A commit reachable from two branches should be counted a single time."""
    client = FakeGitHubClient(
        settings,
        responses={
            "/repos/acme/api/branches": [{"name": "main"}, {"name": "feature"}],
            f"{COMMITS}@main": [commit_payload("c1", login="alice")],
            f"{COMMITS}@feature": [commit_payload("c1", login="alice"), commit_payload("c2", login="alice")],
        },
        documents={
            f"{COMMITS}/c1": stats_payload("c1", 10, 2),
            f"{COMMITS}/c2": stats_payload("c2", 5, 1),
        },
    )
    aggregator = CommitAggregator(client, mode=BranchMode.ALL_BRANCHES)

    result = await aggregator.aggregate(RepositoryRef(owner="acme", name="api"), WINDOW, key="api")

    alice = result["alice"]
    assert alice.commits == 2
    assert (alice.additions, alice.deletions, alice.net_lines) == (15, 3, 12)
    assert alice.repositories == frozenset({"api"})
    assert client.calls.count(f"{COMMITS}/c1") == 1


@pytest.mark.asyncio
async def test_default_branch_mode_skips_branch_listing(settings: AppSettings) -> None:
    """Default-branch mode should read one commit listing and never list branches."""
    client = FakeGitHubClient(
        settings,
        responses={COMMITS: [commit_payload("c1", login="alice")]},
        documents={f"{COMMITS}/c1": stats_payload("c1", 3, 0)},
    )
    aggregator = CommitAggregator(client, mode=BranchMode.DEFAULT_BRANCH)

    result = await aggregator.aggregate(RepositoryRef(owner="acme", name="api"), WINDOW)

    assert "/repos/acme/api/branches" not in client.calls
    assert result["alice"].repositories == frozenset({"acme/api"})


@pytest.mark.asyncio
async def test_unlinked_authors_are_keyed_by_display_name(settings: AppSettings) -> None:
    """Commits without a linked account should fall back to the author name."""
    client = FakeGitHubClient(
        settings,
        responses={COMMITS: [commit_payload("c1", login=None, name="Carol Dev", email="carol@example.com")]},
    )
    aggregator = CommitAggregator(client)

    result = await aggregator.aggregate(RepositoryRef(owner="acme", name="api"), WINDOW)

    assert list(result) == ["Carol Dev"]
    assert result["Carol Dev"].email == "carol@example.com"
    assert result["Carol Dev"].additions == 0


@pytest.mark.asyncio
async def test_repository_without_branches_yields_empty_result(settings: AppSettings) -> None:
    """A repository with no branches should contribute nothing."""
    client = FakeGitHubClient(settings, responses={"/repos/acme/api/branches": []})
    aggregator = CommitAggregator(client, mode=BranchMode.ALL_BRANCHES)

    result = await aggregator.aggregate(RepositoryRef(owner="acme", name="api"), WINDOW)

    assert result == {}


@pytest.mark.asyncio
async def test_commits_outside_window_are_excluded(settings: AppSettings) -> None:
    """The window end is exclusive, so a commit at the next midnight is not counted."""
    client = FakeGitHubClient(
        settings,
        responses={
            COMMITS: [
                commit_payload("c1", login="alice", authored_at="2024-01-15T00:00:00Z"),
                commit_payload("c2", login="alice", authored_at="2024-01-16T00:00:00Z"),
                commit_payload("c3", login="bob", authored_at="2024-01-14T23:59:59Z"),
            ],
        },
    )
    aggregator = CommitAggregator(client)

    result = await aggregator.aggregate(RepositoryRef(owner="acme", name="api"), WINDOW)

    assert list(result) == ["alice"]
    assert result["alice"].commits == 1
