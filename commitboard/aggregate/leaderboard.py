"""Ranking, inactivity and breakdown views over aggregated author stats."""

from __future__ import annotations

from typing import TYPE_CHECKING

from commitboard.aggregate.models import Leaderboard, LeaderboardEntry, RepositorySummary

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from commitboard.aggregate.models import AggregatedReport, AuthorStats, RepositoryWindowResult


def to_entry(identity: str, stats: AuthorStats) -> LeaderboardEntry:
    """Convert an author's stats into a leaderboard row."""
    return LeaderboardEntry(
        username=identity,
        name=stats.name or identity,
        commits=stats.commits,
        additions=stats.additions,
        deletions=stats.deletions,
        net_lines=stats.net_lines,
        repositories=sorted(stats.repositories),
    )


def rank(authors: Mapping[str, AuthorStats]) -> list[LeaderboardEntry]:
    """Order authors by commits, then net lines, both descending.

    The sort is stable, so full ties keep the mapping's iteration order.
    """
    entries = [to_entry(identity, stats) for identity, stats in authors.items()]
    return sorted(entries, key=lambda entry: (-entry.commits, -entry.net_lines))


def partition_activity(
    authors: Mapping[str, AuthorStats],
) -> tuple[list[LeaderboardEntry], list[LeaderboardEntry]]:
    """Split the ranked authors into active (commits > 0) and inactive (commits == 0)."""
    ranked = rank(authors)
    active = [entry for entry in ranked if entry.commits > 0]
    inactive = [entry for entry in ranked if entry.commits == 0]
    return active, inactive


def bottom_slice(ranked: list[LeaderboardEntry], size: int) -> list[LeaderboardEntry]:
    """Return the last ``size`` entries plus every entry tied at the lowest commit count, lowest first."""
    if not ranked:
        return []
    lowest = ranked[-1].commits
    cutoff = len(ranked) - size
    selected = [entry for index, entry in enumerate(ranked) if entry.commits == lowest or index >= cutoff]
    return list(reversed(selected))


def build_leaderboard(
    report: AggregatedReport,
    *,
    top_n: int,
    bottom_n: int,
    generated_at: datetime,
) -> Leaderboard:
    """Return the top and bottom slices of a report's ranked authors."""
    ranked = rank(report.aggregated)
    return Leaderboard(
        period=report.period,
        anchor_date=report.anchor_date,
        top=ranked[:top_n],
        bottom=bottom_slice(ranked, bottom_n),
        total=len(ranked),
        generated_at=generated_at,
    )


def summarize_repositories(by_repo: Mapping[str, RepositoryWindowResult]) -> list[RepositorySummary]:
    """Return per-repository totals ordered by commits, most active first."""
    summaries = [
        RepositorySummary(
            repository=repository,
            developers=len(result),
            commits=sum(stats.commits for stats in result.values()),
            additions=sum(stats.additions for stats in result.values()),
            deletions=sum(stats.deletions for stats in result.values()),
        )
        for repository, result in by_repo.items()
    ]
    return sorted(summaries, key=lambda summary: -summary.commits)
