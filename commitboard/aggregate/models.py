"""Models representing aggregated report structures."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Literal

import pendulum
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer
from pydantic.alias_generators import to_camel


class Period(StrEnum):
    """Report periods supported by the aggregation engine."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BranchMode(StrEnum):
    """Which branches of a repository are scanned for commits."""

    ALL_BRANCHES = "all"
    DEFAULT_BRANCH = "default"


Scope = Literal["single", "multi"]

_LOOKBACK_DAYS = {
    Period.DAILY: 0,
    Period.WEEKLY: 7,
    Period.MONTHLY: 30,
}


class TimeWindow(BaseModel):
    """A half-open ``[since, until)`` range over which commits are counted."""

    period: Period
    since: datetime
    until: datetime

    def includes(self, timestamp: datetime | None) -> bool:
        """Return True when the timestamp falls inside the window."""
        if timestamp is None:
            return False
        return self.since <= timestamp < self.until


def anchor_datetime(anchor: date | datetime | None, *, tz: str = "UTC") -> pendulum.DateTime:
    """Normalize an anchor date or timestamp into the reporting timezone."""
    if anchor is None:
        return pendulum.now(tz)
    if isinstance(anchor, datetime):
        if anchor.tzinfo is None:
            return pendulum.instance(anchor, tz=tz)
        return pendulum.instance(anchor).in_timezone(tz)
    return pendulum.datetime(anchor.year, anchor.month, anchor.day, tz=tz)


def build_window(period: Period, anchor: date | datetime | None = None, *, tz: str = "UTC") -> TimeWindow:
    """Return the window for a period ending with the anchor's calendar day.

    Daily covers the anchor day only; weekly and monthly reach back 7 and
    30 days from the anchor's midnight and include the whole anchor day.
    """
    midnight = anchor_datetime(anchor, tz=tz).start_of("day")
    return TimeWindow(
        period=period,
        since=midnight.subtract(days=_LOOKBACK_DAYS[period]),
        until=midnight.add(days=1),
    )


class AuthorStats(BaseModel):
    """Commit totals for one author identity within a window and scope."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    commits: int = Field(default=0, ge=0)
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    repositories: frozenset[str] = Field(default_factory=frozenset)
    email: str = ""
    name: str = ""

    @computed_field(alias="netLines")  # type: ignore[prop-decorator]
    @property
    def net_lines(self) -> int:
        """Additions minus deletions, always derived from the stored totals."""
        return self.additions - self.deletions

    @field_serializer("repositories")
    def _serialize_repositories(self, repositories: frozenset[str]) -> list[str]:
        return sorted(repositories)

    def add(self, other: AuthorStats) -> AuthorStats:
        """Return a new AuthorStats representing the sum with another instance.

        Non-empty name and email on ``other`` replace the current values.
        """
        return AuthorStats(
            commits=self.commits + other.commits,
            additions=self.additions + other.additions,
            deletions=self.deletions + other.deletions,
            repositories=self.repositories | other.repositories,
            email=other.email or self.email,
            name=other.name or self.name,
        )


RepositoryWindowResult = dict[str, AuthorStats]


def _empty_stats() -> dict[str, AuthorStats]:
    return {}


def _empty_breakdown() -> dict[str, dict[str, AuthorStats]]:
    return {}


class AggregatedReport(BaseModel):
    """Top-level report: merged author stats, per-repository results and the roster."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    period: Period
    anchor_date: date = Field(alias="date")
    scope: Scope = "multi"
    repository: str | None = None
    aggregated: dict[str, AuthorStats] = Field(default_factory=_empty_stats)
    by_repo: dict[str, dict[str, AuthorStats]] = Field(default_factory=_empty_breakdown)
    all_contributors: list[str] = Field(default_factory=list)
    generated_at: datetime

    @computed_field(alias="totalDevelopers")  # type: ignore[prop-decorator]
    @property
    def total_developers(self) -> int:
        """Number of author identities in the merged map."""
        return len(self.aggregated)

    @computed_field(alias="totalRepositories")  # type: ignore[prop-decorator]
    @property
    def total_repositories(self) -> int:
        """Number of repositories in the per-repository breakdown."""
        return len(self.by_repo)

    def to_document(self) -> dict[str, object]:
        """Return the JSON-compatible snapshot document."""
        return self.model_dump(mode="json", by_alias=True)


class CacheKey(BaseModel):
    """Deterministic cache identity for a report request."""

    model_config = ConfigDict(frozen=True)

    scope: Scope
    period: Period
    anchor_date: date
    repository: str = ""

    def __str__(self) -> str:
        """Render the key as ``scope_period_date_repository``."""
        return f"{self.scope}_{self.period}_{self.anchor_date.isoformat()}_{self.repository}"


class LeaderboardEntry(BaseModel):
    """A ranked row derived from an author's stats."""

    username: str
    name: str
    commits: int
    additions: int
    deletions: int
    net_lines: int
    repositories: list[str]

    @property
    def repo_count(self) -> int:
        """Number of repositories the author touched."""
        return len(self.repositories)


class Leaderboard(BaseModel):
    """Top and bottom slices of the ranked leaderboard."""

    period: Period
    anchor_date: date
    top: list[LeaderboardEntry]
    bottom: list[LeaderboardEntry]
    total: int
    generated_at: datetime


class RepositorySummary(BaseModel):
    """Per-repository totals used by the breakdown view."""

    repository: str
    developers: int
    commits: int
    additions: int
    deletions: int

    @property
    def net_lines(self) -> int:
        """Additions minus deletions for the repository."""
        return self.additions - self.deletions


class AuthorDetail(BaseModel):
    """Per-period stats for one author."""

    username: str
    name: str
    email: str
    anchor_date: date
    periods: dict[Period, AuthorStats]
    from_cache: bool
    generated_at: datetime
