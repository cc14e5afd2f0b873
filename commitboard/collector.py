"""Cross-repository aggregation of commit statistics."""

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

import pendulum
from pydantic import BaseModel, ValidationError

from commitboard.aggregate.models import (
    AggregatedReport,
    AuthorStats,
    BranchMode,
    Period,
    RepositoryWindowResult,
    build_window,
)
from commitboard.aggregate.repository import CommitAggregator, run_concurrently
from commitboard.fetchers import contributors, repositories
from commitboard.github_client import AuthFailureError, GitHubAPIError, GitHubClient, RateLimitedError
from commitboard.models import RepositoryRef

if TYPE_CHECKING:
    from commitboard.aggregate.models import TimeWindow
    from commitboard.config import AppSettings

LOGGER = logging.getLogger(__name__)


class ScopeOverview(BaseModel):
    """Repositories and roster size for the configured scope."""

    organization: str
    repositories: list[str]
    total_contributors: int


class MultiRepositoryCollector:
    """Aggregate commit activity across every repository in scope.

    The collector holds no cache state; every call recomputes from the API.
    """

    def __init__(
        self,
        settings: "AppSettings",
        *,
        client_factory: Callable[["AppSettings"], GitHubClient] | None = None,
    ) -> None:
        """Initialize the collector with runtime settings."""
        self._settings = settings
        self._client_factory: Callable[[AppSettings], GitHubClient]
        self._client_factory = client_factory or GitHubClient

    async def aggregate_stats(
        self,
        period: Period,
        anchor: date | datetime | None = None,
        *,
        repository: str | None = None,
    ) -> AggregatedReport:
        """Build the report for a period, across the configured scope or a single repository.

        A single repository is scanned on every branch; the multi-repository
        scope only reads default branches.
        """
        window = build_window(period, anchor, tz=self._settings.timezone)
        async with self._client_factory(self._settings) as client:
            if repository:
                refs = [RepositoryRef.parse(repository, default_owner=self._settings.organization)]
                mode = BranchMode.ALL_BRANCHES
            else:
                refs = await self.resolve_repositories(client)
                mode = BranchMode.DEFAULT_BRANCH
            report = await self._aggregate(client, refs, window, mode=mode)
        return report.model_copy(update={"scope": "single" if repository else "multi", "repository": repository})

    async def resolve_repositories(self, client: GitHubClient) -> list[RepositoryRef]:
        """Return the configured repository list, or discover repositories via the API."""
        organization = self._settings.organization
        if self._settings.repositories:
            return [RepositoryRef.parse(name, default_owner=organization) for name in self._settings.repositories]
        discovered = await repositories.fetch_repositories(client, organization or None)
        return [RepositoryRef.from_repository(repository) for repository in discovered]

    async def resolve_roster(self, client: GitHubClient, refs: list[RepositoryRef]) -> list[str]:
        """Return the union of contributor logins across repositories, in first-seen order."""
        roster: dict[str, None] = {}
        for ref in refs:
            for contributor in await contributors.fetch_contributors(client, ref):
                roster.setdefault(contributor.login, None)
        LOGGER.info("Found %s unique contributors across %s repositories", len(roster), len(refs))
        return list(roster)

    async def scope_overview(self) -> ScopeOverview:
        """Describe the repositories in scope and how many contributors they have."""
        organization = self._settings.organization
        async with self._client_factory(self._settings) as client:
            refs = await self.resolve_repositories(client)
            roster = await self.resolve_roster(client, refs)
        return ScopeOverview(
            organization=organization,
            repositories=[ref.key(organization) for ref in refs],
            total_contributors=len(roster),
        )

    async def _aggregate(
        self,
        client: GitHubClient,
        refs: list[RepositoryRef],
        window: "TimeWindow",
        *,
        mode: BranchMode,
    ) -> AggregatedReport:
        organization = self._settings.organization
        generated_at = pendulum.now("UTC")
        anchor_date = (window.until - timedelta(days=1)).date()
        if not refs:
            LOGGER.warning("No repositories in scope for %s report", window.period)
            return AggregatedReport(period=window.period, anchor_date=anchor_date, generated_at=generated_at)

        LOGGER.info(
            "Analyzing %s repositories (%s) from %s to %s",
            len(refs),
            mode,
            window.since.isoformat(),
            window.until.isoformat(),
        )
        roster = await self.resolve_roster(client, refs)
        aggregator = CommitAggregator(
            client,
            mode=mode,
            semaphore=asyncio.Semaphore(self._settings.max_concurrency),
        )
        repository_semaphore = asyncio.Semaphore(self._settings.repository_concurrency)
        keys = [ref.key(organization) for ref in refs]
        results = await run_concurrently(
            [
                self._aggregate_repository(aggregator, repository_semaphore, ref, key, window)
                for ref, key in zip(refs, keys, strict=True)
            ],
        )
        by_repo = dict(zip(keys, results, strict=True))
        return AggregatedReport(
            period=window.period,
            anchor_date=anchor_date,
            aggregated=merge_results(roster, by_repo),
            by_repo=by_repo,
            all_contributors=roster,
            generated_at=generated_at,
        )

    async def _aggregate_repository(
        self,
        aggregator: CommitAggregator,
        semaphore: asyncio.Semaphore,
        ref: RepositoryRef,
        key: str,
        window: "TimeWindow",
    ) -> RepositoryWindowResult:
        async with semaphore:
            try:
                async with asyncio.timeout(self._settings.repository_timeout):
                    result = await aggregator.aggregate(ref, window, key=key)
            except (AuthFailureError, RateLimitedError):
                raise
            except TimeoutError:
                LOGGER.warning(
                    "Timed out after %ss aggregating %s, recording no activity",
                    self._settings.repository_timeout,
                    ref.full_name,
                )
                return {}
            except (GitHubAPIError, ValidationError) as exc:
                LOGGER.warning("Skipping %s due to error: %s", ref.full_name, exc)
                return {}
        commit_count = sum(stats.commits for stats in result.values())
        LOGGER.info("%s: %s developers, %s commits", key, len(result), commit_count)
        return result


def merge_results(roster: list[str], by_repo: dict[str, RepositoryWindowResult]) -> dict[str, AuthorStats]:
    """Merge per-repository results into one author map seeded with zeroed roster entries.

    Sums and set unions make the totals independent of repository order.
    """
    merged: dict[str, AuthorStats] = {login: AuthorStats(name=login) for login in roster}
    for result in by_repo.values():
        for identity, stats in result.items():
            existing = merged.get(identity)
            merged[identity] = stats if existing is None else existing.add(stats)
    return merged
