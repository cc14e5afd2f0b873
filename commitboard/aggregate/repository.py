"""Per-repository commit aggregation across branches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from commitboard.aggregate.models import AuthorStats, BranchMode, RepositoryWindowResult
from commitboard.fetchers import branches, commits
from commitboard.models import CommitRecord

if TYPE_CHECKING:
    from commitboard.aggregate.models import TimeWindow
    from commitboard.github_client import GitHubClient
    from commitboard.models import Commit, CommitStats, RepositoryRef


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


async def run_concurrently(coroutines: list[Coroutine[Any, Any, T]]) -> list[T]:
    """Run coroutines in a task group and return their results in order.

    The first failure cancels the remaining tasks and is re-raised unwrapped.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coroutine) for coroutine in coroutines]
    except ExceptionGroup as errors:
        raise errors.exceptions[0] from None
    return [task.result() for task in tasks]


@dataclass
class _AuthorAccumulator:
    """Mutable per-author totals, private to a single aggregation run."""

    name: str
    email: str
    shas: set[str] = field(default_factory=set)
    additions: int = 0
    deletions: int = 0

    def fold(self, record: CommitRecord, stats: CommitStats) -> None:
        if record.sha in self.shas:
            return
        self.shas.add(record.sha)
        self.additions += stats.additions
        self.deletions += stats.deletions
        self.name = record.name
        self.email = record.email

    def freeze(self, repository: str) -> AuthorStats:
        return AuthorStats(
            commits=len(self.shas),
            additions=self.additions,
            deletions=self.deletions,
            repositories=frozenset({repository}),
            email=self.email,
            name=self.name,
        )


class CommitAggregator:
    """Fold the commits of one repository and window into per-author statistics."""

    def __init__(
        self,
        client: GitHubClient,
        *,
        mode: BranchMode = BranchMode.DEFAULT_BRANCH,
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        """Bind the aggregator to a client, branch mode and stats concurrency limit."""
        self._client = client
        self._mode = mode
        self._semaphore = semaphore or asyncio.Semaphore(5)

    async def aggregate(
        self,
        repository: RepositoryRef,
        window: TimeWindow,
        *,
        key: str | None = None,
    ) -> RepositoryWindowResult:
        """Return per-author stats for the repository's commits inside the window.

        ``key`` is the repository identifier recorded in each author's touched set.
        """
        repository_key = key or repository.full_name
        unique = await self._collect_unique_commits(repository, window)
        if not unique:
            return {}
        records = [CommitRecord.from_commit(commit) for commit in unique]
        stats = await run_concurrently([self._fetch_stats(repository, record.sha) for record in records])

        accumulators: dict[str, _AuthorAccumulator] = {}
        for record, commit_stats in zip(records, stats, strict=True):
            accumulator = accumulators.get(record.identity)
            if accumulator is None:
                accumulator = _AuthorAccumulator(name=record.name, email=record.email)
                accumulators[record.identity] = accumulator
            accumulator.fold(record, commit_stats)
        LOGGER.debug(
            "Aggregated %s commits from %s authors in %s",
            len(records),
            len(accumulators),
            repository.full_name,
        )
        return {identity: accumulator.freeze(repository_key) for identity, accumulator in accumulators.items()}

    async def _collect_unique_commits(self, repository: RepositoryRef, window: TimeWindow) -> list[Commit]:
        branch_names = await self._branches_to_scan(repository)
        if not branch_names:
            LOGGER.info("No branches found in %s", repository.full_name)
            return []
        unique: dict[str, Commit] = {}
        for branch in branch_names:
            branch_commits = await commits.fetch_commits(
                self._client,
                repository,
                since=window.since,
                until=window.until,
                branch=branch,
            )
            LOGGER.debug("Branch %s of %s: %s commits", branch or "default", repository.full_name, len(branch_commits))
            for commit in branch_commits:
                if not window.includes(commit.commit.author.date if commit.commit.author else None):
                    continue
                unique.setdefault(commit.sha, commit)
        return list(unique.values())

    async def _branches_to_scan(self, repository: RepositoryRef) -> list[str | None]:
        if self._mode is BranchMode.DEFAULT_BRANCH:
            return [repository.default_branch]
        return list(await branches.fetch_branches(self._client, repository))

    async def _fetch_stats(self, repository: RepositoryRef, sha: str) -> CommitStats:
        async with self._semaphore:
            return await commits.fetch_commit_stats(self._client, repository, sha)
