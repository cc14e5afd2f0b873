"""Query surface over the cached aggregation engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING

from commitboard.aggregate.leaderboard import build_leaderboard
from commitboard.aggregate.models import AuthorDetail, AuthorStats, CacheKey, Period, anchor_datetime
from commitboard.aggregate.repository import run_concurrently
from commitboard.cache import ReportCache
from commitboard.collector import MultiRepositoryCollector, ScopeOverview
from commitboard.store.snapshot_store import SnapshotStore

if TYPE_CHECKING:
    from datetime import date, datetime

    from commitboard.aggregate.models import AggregatedReport, Leaderboard
    from commitboard.cache import CacheStatus, ClearResult, Clock, ReconcileOutcome
    from commitboard.config import AppSettings
    from commitboard.github_client import GitHubClient


LOGGER = logging.getLogger(__name__)


class AuthorNotFoundError(LookupError):
    """Raised when a handle has no stats in any requested period."""

    def __init__(self, handle: str) -> None:
        """Record the handle that could not be found."""
        super().__init__(f"No contributions found for user: {handle}")
        self.handle = handle


class ReportService:
    """Answer report, leaderboard, author and cache requests for the presentation layer."""

    def __init__(
        self,
        settings: AppSettings,
        collector: MultiRepositoryCollector,
        cache: ReportCache,
        *,
        clock: Clock | None = None,
    ) -> None:
        """Wire the service to a collector and the cache that fronts it."""
        self._settings = settings
        self._collector = collector
        self._cache = cache
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        client_factory: Callable[[AppSettings], GitHubClient] | None = None,
        clock: Clock | None = None,
    ) -> ReportService:
        """Build the service, its collector and its two-tier cache from settings."""
        collector = MultiRepositoryCollector(settings, client_factory=client_factory)

        async def compute(key: CacheKey) -> AggregatedReport:
            return await collector.aggregate_stats(
                key.period,
                key.anchor_date,
                repository=key.repository or None,
            )

        cache = ReportCache(
            compute,
            SnapshotStore(settings.reports_dir),
            memory_ttl=timedelta(seconds=settings.memory_cache_ttl),
            file_ttl=timedelta(seconds=settings.file_cache_ttl),
            clock=clock,
        )
        return cls(settings, collector, cache, clock=clock)

    @property
    def cache(self) -> ReportCache:
        """Return the cache fronting the collector."""
        return self._cache

    def anchor_date(self, anchor: date | datetime | None = None) -> date:
        """Resolve an optional anchor to a calendar date in the reporting timezone."""
        if anchor is None and self._clock is not None:
            anchor = self._clock()
        return anchor_datetime(anchor, tz=self._settings.timezone).date()

    def cache_key(
        self,
        period: Period,
        anchor: date | datetime | None = None,
        *,
        repository: str | None = None,
    ) -> CacheKey:
        """Return the cache key for a report request."""
        return CacheKey(
            scope="single" if repository else "multi",
            period=period,
            anchor_date=self.anchor_date(anchor),
            repository=repository or "",
        )

    async def get_report(
        self,
        period: Period,
        anchor: date | datetime | None = None,
        *,
        force_refresh: bool = False,
        repository: str | None = None,
    ) -> AggregatedReport:
        """Return the aggregated report for a period, from cache when fresh.

        Callers receive their own copy; the cached instance is never handed out.
        """
        key = self.cache_key(period, anchor, repository=repository)
        report = await self._cache.get(key, force_refresh=force_refresh)
        return report.model_copy(deep=True)

    async def leaderboard(
        self,
        period: Period,
        anchor: date | datetime | None = None,
        *,
        top_n: int | None = None,
        bottom_n: int | None = None,
    ) -> Leaderboard:
        """Return ranked top and bottom slices for a period."""
        report = await self.get_report(period, anchor)
        size = self._settings.leaderboard_size
        return build_leaderboard(
            report,
            top_n=top_n or size,
            bottom_n=bottom_n or size,
            generated_at=self._now(),
        )

    async def get_author_detail(
        self,
        handle: str,
        anchor: date | datetime | None = None,
        *,
        period: Period | None = None,
    ) -> AuthorDetail:
        """Return per-period stats for one author.

        Every cached period is consulted first; reports are only computed when
        the handle appears in none of them.
        """
        anchor_date = self.anchor_date(anchor)
        cached = await asyncio.gather(*(self._cache.peek(self.cache_key(p, anchor_date)) for p in Period))
        found = {
            report.period: report.aggregated[handle]
            for report in cached
            if report is not None and handle in report.aggregated
        }
        from_cache = bool(found)
        if found:
            LOGGER.info("User %s found in cached reports", handle)
        else:
            requested = [period] if period else list(Period)
            LOGGER.info("User %s not in cache, computing %s", handle, ", ".join(requested))
            reports = await run_concurrently([self.get_report(p, anchor_date) for p in requested])
            found = {report.period: report.aggregated[handle] for report in reports if handle in report.aggregated}
        if not found:
            raise AuthorNotFoundError(handle)

        name = next((stats.name for stats in found.values() if stats.name), handle)
        email = next((stats.email for stats in found.values() if stats.email), "")
        return AuthorDetail(
            username=handle,
            name=name,
            email=email,
            anchor_date=anchor_date,
            periods={p: found.get(p, AuthorStats(name=name)) for p in Period},
            from_cache=from_cache,
            generated_at=self._now(),
        )

    async def overview(self) -> ScopeOverview:
        """Return the repositories and roster size of the configured scope."""
        return await self._collector.scope_overview()

    async def reconcile(self, anchor: date | datetime | None = None) -> list[ReconcileOutcome]:
        """Regenerate missing or stale snapshots for the anchor date."""
        return await self._cache.reconcile(self.anchor_date(anchor))

    async def cache_status(self) -> CacheStatus:
        """Describe both cache tiers."""
        return await self._cache.status()

    def clear_memory(self) -> int:
        """Evict the memory tier."""
        return self._cache.clear_memory()

    async def clear_all(self) -> ClearResult:
        """Evict the memory tier and delete every snapshot file."""
        return await self._cache.clear_all()

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return anchor_datetime(None, tz="UTC")
