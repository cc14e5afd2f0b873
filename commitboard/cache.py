"""Two-tier report cache: in-process memory in front of JSON snapshot files."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import pendulum
from pydantic import BaseModel

from commitboard.aggregate.models import AggregatedReport, CacheKey, Period

if TYPE_CHECKING:
    from datetime import date

    from commitboard.store.snapshot_store import SnapshotStore


LOGGER = logging.getLogger(__name__)

DEFAULT_MEMORY_TTL = timedelta(minutes=5)
DEFAULT_FILE_TTL = timedelta(hours=1)

Clock = Callable[[], datetime]
ReportComputer = Callable[[CacheKey], Awaitable["AggregatedReport"]]


def _utc_now() -> datetime:
    return pendulum.now("UTC")


class CacheEntry(BaseModel):
    """A memory-tier entry carrying the time it was written."""

    key: CacheKey
    report: AggregatedReport
    created_at: datetime


class SnapshotStatus(BaseModel):
    """Snapshot file state reported by cache introspection."""

    file: str
    period: Period
    age_minutes: int
    is_valid: bool
    size_bytes: int


class CacheStatus(BaseModel):
    """Summary of both cache tiers."""

    memory_entries: int
    memory_ttl_seconds: float
    file_ttl_seconds: float
    snapshots: list[SnapshotStatus]


class ClearResult(BaseModel):
    """Counts of entries evicted from each tier."""

    memory_entries_removed: int
    files_deleted: int = 0


class ReconcileOutcome(BaseModel):
    """Result of the startup check for one period."""

    period: Period
    status: str
    error: str | None = None


class ReportCache:
    """Serve reports from memory, then snapshot files, then a fresh computation.

    At most one computation per key runs at a time; concurrent callers for the
    same key await the same result.
    """

    def __init__(
        self,
        compute: ReportComputer,
        store: SnapshotStore,
        *,
        memory_ttl: timedelta = DEFAULT_MEMORY_TTL,
        file_ttl: timedelta = DEFAULT_FILE_TTL,
        clock: Clock | None = None,
    ) -> None:
        """Configure the cache with its computation, snapshot store, lifetimes and clock."""
        self._compute = compute
        self._store = store
        self._memory_ttl = memory_ttl
        self._file_ttl = file_ttl
        self._clock = clock or _utc_now
        self._memory: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task[AggregatedReport]] = {}

    def __len__(self) -> int:
        """Return the number of memory-tier entries, fresh or stale."""
        return len(self._memory)

    async def get(self, key: CacheKey, *, force_refresh: bool = False) -> AggregatedReport:
        """Return the report for the key, recomputing when both tiers miss or on force refresh."""
        if not force_refresh:
            cached = await self.peek(key)
            if cached is not None:
                return cached
        else:
            LOGGER.info("Force refresh requested for %s", key)
        return await self._single_flight(key)

    async def peek(self, key: CacheKey) -> AggregatedReport | None:
        """Return a fresh cached report without computing; a file hit repopulates memory."""
        report = self._memory_lookup(key)
        if report is not None:
            LOGGER.debug("Memory cache hit for %s", key)
            return report
        report = await asyncio.to_thread(self._file_lookup, key)
        if report is not None:
            self._memory[str(key)] = CacheEntry(key=key, report=report, created_at=self._clock())
        return report

    def clear_memory(self) -> int:
        """Evict every memory entry and return how many were removed."""
        removed = len(self._memory)
        self._memory.clear()
        LOGGER.info("Memory cache cleared (%s entries removed)", removed)
        return removed

    async def clear_all(self) -> ClearResult:
        """Evict memory entries and delete every snapshot file."""
        removed = self.clear_memory()
        deleted = await asyncio.to_thread(self._store.delete_all)
        LOGGER.info("Cache cleared: %s memory entries, %s files deleted", removed, deleted)
        return ClearResult(memory_entries_removed=removed, files_deleted=deleted)

    async def status(self) -> CacheStatus:
        """Describe the memory tier and every snapshot file on disk."""
        files = await asyncio.to_thread(self._store.list_files)
        now = self._clock()
        snapshots = [
            SnapshotStatus(
                file=info.file,
                period=info.period,
                age_minutes=round((now - info.modified_at).total_seconds() / 60),
                is_valid=now - info.modified_at < self._file_ttl,
                size_bytes=info.size_bytes,
            )
            for info in files
        ]
        return CacheStatus(
            memory_entries=len(self._memory),
            memory_ttl_seconds=self._memory_ttl.total_seconds(),
            file_ttl_seconds=self._file_ttl.total_seconds(),
            snapshots=snapshots,
        )

    async def reconcile(self, anchor_date: date) -> list[ReconcileOutcome]:
        """Regenerate missing or stale multi-repository snapshots for every period concurrently.

        A failing period is reported without aborting the others.
        """
        keys = [CacheKey(scope="multi", period=period, anchor_date=anchor_date) for period in Period]
        outcomes: dict[Period, ReconcileOutcome] = {}
        pending: list[CacheKey] = []
        for key in keys:
            if await asyncio.to_thread(self._file_lookup, key) is not None:
                outcomes[key.period] = ReconcileOutcome(period=key.period, status="fresh")
                continue
            modified_at = await asyncio.to_thread(self._store.modified_at, key)
            LOGGER.info("%s: snapshot %s, will regenerate", key.period, "stale" if modified_at else "missing")
            pending.append(key)

        results = await asyncio.gather(
            *(self.get(key, force_refresh=True) for key in pending),
            return_exceptions=True,
        )
        for key, result in zip(pending, results, strict=True):
            if isinstance(result, BaseException):
                LOGGER.error("%s report failed: %s", key.period, result)
                outcomes[key.period] = ReconcileOutcome(period=key.period, status="failed", error=str(result))
            else:
                outcomes[key.period] = ReconcileOutcome(period=key.period, status="regenerated")
        return [outcomes[key.period] for key in keys]

    def _memory_lookup(self, key: CacheKey) -> AggregatedReport | None:
        entry = self._memory.get(str(key))
        if entry is None:
            return None
        if self._clock() - entry.created_at < self._memory_ttl:
            return entry.report
        del self._memory[str(key)]
        return None

    def _file_lookup(self, key: CacheKey) -> AggregatedReport | None:
        snapshot = self._store.load(key)
        if snapshot is None:
            return None
        now = self._clock()
        written_at = min(snapshot.modified_at, snapshot.report.generated_at)
        age = now - written_at
        if age >= self._file_ttl:
            LOGGER.info("Snapshot %s too old (%s min)", snapshot.path.name, round(age.total_seconds() / 60))
            return None
        LOGGER.info("Using cached snapshot %s (%s min old)", snapshot.path.name, round(age.total_seconds() / 60))
        return snapshot.report

    async def _single_flight(self, key: CacheKey) -> AggregatedReport:
        name = str(key)
        task = self._in_flight.get(name)
        if task is None:
            task = asyncio.create_task(self._refresh(key))
            self._in_flight[name] = task
            task.add_done_callback(lambda _: self._in_flight.pop(name, None))
        else:
            LOGGER.debug("Joining in-flight computation for %s", key)
        return await asyncio.shield(task)

    async def _refresh(self, key: CacheKey) -> AggregatedReport:
        report = await self._compute(key)
        await asyncio.to_thread(self._store.save, key, report)
        self._memory[str(key)] = CacheEntry(key=key, report=report, created_at=self._clock())
        return report
