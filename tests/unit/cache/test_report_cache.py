"""Tests for the two-tier report cache."""

from __future__ import annotations

import asyncio
import os
from datetime import timedelta
from typing import TYPE_CHECKING

import pendulum
import pytest

from commitboard.aggregate.models import CacheKey, Period
from commitboard.cache import ReportCache
from commitboard.github_client import TransientError
from commitboard.store.snapshot_store import SnapshotStore
from tests.factories import build_report

if TYPE_CHECKING:
    from pathlib import Path

    from commitboard.aggregate.models import AggregatedReport

ANCHOR = pendulum.date(2024, 1, 15)
KEY = CacheKey(scope="multi", period=Period.DAILY, anchor_date=ANCHOR)
START = pendulum.datetime(2024, 1, 15, 12, tz="UTC")


class _Clock:
    def __init__(self) -> None:
        self.now = START

    def __call__(self) -> pendulum.DateTime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now.add(**kwargs)


class _Computer:
    def __init__(self, clock: _Clock, *, failing: set[Period] | None = None, delay: float = 0) -> None:
        self.clock = clock
        self.failing = failing or set()
        self.delay = delay
        self.calls: list[CacheKey] = []

    async def __call__(self, key: CacheKey) -> AggregatedReport:
        self.calls.append(key)
        if self.delay:
            await asyncio.sleep(self.delay)
        if key.period in self.failing:
            raise TransientError("GitHub unavailable", status_code=502)
        return build_report(key.period, generated_at=self.clock())


class _MissingStore(SnapshotStore):
    def load(self, key: CacheKey) -> None:
        del key


def _set_mtime(path: Path, moment: pendulum.DateTime) -> None:
    stamp = moment.timestamp()
    os.utime(path, (stamp, stamp))


@pytest.mark.asyncio
async def test_memory_entry_expires_after_ttl(tmp_path: Path) -> None:
    """Memory hits are served within the lifetime and recomputed after it."""
    clock = _Clock()
    compute = _Computer(clock)
    cache = ReportCache(compute, _MissingStore(tmp_path), memory_ttl=timedelta(minutes=5), clock=clock)

    first = await cache.get(KEY)
    clock.advance(minutes=4)
    assert await cache.get(KEY) is first
    clock.advance(minutes=2)
    await cache.get(KEY)

    assert len(compute.calls) == 2


@pytest.mark.asyncio
async def test_fresh_snapshot_is_served_and_stale_one_recomputed(tmp_path: Path) -> None:
    """Snapshots younger than the file lifetime avoid a recomputation."""
    clock = _Clock()
    store = SnapshotStore(tmp_path)
    path = store.save(KEY, build_report(generated_at=START))
    _set_mtime(path, START)
    compute = _Computer(clock)
    cache = ReportCache(compute, store, file_ttl=timedelta(hours=1), clock=clock)

    clock.advance(minutes=30)
    assert (await cache.get(KEY)).generated_at == START
    assert compute.calls == []

    cache.clear_memory()
    clock.advance(minutes=45)
    refreshed = await cache.get(KEY)

    assert len(compute.calls) == 1
    assert refreshed.generated_at == clock.now


@pytest.mark.asyncio
async def test_old_generation_time_makes_snapshot_stale(tmp_path: Path) -> None:
    """A recently touched file still expires when its report was generated long ago."""
    clock = _Clock()
    store = SnapshotStore(tmp_path)
    path = store.save(KEY, build_report(generated_at=START.subtract(hours=2)))
    _set_mtime(path, START)
    compute = _Computer(clock)
    cache = ReportCache(compute, store, clock=clock)

    await cache.get(KEY)

    assert len(compute.calls) == 1


@pytest.mark.asyncio
async def test_force_refresh_bypasses_both_tiers(tmp_path: Path) -> None:
    """Force refresh should recompute and rewrite the snapshot."""
    clock = _Clock()
    compute = _Computer(clock)
    store = SnapshotStore(tmp_path)
    cache = ReportCache(compute, store, clock=clock)

    await cache.get(KEY)
    await cache.get(KEY, force_refresh=True)

    assert len(compute.calls) == 2
    assert store.path_for(KEY).exists()


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_computation(tmp_path: Path) -> None:
    """Simultaneous misses for the same key should trigger a single computation."""
    clock = _Clock()
    compute = _Computer(clock, delay=0.05)
    cache = ReportCache(compute, SnapshotStore(tmp_path), clock=clock)

    results = await asyncio.gather(*(cache.get(KEY) for _ in range(5)))

    assert len(compute.calls) == 1
    assert all(result is results[0] for result in results)


@pytest.mark.asyncio
async def test_clear_all_reports_counts(tmp_path: Path) -> None:
    """Clearing should report memory entries removed and files deleted."""
    clock = _Clock()
    store = SnapshotStore(tmp_path)
    cache = ReportCache(_Computer(clock), store, clock=clock)
    for period in Period:
        await cache.get(KEY.model_copy(update={"period": period}))

    assert cache.clear_memory() == 3
    await cache.get(KEY)
    result = await cache.clear_all()

    assert (result.memory_entries_removed, result.files_deleted) == (1, 3)
    assert store.list_files() == []


@pytest.mark.asyncio
async def test_status_flags_stale_snapshots(tmp_path: Path) -> None:
    """Cache status should mark snapshots older than the file lifetime."""
    clock = _Clock()
    store = SnapshotStore(tmp_path)
    _set_mtime(store.save(KEY, build_report()), START.subtract(hours=2))
    weekly = KEY.model_copy(update={"period": Period.WEEKLY})
    _set_mtime(store.save(weekly, build_report(Period.WEEKLY)), START.subtract(minutes=10))
    cache = ReportCache(_Computer(clock), store, clock=clock)

    status = await cache.status()

    assert [(snapshot.period, snapshot.is_valid) for snapshot in status.snapshots] == [
        (Period.DAILY, False),
        (Period.WEEKLY, True),
    ]
    assert status.snapshots[1].age_minutes == 10
    assert status.memory_entries == 0


@pytest.mark.asyncio
async def test_reconcile_reports_each_period(tmp_path: Path) -> None:
    """Reconcile keeps fresh snapshots, regenerates the rest and isolates failures."""
    clock = _Clock()
    store = SnapshotStore(tmp_path)
    _set_mtime(store.save(KEY, build_report(generated_at=START)), START)
    compute = _Computer(clock, failing={Period.MONTHLY})
    cache = ReportCache(compute, store, clock=clock)

    outcomes = await cache.reconcile(ANCHOR)

    assert [(outcome.period, outcome.status) for outcome in outcomes] == [
        (Period.DAILY, "fresh"),
        (Period.WEEKLY, "regenerated"),
        (Period.MONTHLY, "failed"),
    ]
    assert "GitHub unavailable" in (outcomes[2].error or "")
    assert [key.period for key in compute.calls] == [Period.WEEKLY, Period.MONTHLY]
