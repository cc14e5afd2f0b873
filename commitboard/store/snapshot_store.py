"""JSON snapshot files holding one aggregated report per period, scope and date."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import orjson
from pydantic import BaseModel, ValidationError

from commitboard.aggregate.models import AggregatedReport, Period

if TYPE_CHECKING:
    from commitboard.aggregate.models import CacheKey


LOGGER = logging.getLogger(__name__)


class StoredSnapshot(BaseModel):
    """A snapshot loaded from disk together with its file metadata."""

    path: Path
    report: AggregatedReport
    modified_at: datetime


class SnapshotFileInfo(BaseModel):
    """Metadata describing a snapshot file for cache introspection."""

    file: str
    period: Period
    modified_at: datetime
    size_bytes: int


class SnapshotStore:
    """Persist aggregated reports as JSON documents under ``<root>/<period>/``."""

    def __init__(self, root: Path) -> None:
        """Create a store rooted at the provided directory."""
        self._root = Path(root)

    @property
    def root(self) -> Path:
        """Return the directory holding the period subdirectories."""
        return self._root

    def path_for(self, key: CacheKey) -> Path:
        """Return the snapshot path for a cache key."""
        date_stamp = key.anchor_date.isoformat()
        if key.scope == "multi":
            filename = f"multi_repo_{key.period}_report_{date_stamp}.json"
        else:
            slug = key.repository.replace("/", "__")
            filename = f"repo_{slug}_{key.period}_report_{date_stamp}.json"
        return self._root / str(key.period) / filename

    def modified_at(self, key: CacheKey) -> datetime | None:
        """Return the modification time of the key's snapshot, or None when absent."""
        try:
            stat = self.path_for(key).stat()
        except FileNotFoundError:
            return None
        return datetime.fromtimestamp(stat.st_mtime, tz=UTC)

    def load(self, key: CacheKey) -> StoredSnapshot | None:
        """Read and validate the key's snapshot, returning None when missing or invalid."""
        path = self.path_for(key)
        try:
            raw = path.read_bytes()
            modified_at = datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
        except FileNotFoundError:
            return None
        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError as error:
            LOGGER.warning("Skipping invalid JSON snapshot %s: %s", path, error)
            return None
        try:
            report = AggregatedReport.model_validate(payload)
        except ValidationError as error:
            LOGGER.warning("Skipping invalid snapshot record %s: %s", path, error)
            return None
        if report.scope != key.scope or (key.scope == "single" and report.repository != key.repository):
            LOGGER.warning("Snapshot %s belongs to %s scope %s, ignoring", path, report.scope, report.repository)
            return None
        return StoredSnapshot(path=path, report=report, modified_at=modified_at)

    def save(self, key: CacheKey, report: AggregatedReport) -> Path:
        """Write the report to the key's snapshot path, replacing any previous file."""
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        staging = path.with_suffix(".json.tmp")
        staging.write_bytes(orjson.dumps(report.to_document(), option=orjson.OPT_INDENT_2))
        os.replace(staging, path)
        return path

    def list_files(self) -> list[SnapshotFileInfo]:
        """Return metadata for every snapshot file, grouped by period."""
        files: list[SnapshotFileInfo] = []
        for period in Period:
            directory = self._root / str(period)
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.json")):
                stat = path.stat()
                files.append(
                    SnapshotFileInfo(
                        file=path.name,
                        period=period,
                        modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                        size_bytes=stat.st_size,
                    ),
                )
        return files

    def delete_all(self) -> int:
        """Delete every snapshot file and return how many were removed."""
        deleted = 0
        for period in Period:
            directory = self._root / str(period)
            if not directory.is_dir():
                continue
            for path in directory.glob("*.json"):
                path.unlink(missing_ok=True)
                deleted += 1
                LOGGER.info("Deleted snapshot %s/%s", period, path.name)
        return deleted
