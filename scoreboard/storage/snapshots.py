"""
Leaderboard Snapshot Store

Append-only storage of point-in-time leaderboards with the history queries
built on top of them:
- latest leaderboard for an event
- leaderboards within a time range
- a team's position history across snapshots
- per-event snapshot statistics
- retention cleanup in bounded batches

Two backends share the query logic: an in-memory store and a JSON store that
writes one document per snapshot atomically.

Usage:
    store = JsonSnapshotStore(SNAPSHOT_FOLDER)
    store.save(leaderboard)
    latest = store.latest(event_id)
"""

import abc
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from urllib.parse import quote

import pandas as pd
from pydantic import BaseModel, ValidationError as PydanticValidationError

from scoreboard.config import DEFAULT_CLEANUP_BATCH_SIZE, STORE_TIMEOUT_SECONDS
from scoreboard.errors import NotFoundError, StorageError
from scoreboard.models import Leaderboard, LeaderboardStatistics, PositionHistory, PositionHistoryEntry
from scoreboard.utils import atomic_write_text, ensure_utc, setup_logging, timestamp_ms, utc_now

# --- Module Logger ---
logger = setup_logging(__name__)


class CleanupResult(BaseModel):
    deleted: int = 0
    batches: int = 0
    cancelled: bool = False


def _newest_first(leaderboards: list[Leaderboard]) -> list[Leaderboard]:
    # Input is in insertion order; among equal timestamps the later save wins
    return sorted(reversed(leaderboards), key=lambda lb: ensure_utc(lb.calculated_at), reverse=True)


def _in_range(value: datetime, start: datetime | None, end: datetime | None) -> bool:
    value = ensure_utc(value)
    if start is not None and value < ensure_utc(start):
        return False
    if end is not None and value > ensure_utc(end):
        return False
    return True


class SnapshotStore(abc.ABC):
    """Query and retention logic shared by every snapshot backend."""

    def __init__(self, timeout: float = STORE_TIMEOUT_SECONDS):
        self._timeout = timeout
        self._lock = threading.Lock()

    # --- Backend hooks ---
    @abc.abstractmethod
    def _load_all(self) -> list[Leaderboard]:
        """Every stored snapshot, in insertion order."""

    @abc.abstractmethod
    def _insert(self, leaderboard: Leaderboard) -> None:
        """Persist one snapshot in a single all-or-nothing write."""

    @abc.abstractmethod
    def _remove(self, leaderboards: list[Leaderboard]) -> None:
        """Delete the given snapshots as one batch."""

    @contextmanager
    def _locked(self, timeout: float | None = None):
        wait = self._timeout if timeout is None else timeout
        if not self._lock.acquire(timeout=wait):
            raise StorageError(f"Timed out after {wait}s waiting for the snapshot store")
        try:
            yield
        finally:
            self._lock.release()

    # --- Writes ---
    def save(self, leaderboard: Leaderboard, timeout: float | None = None) -> Leaderboard:
        """
        Append a leaderboard snapshot.

        Saving the same leaderboard again is a no-op, so a timed-out save can
        be retried safely.

        Raises:
            StorageError: On timeout, or if a different snapshot already uses the id
        """
        with self._locked(timeout):
            existing = next((lb for lb in self._load_all() if lb.id == leaderboard.id), None)
            if existing is not None:
                if existing == leaderboard:
                    logger.debug(f"Snapshot {leaderboard.id} already stored")
                    return existing
                raise StorageError(f"Snapshot {leaderboard.id} already exists; snapshots are never overwritten")
            self._insert(leaderboard)

        logger.info(
            f"Saved snapshot {leaderboard.id} for event {leaderboard.event_id} "
            f"({leaderboard.team_count} teams)"
        )
        return leaderboard

    # --- Reads ---
    def _snapshots(self, timeout: float | None = None) -> list[Leaderboard]:
        with self._locked(timeout):
            return list(self._load_all())

    def get(self, leaderboard_id: str, timeout: float | None = None) -> Leaderboard:
        for leaderboard in self._snapshots(timeout):
            if leaderboard.id == leaderboard_id:
                return leaderboard
        raise NotFoundError(f"Snapshot not found: {leaderboard_id}")

    def count(self, event_id: str | None = None, timeout: float | None = None) -> int:
        return sum(1 for lb in self._snapshots(timeout) if event_id is None or lb.event_id == event_id)

    def latest(self, event_id: str, timeout: float | None = None) -> Leaderboard | None:
        """Most recently calculated snapshot for the event, or None."""
        snapshots = self.range(event_id, timeout=timeout)
        return snapshots[0] if snapshots else None

    def range(
        self,
        event_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> list[Leaderboard]:
        """
        Snapshots for an event with ``start <= calculated_at <= end``.

        Returns:
            Snapshots ordered by calculated_at, newest first
        """
        matching = [
            lb for lb in self._snapshots(timeout)
            if lb.event_id == event_id and _in_range(lb.calculated_at, start, end)
        ]
        ordered = _newest_first(matching)
        return ordered[:limit] if limit is not None else ordered

    def position_history(
        self,
        team_id: str,
        event_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        timeout: float | None = None,
    ) -> PositionHistory:
        """
        A team's position in every stored snapshot it appears in.

        Args:
            team_id: Team to trace
            event_id: Restrict to one event (default: all events)
            start: Earliest calculated_at to include
            end: Latest calculated_at to include

        Returns:
            PositionHistory with entries newest first
        """
        scanned = [
            lb for lb in self._snapshots(timeout)
            if (event_id is None or lb.event_id == event_id)
            and _in_range(lb.calculated_at, start, end)
        ]

        entries = []
        for snapshot in _newest_first(scanned):
            entry = snapshot.get_entry_by_team(team_id)
            if entry is None:
                continue
            entries.append(PositionHistoryEntry(
                event_id=snapshot.event_id,
                position=entry.position,
                score=entry.average_score,
                total_teams=snapshot.team_count,
                timestamp=snapshot.calculated_at,
            ))

        return PositionHistory(
            team_id=team_id,
            entries=entries,
            metadata={
                'total_snapshots': len(scanned),
                'entries_with_team': len(entries),
                'event_id': event_id,
            },
        )

    def statistics(self, event_id: str, timeout: float | None = None) -> LeaderboardStatistics:
        """
        Aggregate figures over every stored snapshot for an event.

        Returns:
            LeaderboardStatistics; all zeros when the event has no snapshots
        """
        snapshots = self.range(event_id, timeout=timeout)
        if not snapshots:
            return LeaderboardStatistics(event_id=event_id)

        team_counts = pd.Series([lb.team_count for lb in snapshots], dtype=float)
        scores = pd.Series(
            [e.average_score for lb in snapshots for e in lb.entries],
            dtype=float,
        )
        has_scores = not scores.empty

        return LeaderboardStatistics(
            event_id=event_id,
            total_snapshots=len(snapshots),
            average_team_count=float(team_counts.mean()),
            average_score=float(scores.mean()) if has_scores else 0.0,
            highest_score=float(scores.max()) if has_scores else 0.0,
            lowest_score=float(scores.min()) if has_scores else 0.0,
            metadata={
                'first_snapshot': snapshots[-1].calculated_at.isoformat(),
                'last_snapshot': snapshots[0].calculated_at.isoformat(),
                'total_scores': int(scores.size),
            },
        )

    # --- Retention ---
    def cleanup(
        self,
        retention: timedelta,
        batch_size: int = DEFAULT_CLEANUP_BATCH_SIZE,
        *,
        now: datetime | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> CleanupResult:
        """
        Delete snapshots calculated at or before ``now - retention``.

        Each batch is committed on its own, so an interrupted cleanup leaves
        a valid store and can simply be run again.

        Args:
            retention: How long snapshots are kept
            batch_size: Maximum snapshots deleted per batch
            now: Reference time (default: current UTC time)
            cancel_event: Checked between batches
            timeout: Lock timeout per batch

        Returns:
            CleanupResult with the number deleted and whether it was cancelled
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        cutoff = ensure_utc(now or utc_now()) - retention
        result = CleanupResult()

        while True:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.warning(f"Cleanup cancelled after {result.batches} batches ({result.deleted} deleted)")
                break

            with self._locked(timeout):
                expired = [lb for lb in self._load_all() if ensure_utc(lb.calculated_at) <= cutoff]
                batch = expired[:batch_size]
                if not batch:
                    break
                self._remove(batch)

            result.deleted += len(batch)
            result.batches += 1
            logger.info(f"Cleanup batch {result.batches}: deleted {len(batch)} snapshots older than {cutoff}")

        return result


class InMemorySnapshotStore(SnapshotStore):
    """Process-local store; the reference backend for tests and single workers."""

    def __init__(self, timeout: float = STORE_TIMEOUT_SECONDS):
        super().__init__(timeout)
        self._items: list[Leaderboard] = []

    def _load_all(self) -> list[Leaderboard]:
        return self._items

    def _insert(self, leaderboard: Leaderboard) -> None:
        self._items.append(leaderboard)

    def _remove(self, leaderboards: list[Leaderboard]) -> None:
        doomed = {lb.id for lb in leaderboards}
        self._items = [lb for lb in self._items if lb.id not in doomed]


# <event>_<calculated_at ms>_<id>.json; temp files from atomic writes end in .tmp
SNAPSHOT_PATTERN = "*_*_*.json"


def _file_token(value: str) -> str:
    """Percent-encode a value for use in a file name; distinct values stay distinct."""
    return quote(value, safe="").replace("_", "%5F")


class JsonSnapshotStore(SnapshotStore):
    """One JSON document per snapshot, written with an atomic rename."""

    def __init__(self, folder: Path, timeout: float = STORE_TIMEOUT_SECONDS):
        super().__init__(timeout)
        self.folder = Path(folder)

    def _path_for(self, leaderboard: Leaderboard) -> Path:
        millis = timestamp_ms(leaderboard.calculated_at)
        name = f"{_file_token(leaderboard.event_id)}_{millis:013d}_{_file_token(leaderboard.id)}.json"
        return self.folder / name

    def _load_all(self) -> list[Leaderboard]:
        if not self.folder.exists():
            return []

        snapshots = []
        for path in sorted(self.folder.glob(SNAPSHOT_PATTERN)):
            try:
                snapshots.append(Leaderboard.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, PydanticValidationError) as e:
                raise StorageError(f"Could not read snapshot {path.name}: {e}") from e
        return snapshots

    def _insert(self, leaderboard: Leaderboard) -> None:
        path = self._path_for(leaderboard)
        if path.exists():
            raise StorageError(f"Refusing to overwrite snapshot file {path.name}")
        try:
            atomic_write_text(leaderboard.model_dump_json(indent=2), path, suffix='.tmp')
        except OSError as e:
            raise StorageError(f"Could not write snapshot {leaderboard.id}: {e}") from e

    def _remove(self, leaderboards: list[Leaderboard]) -> None:
        for leaderboard in leaderboards:
            try:
                self._path_for(leaderboard).unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Could not delete snapshot {leaderboard.id}: {e}") from e
