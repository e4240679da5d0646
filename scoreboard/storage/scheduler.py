"""
Periodic snapshot retention.

Runs ``SnapshotStore.cleanup`` on a daemon thread every
CLEANUP_INTERVAL_SECONDS. Stopping the scheduler also cancels a cleanup that
is in progress between batches.

Usage:
    scheduler = CleanupScheduler(store)
    scheduler.start()
    ...
    scheduler.stop()
"""

import threading
from datetime import timedelta

from scoreboard.config import CLEANUP_INTERVAL_SECONDS, DEFAULT_CLEANUP_BATCH_SIZE, SNAPSHOT_RETENTION_DAYS
from scoreboard.errors import StorageError
from scoreboard.storage.snapshots import CleanupResult, SnapshotStore
from scoreboard.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


class CleanupScheduler:
    """Background thread that applies the snapshot retention policy."""

    def __init__(
        self,
        store: SnapshotStore,
        retention: timedelta = timedelta(days=SNAPSHOT_RETENTION_DAYS),
        interval: float = CLEANUP_INTERVAL_SECONDS,
        batch_size: int = DEFAULT_CLEANUP_BATCH_SIZE,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.store = store
        self.retention = retention
        self.interval = interval
        self.batch_size = batch_size
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> CleanupResult:
        return self.store.cleanup(self.retention, self.batch_size, cancel_event=self._stop)

    def _loop(self) -> None:
        logger.info(f"Cleanup scheduler started (every {self.interval}s, retention {self.retention})")
        while not self._stop.wait(self.interval):
            try:
                result = self.run_once()
            except StorageError as e:
                # Retried on the next tick
                logger.error(f"Scheduled cleanup failed: {e}")
                continue
            if result.deleted:
                logger.info(f"Scheduled cleanup removed {result.deleted} snapshots")
        logger.info("Cleanup scheduler stopped")

    def start(self) -> None:
        if self.running:
            raise RuntimeError("Cleanup scheduler is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="snapshot-cleanup", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
