"""
Judge score storage.

Scores are owned per (submission_id, judge_id) pair. Writes from different
judges never conflict; a judge re-scoring the same submission wins by
``updated_at`` (last write wins).
"""

import threading

from scoreboard.config import STORE_TIMEOUT_SECONDS
from scoreboard.errors import NotFoundError, StorageError
from scoreboard.models import Score
from scoreboard.utils import ensure_utc, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


class InMemoryScoreStore:
    """Thread-safe score store keyed by (submission_id, judge_id)."""

    def __init__(self, timeout: float = STORE_TIMEOUT_SECONDS):
        self._timeout = timeout
        self._lock = threading.Lock()
        self._scores: dict[tuple[str, str], Score] = {}

    def _acquire(self, timeout: float | None):
        wait = self._timeout if timeout is None else timeout
        if not self._lock.acquire(timeout=wait):
            raise StorageError(f"Timed out after {wait}s waiting for the score store")

    def upsert(self, score: Score, timeout: float | None = None) -> Score:
        """
        Insert or replace the judge's score for a submission.

        An older write arriving late never overwrites a newer one.

        Returns:
            The score now stored for the pair
        """
        key = (score.submission_id, score.judge_id)
        self._acquire(timeout)
        try:
            current = self._scores.get(key)
            if current is not None and ensure_utc(current.updated_at) > ensure_utc(score.updated_at):
                logger.debug(f"Ignoring stale write for {key}: {score.updated_at} < {current.updated_at}")
                return current
            if current is not None:
                # Keep the pair's original identity across re-scoring
                score = score.updated(id=current.id, created_at=current.created_at)
            self._scores[key] = score
            return score
        finally:
            self._lock.release()

    def get(self, score_id: str) -> Score | None:
        with self._lock:
            return next((s for s in self._scores.values() if s.id == score_id), None)

    def get_by_submission_and_judge(self, submission_id: str, judge_id: str) -> Score | None:
        with self._lock:
            return self._scores.get((submission_id, judge_id))

    def get_by_submission(self, submission_id: str) -> list[Score]:
        with self._lock:
            return [s for (sub, _), s in self._scores.items() if sub == submission_id]

    def get_by_event(self, event_id: str, timeout: float | None = None) -> list[Score]:
        """Point-in-time copy of every score currently visible for the event."""
        self._acquire(timeout)
        try:
            return [s for s in self._scores.values() if s.event_id == event_id]
        finally:
            self._lock.release()

    def delete(self, score_id: str) -> Score:
        """Remove a score (moderation or privacy requests only)."""
        with self._lock:
            for key, score in self._scores.items():
                if score.id == score_id:
                    del self._scores[key]
                    logger.info(f"Deleted score {score_id}")
                    return score
        raise NotFoundError(f"Score not found: {score_id}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._scores)
