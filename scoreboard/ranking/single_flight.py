"""
Single-flight leaderboard recomputation.

Recomputation is never incremental: each trigger reads the currently visible
scores and produces a complete new Leaderboard. At most one computation runs
per event; concurrent callers either wait for its result or are told a
computation is already in progress.

Usage:
    guard = SingleFlight()
    result = refresh_leaderboard(
        event_id,
        score_store=scores,
        snapshot_store=snapshots,
        rubric_provider=rubrics.get,
        team_lookup=teams,
        guard=guard,
    )
"""

import threading
from collections.abc import Callable, Hashable
from concurrent import futures
from concurrent.futures import Future
from datetime import datetime
from typing import Any

from scoreboard.config import COMPUTATION_WAIT_SECONDS
from scoreboard.errors import ComputationInProgress, NotFoundError
from scoreboard.ranking.engine import RankingResult, TeamLookup, compute_leaderboard
from scoreboard.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


class SingleFlight:
    """Deduplicate concurrent calls that share a key."""

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: dict[Hashable, Future] = {}

    def in_progress(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight

    def run(
        self,
        key: Hashable,
        fn: Callable[[], Any],
        wait: bool = True,
        timeout: float | None = None,
    ) -> Any:
        """
        Run ``fn`` unless a call for ``key`` is already running.

        Args:
            key: Deduplication key (the event id for leaderboards)
            fn: Zero-argument callable to run
            wait: When a call is in flight, wait for its result (True) or
                raise ComputationInProgress (False)
            timeout: Maximum seconds to wait for an in-flight call
                (default: COMPUTATION_WAIT_SECONDS)

        Returns:
            The result of ``fn``, possibly computed by another caller

        Raises:
            ComputationInProgress: If a call is in flight and ``wait`` is False
            TimeoutError: If waiting for the in-flight call exceeds ``timeout``
        """
        with self._lock:
            future = self._in_flight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[key] = future

        if not leader:
            if not wait:
                logger.warning(f"Rejecting concurrent computation for {key!r}")
                raise ComputationInProgress(str(key))
            logger.info(f"Waiting for in-flight computation for {key!r}")
            wait_for = COMPUTATION_WAIT_SECONDS if timeout is None else timeout
            try:
                return future.result(timeout=wait_for)
            except futures.TimeoutError as e:
                logger.warning(f"Gave up waiting for computation for {key!r} after {wait_for}s")
                raise TimeoutError(f"Computation for {key!r} still running after {wait_for}s") from e

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                del self._in_flight[key]


def refresh_leaderboard(
    event_id: str,
    *,
    score_store,
    snapshot_store,
    rubric_provider: Callable[[str], Any],
    team_lookup: TeamLookup,
    guard: SingleFlight,
    wait: bool = True,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
    now: datetime | None = None,
) -> RankingResult:
    """
    Recompute and persist the leaderboard for an event.

    Args:
        event_id: Event to recompute
        score_store: Provides ``get_by_event(event_id, timeout)``
        snapshot_store: Provides ``save(leaderboard, timeout)``
        rubric_provider: Returns the active rubric for an event id (None if missing)
        team_lookup: Mapping or callable resolving submission_id -> team_id
        guard: Shared SingleFlight instance
        wait: Await an in-flight computation instead of raising ComputationInProgress
        cancel_event: Cancellation signal checked between submissions
        timeout: Store timeout in seconds
        now: Timestamp override for ``calculated_at``

    Returns:
        RankingResult; a cancelled result is returned but not saved

    Raises:
        NotFoundError: If the event has no rubric
        ComputationInProgress: If ``wait`` is False and a computation is running
        StorageError: If reading scores or saving the snapshot fails
    """
    def compute() -> RankingResult:
        rubric = rubric_provider(event_id)
        if rubric is None:
            raise NotFoundError(f"No active rubric for event {event_id}")

        scores = score_store.get_by_event(event_id, timeout=timeout)
        result = compute_leaderboard(
            event_id, scores, rubric, team_lookup, now=now, cancel_event=cancel_event
        )
        if result.cancelled:
            logger.warning(f"Not saving cancelled leaderboard for event {event_id}")
            return result

        snapshot_store.save(result.leaderboard, timeout=timeout)
        return result

    return guard.run(event_id, compute, wait=wait, timeout=timeout)
