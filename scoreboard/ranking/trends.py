"""
Team score trends over stored leaderboard snapshots.

Direction is decided by counting upward against downward moves between
consecutive snapshots; the percentage compares the latest score with the
earliest one.
"""

import statistics

from scoreboard.config import TREND_STABLE_THRESHOLD
from scoreboard.models import PositionHistory, ScoreTrend, ScoreTrendPoint, TrendDirection
from scoreboard.utils import ensure_utc


def trend_direction(scores: list[float]) -> TrendDirection:
    """Majority direction of consecutive score changes (oldest first)."""
    if len(scores) < 2:
        return TrendDirection.stable

    upward = sum(1 for prev, cur in zip(scores, scores[1:]) if cur > prev)
    downward = sum(1 for prev, cur in zip(scores, scores[1:]) if cur < prev)

    if upward > downward:
        return TrendDirection.upward
    if downward > upward:
        return TrendDirection.downward
    return TrendDirection.stable


def trend_percentage(scores: list[float]) -> float:
    """Percent change from the first to the last score; 0 when the first is 0."""
    if len(scores) < 2 or scores[0] == 0:
        return 0.0
    return (scores[-1] - scores[0]) / scores[0] * 100


def score_trend(history: PositionHistory, limit: int | None = None) -> ScoreTrend:
    """
    Summarise a team's position history as a trend.

    Args:
        history: Position history (any order)
        limit: Only use the most recent ``limit`` snapshots

    Returns:
        ScoreTrend with points in chronological order
    """
    entries = sorted(history.entries, key=lambda e: ensure_utc(e.timestamp))
    if limit is not None:
        entries = entries[-limit:] if limit > 0 else []

    if not entries:
        return ScoreTrend(team_id=history.team_id)

    scores = [e.score for e in entries]
    percentage = trend_percentage(scores)
    direction = trend_direction(scores)
    if abs(percentage) < TREND_STABLE_THRESHOLD:
        direction = TrendDirection.stable

    return ScoreTrend(
        team_id=history.team_id,
        direction=direction,
        percentage=percentage,
        average_score=statistics.fmean(scores),
        points=[
            ScoreTrendPoint(
                timestamp=e.timestamp,
                score=e.score,
                position=e.position,
                event_id=e.event_id,
            )
            for e in entries
        ],
        metadata={
            'total_points': len(entries),
            'highest_score': max(scores),
            'lowest_score': min(scores),
            'best_position': min(e.position for e in entries),
        },
    )
