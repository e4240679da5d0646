"""
Shared fixtures for the scoreboard tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from scoreboard.models import (
    BooleanCriterion,
    Leaderboard,
    LeaderboardEntry,
    NumericCriterion,
    ScaleCriterion,
    Score,
    ScoringRubric,
)
from scoreboard.ranking.engine import assign_competition_ranks

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def hackathon_rubric():
    """creativity 0.3 / technical 0.4 / presentation 0.3, all out of 100."""
    return ScoringRubric(
        id="rubric-1",
        name="Hackathon Judging",
        event_id="event-1",
        criteria=[
            NumericCriterion(key="creativity", name="Creativity", max_score=100, weight=0.3),
            NumericCriterion(key="technical", name="Technical", max_score=100, weight=0.4),
            NumericCriterion(key="presentation", name="Presentation", max_score=100, weight=0.3),
        ],
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
    )


@pytest.fixture
def mixed_rubric():
    """One criterion of each type; the boolean one is optional."""
    return ScoringRubric(
        id="rubric-2",
        name="Mixed",
        criteria=[
            NumericCriterion(key="impact", name="Impact", max_score=10, weight=2),
            ScaleCriterion(key="polish", name="Polish", max_score=5, weight=1, options={"min": 1, "max": 5}),
            BooleanCriterion(key="demo", name="Live demo", max_score=1, weight=1, required=False),
        ],
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
    )


@pytest.fixture
def single_criterion_rubric():
    """A single 0-100 criterion, so a judge's total equals the raw value."""
    return ScoringRubric(
        id="rubric-3",
        name="Overall",
        criteria=[NumericCriterion(key="overall", name="Overall", max_score=100, weight=1)],
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
    )


@pytest.fixture
def make_score():
    def _make(submission_id="sub-1", judge_id="judge-1", scores=None, event_id="event-1", **fields):
        fields.setdefault("id", f"score-{submission_id}-{judge_id}")
        fields.setdefault("created_at", BASE_TIME)
        fields.setdefault("updated_at", BASE_TIME)
        return Score(
            submission_id=submission_id,
            judge_id=judge_id,
            event_id=event_id,
            scores=scores or {},
            **fields,
        )
    return _make


@pytest.fixture
def make_leaderboard():
    """Build a leaderboard from (team_id, average_score) pairs, best first."""
    def _make(standings, event_id="event-1", calculated_at=BASE_TIME, leaderboard_id=None, minutes=0):
        calculated_at = calculated_at + timedelta(minutes=minutes)
        standings = sorted(standings, key=lambda s: (-s[1], s[0]))
        positions = assign_competition_ranks([s[1] for s in standings])
        entries = tuple(
            LeaderboardEntry(team_id=team, average_score=score, position=pos, score_count=1, submission_count=1)
            for (team, score), pos in zip(standings, positions)
        )
        return Leaderboard(
            id=leaderboard_id or f"lb-{event_id}-{minutes}",
            event_id=event_id,
            entries=entries,
            team_count=len(entries),
            calculated_at=calculated_at,
        )
    return _make
