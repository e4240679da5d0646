"""
Leaderboard Ranking Engine

This module aggregates many judges' scores into a ranked team leaderboard:
- Each judge score is totalled against the event's current rubric
- A submission's score is the mean of its eligible judge totals
- A team's score is the mean of its submissions' scores
- Teams are ordered by score with standard competition ranking ("1, 2, 2, 4")

The engine is a pure transform over its inputs: the caller supplies the
scores, the rubric and the submission -> team linkage, and persists the result.
The same pass can credit submissions to their submitters instead, giving an
individual member leaderboard.

Usage:
    from scoreboard.ranking.engine import compute_leaderboard
    result = compute_leaderboard(event_id, scores, rubric, {"sub-1": "team-a"})
    leaderboard = result.leaderboard
"""

import enum
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from scoreboard.config import SCORE_TOLERANCE
from scoreboard.models import (
    Leaderboard,
    LeaderboardEntry,
    MemberLeaderboard,
    MemberLeaderboardEntry,
    Score,
    ScoringRubric,
)
from scoreboard.scoring.aggregator import is_complete, is_eligible, weighted_total
from scoreboard.scoring.rubric import ensure_valid_rubric
from scoreboard.utils import ensure_utc, generate_id, setup_logging, utc_now

# --- Module Logger ---
logger = setup_logging(__name__)

OwnerLookup = Mapping[str, str] | Callable[[str], str | None]
TeamLookup = OwnerLookup


class RankingStatus(str, enum.Enum):
    completed = "completed"
    cancelled = "cancelled"


class Exclusion(BaseModel):
    item_id: str
    reason: str


class RankingResult(BaseModel):
    """A computed leaderboard plus what was left out of it."""

    leaderboard: Leaderboard
    status: RankingStatus = RankingStatus.completed
    excluded: list[Exclusion] = Field(default_factory=list)
    partial_submissions: list[str] = Field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.status is RankingStatus.cancelled


class MemberRankingResult(RankingResult):
    leaderboard: MemberLeaderboard


def assign_competition_ranks(values: Iterable[float], tolerance: float = SCORE_TOLERANCE) -> list[int]:
    """
    Standard competition ranking over values already sorted descending.

    Values within ``tolerance`` of the first value of a tie group share its
    position; the next distinct value takes its 1-based index, so ties
    consume rank slots.

    Examples:
        [90, 85, 85, 70] -> [1, 2, 2, 4]
    """
    positions = []
    anchor = None
    for index, value in enumerate(values, start=1):
        if anchor is not None and np.isclose(value, anchor, rtol=0.0, atol=tolerance):
            positions.append(positions[-1])
        else:
            positions.append(index)
            anchor = value
    return positions


def _resolver(lookup: OwnerLookup) -> Callable[[str], str | None]:
    if isinstance(lookup, Mapping):
        return lookup.get
    return lookup


def _resolve_owner(resolve, submission_id: str, owner: str) -> str | None:
    try:
        return resolve(submission_id)
    except LookupError as e:
        logger.warning(f"Could not resolve {owner} for submission {submission_id}: {e}")
        return None


def _rank_frame(df: pd.DataFrame, key: str, tolerance: float) -> pd.DataFrame:
    """Sort a per-group frame by score and attach competition positions."""
    ranked = df.sort_values(['average_score', key], ascending=[False, True])
    ranked = ranked.reset_index(drop=True)
    ranked['position'] = assign_competition_ranks(ranked['average_score'].tolist(), tolerance)
    # Presentation order inside a tie is by id
    return ranked.sort_values(['position', key], kind='stable').reset_index(drop=True)


class _Collected(BaseModel):
    """Per-score rows gathered for one ranking pass."""

    status: RankingStatus = RankingStatus.completed
    excluded: list[Exclusion] = Field(default_factory=list)
    partial: list[str] = Field(default_factory=list)
    total_rows: list[dict] = Field(default_factory=list)
    criteria_rows: list[dict] = Field(default_factory=list)
    total_submissions: int = 0
    total_scores: int = 0

    @property
    def ranked_submissions(self) -> int:
        return len({r['submission_id'] for r in self.total_rows})


def _collect(
    event_id: str,
    scores: Iterable[Score],
    rubric: ScoringRubric,
    resolve: Callable[[str], str | None],
    cancel_event: threading.Event | None,
    owner: str,
) -> _Collected:
    """
    Partition scores by submission and keep the eligible ones.

    ``owner`` names the group a submission counts towards ("team" or
    "member"); rows carry it in an ``owner_id`` column.
    """
    by_submission: dict[str, list[Score]] = defaultdict(list)
    for score in scores:
        by_submission[score.submission_id].append(score)

    collected = _Collected(
        total_submissions=len(by_submission),
        total_scores=sum(len(v) for v in by_submission.values()),
    )

    for submission_id in sorted(by_submission):
        if cancel_event is not None and cancel_event.is_set():
            collected.status = RankingStatus.cancelled
            logger.warning(
                f"Ranking for event {event_id} cancelled after "
                f"{collected.ranked_submissions} submissions"
            )
            break

        owner_id = _resolve_owner(resolve, submission_id, owner)
        if not owner_id:
            collected.excluded.append(Exclusion(item_id=submission_id, reason=f"{owner} not found"))
            continue

        eligible = []
        for score in by_submission[submission_id]:
            if score.event_id != event_id:
                reason = f"belongs to event {score.event_id}"
            elif not is_eligible(score, rubric):
                reason = "fails rubric validation"
            else:
                eligible.append(score)
                continue
            logger.warning(f"Excluding score {score.id} (submission {submission_id}): {reason}")
            collected.excluded.append(Exclusion(item_id=score.id, reason=reason))

        if not eligible:
            collected.excluded.append(Exclusion(item_id=submission_id, reason="no eligible scores"))
            continue

        if not all(is_complete(s, rubric) for s in eligible):
            collected.partial.append(submission_id)

        for score in eligible:
            collected.total_rows.append({
                'owner_id': owner_id,
                'submission_id': submission_id,
                'total': weighted_total(score, rubric),
            })
            for criterion in rubric.criteria:
                if criterion.key in score.scores:
                    collected.criteria_rows.append({
                        'owner_id': owner_id,
                        'submission_id': submission_id,
                        'criterion': criterion.key,
                        'value': float(score.scores[criterion.key]),
                    })

    return collected


def _aggregate(collected: _Collected, key: str, tolerance: float) -> tuple[pd.DataFrame, dict[str, dict[str, float]]]:
    """
    Mean of judge totals per submission, then mean of submissions per owner.

    Returns the ranked per-owner frame (column ``key``) and the per-owner
    criterion means.
    """
    df = pd.DataFrame(collected.total_rows)
    per_submission = df.groupby(['owner_id', 'submission_id'], as_index=False).agg(
        submission_mean=('total', 'mean'),
        judge_count=('total', 'size'),
    )
    per_owner = per_submission.groupby('owner_id', as_index=False).agg(
        average_score=('submission_mean', 'mean'),
        total_score=('submission_mean', 'sum'),
        score_count=('judge_count', 'sum'),
        submission_count=('submission_mean', 'size'),
    ).rename(columns={'owner_id': key})
    ranked = _rank_frame(per_owner, key, tolerance)

    criteria_by_owner: dict[str, dict[str, float]] = defaultdict(dict)
    if collected.criteria_rows:
        cdf = pd.DataFrame(collected.criteria_rows)
        sub_means = cdf.groupby(['owner_id', 'submission_id', 'criterion'], as_index=False)['value'].mean()
        owner_means = sub_means.groupby(['owner_id', 'criterion'])['value'].mean()
        for (owner_id, criterion), value in owner_means.items():
            criteria_by_owner[owner_id][criterion] = float(value)
    return ranked, criteria_by_owner


def _metadata(rubric: ScoringRubric, collected: _Collected) -> dict:
    return {
        'rubric_id': rubric.id,
        'status': collected.status.value,
        'total_submissions': collected.total_submissions,
        'ranked_submissions': collected.ranked_submissions,
        'total_scores': collected.total_scores,
        'eligible_scores': len(collected.total_rows),
        'excluded': len(collected.excluded),
        'partial_submissions': len(collected.partial),
    }


def compute_leaderboard(
    event_id: str,
    scores: Iterable[Score],
    rubric: ScoringRubric,
    team_lookup: OwnerLookup,
    *,
    now: datetime | None = None,
    cancel_event: threading.Event | None = None,
    leaderboard_id: str | None = None,
    tolerance: float = SCORE_TOLERANCE,
) -> RankingResult:
    """
    Rank the teams of one event.

    Args:
        event_id: Event being ranked; scores for other events are excluded
        scores: Point-in-time set of judge scores
        rubric: The event's current rubric
        team_lookup: Mapping or callable resolving submission_id -> team_id
        now: Timestamp for ``calculated_at`` (default: current UTC time)
        cancel_event: Checked between submissions; when set, ranking stops
            and the submissions processed so far are returned as ``cancelled``
        leaderboard_id: Explicit id for the new leaderboard
        tolerance: Averages within this distance share a position

    Returns:
        RankingResult with the new Leaderboard and the excluded items

    Raises:
        RubricValidationError: If the rubric itself is invalid
    """
    ensure_valid_rubric(rubric)
    calculated_at = ensure_utc(now or utc_now())
    collected = _collect(event_id, scores, rubric, _resolver(team_lookup), cancel_event, "team")

    entries = []
    if collected.total_rows:
        ranked, criteria_by_team = _aggregate(collected, 'team_id', tolerance)
        entries = [
            LeaderboardEntry(
                team_id=row.team_id,
                average_score=float(row.average_score),
                position=int(row.position),
                score_count=int(row.score_count),
                submission_count=int(row.submission_count),
                criteria_scores=criteria_by_team.get(row.team_id, {}),
            )
            for row in ranked.itertuples(index=False)
        ]

    leaderboard = Leaderboard(
        id=leaderboard_id or generate_id("leaderboard"),
        event_id=event_id,
        entries=tuple(entries),
        team_count=len(entries),
        calculated_at=calculated_at,
        metadata=_metadata(rubric, collected),
    )

    logger.info(
        f"Leaderboard for event {event_id}: {leaderboard.team_count} teams, "
        f"{collected.ranked_submissions} submissions, {len(collected.excluded)} exclusions "
        f"({collected.status.value})"
    )
    return RankingResult(
        leaderboard=leaderboard,
        status=collected.status,
        excluded=collected.excluded,
        partial_submissions=collected.partial,
    )


def compute_member_leaderboard(
    event_id: str,
    scores: Iterable[Score],
    rubric: ScoringRubric,
    member_lookup: OwnerLookup,
    *,
    now: datetime | None = None,
    cancel_event: threading.Event | None = None,
    leaderboard_id: str | None = None,
    tolerance: float = SCORE_TOLERANCE,
) -> MemberRankingResult:
    """
    Rank individual members by the submissions they made.

    Same eligibility rules and averaging as :func:`compute_leaderboard`, with
    each submission credited to its submitter instead of its team.

    Args:
        member_lookup: Mapping or callable resolving submission_id -> member_id
    """
    ensure_valid_rubric(rubric)
    calculated_at = ensure_utc(now or utc_now())
    collected = _collect(event_id, scores, rubric, _resolver(member_lookup), cancel_event, "member")

    entries = []
    if collected.total_rows:
        ranked, criteria_by_member = _aggregate(collected, 'member_id', tolerance)
        entries = [
            MemberLeaderboardEntry(
                member_id=row.member_id,
                average_score=float(row.average_score),
                total_score=float(row.total_score),
                position=int(row.position),
                score_count=int(row.score_count),
                submission_count=int(row.submission_count),
                criteria_scores=criteria_by_member.get(row.member_id, {}),
            )
            for row in ranked.itertuples(index=False)
        ]

    metadata = _metadata(rubric, collected)
    metadata['members_with_scores'] = len(entries)
    leaderboard = MemberLeaderboard(
        id=leaderboard_id or generate_id("member-leaderboard"),
        event_id=event_id,
        entries=tuple(entries),
        member_count=len(entries),
        calculated_at=calculated_at,
        metadata=metadata,
    )

    logger.info(
        f"Member leaderboard for event {event_id}: {leaderboard.member_count} members "
        f"({collected.status.value})"
    )
    return MemberRankingResult(
        leaderboard=leaderboard,
        status=collected.status,
        excluded=collected.excluded,
        partial_submissions=collected.partial,
    )


def filter_leaderboard(
    leaderboard: Leaderboard,
    *,
    min_score: float | None = None,
    max_score: float | None = None,
    min_submissions: int | None = None,
    team_ids: Iterable[str] | None = None,
    top_n: int | None = None,
    tolerance: float = SCORE_TOLERANCE,
) -> Leaderboard:
    """
    Build a filtered view of a leaderboard.

    Positions are recomputed over the remaining teams with the same
    competition ranking; the source leaderboard is left untouched.

    Returns:
        A new Leaderboard with the same event and ``calculated_at``
    """
    wanted = set(team_ids) if team_ids is not None else None
    kept = [
        e for e in leaderboard.entries
        if (min_score is None or e.average_score >= min_score)
        and (max_score is None or e.average_score <= max_score)
        and (min_submissions is None or e.submission_count >= min_submissions)
        and (wanted is None or e.team_id in wanted)
    ]

    positions = assign_competition_ranks([e.average_score for e in kept], tolerance)
    entries = [e.model_copy(update={'position': p}) for e, p in zip(kept, positions)]
    if top_n is not None:
        entries = entries[:top_n]

    return Leaderboard(
        id=generate_id("leaderboard"),
        event_id=leaderboard.event_id,
        entries=tuple(entries),
        team_count=len(entries),
        calculated_at=leaderboard.calculated_at,
        metadata={
            **leaderboard.metadata,
            'source_leaderboard_id': leaderboard.id,
            'total_entries': len(leaderboard.entries),
            'filtered_entries': len(entries),
        },
    )
