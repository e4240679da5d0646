"""
Score Aggregation

Turns one judge's raw per-criterion inputs into a weighted 0-100 total and a
completion percentage, and summarises many judges' scores for a submission.

The total renormalizes over the criteria actually scored:

    total = sum(value_i / max_i * weight_i) / sum(weight_i) * 100

so a judge who scored only part of the rubric is compared on that subset.
Keys no longer present in the rubric are ignored.

Usage:
    from scoreboard.scoring.aggregator import compute_total, completion
    score = compute_total(score, rubric)
    print(score.total_score, completion(score, rubric))
"""

import math
import statistics
from collections import Counter, defaultdict
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from scoreboard.config import MAX_COMMENTS_LENGTH, TOTAL_SCORE_MAX, TOTAL_SCORE_MIN
from scoreboard.errors import InvalidScoreValue, RubricValidationError, ScoreValidationError
from scoreboard.models import Score, ScoringRubric
from scoreboard.scoring.rubric import ensure_valid_rubric
from scoreboard.utils import ensure_utc, generate_id, setup_logging, utc_now

# --- Module Logger ---
logger = setup_logging(__name__)


class AggregatedScore(BaseModel):
    """All judges' scores for one submission, summarised."""

    submission_id: str
    judge_count: int = 0
    total_score: float = 0.0  # Sum of judge totals
    average_score: float = 0.0  # Mean of judge totals
    criteria_averages: dict[str, float] = Field(default_factory=dict)
    score_range: tuple[float, float] = (0.0, 0.0)
    is_partial: bool = False


def scored_criteria(score: Score, rubric: ScoringRubric) -> list:
    """Rubric criteria (in rubric order) that the score provides a value for."""
    return [c for c in rubric.criteria if c.key in score.scores]


def weighted_total(score: Score, rubric: ScoringRubric) -> float:
    """
    Compute the renormalized weighted total for a score.

    Args:
        score: Judge score with sparse per-criterion values
        rubric: Current rubric; its criteria define what counts

    Returns:
        Total in [0, 100]; 0.0 when no current criterion was scored

    Raises:
        RubricValidationError: If the scored criteria carry no positive weight
    """
    scored = scored_criteria(score, rubric)
    if not scored:
        return 0.0

    numerator = math.fsum(c.normalized(score.scores[c.key]) * c.weight for c in scored)
    denominator = math.fsum(c.weight for c in scored)
    if denominator <= 0:
        raise RubricValidationError([f"Criterion weights sum to {denominator:g}; they must be positive"])
    total = numerator / denominator * 100
    # Rounding noise must not push a perfect score past the bound
    return min(max(total, TOTAL_SCORE_MIN), TOTAL_SCORE_MAX)


def compute_total(score: Score, rubric: ScoringRubric, now: datetime | None = None) -> Score:
    """Return a copy of ``score`` with ``total_score`` computed and ``updated_at`` refreshed."""
    ensure_valid_rubric(rubric)
    updated_at = max(ensure_utc(now or utc_now()), ensure_utc(score.created_at))
    return score.updated(total_score=weighted_total(score, rubric), updated_at=updated_at)


def completion(score: Score, rubric: ScoringRubric) -> float:
    """
    Percentage of required criteria present in the score.

    A rubric with no required criteria is vacuously 100% complete.
    """
    required = [c for c in rubric.criteria if c.required]
    if not required:
        return 100.0
    present = sum(1 for c in required if c.key in score.scores)
    return present / len(required) * 100


def is_complete(score: Score, rubric: ScoringRubric) -> bool:
    return completion(score, rubric) == 100.0


def validate_score_value(criterion, value) -> None:
    """
    Check one value against its criterion.

    Raises:
        InvalidScoreValue: Naming the offending criterion
    """
    reason = criterion.check_value(value)
    if reason is not None:
        raise InvalidScoreValue(criterion.key, reason)


def validate_score(score: Score, rubric: ScoringRubric) -> None:
    """
    Validate a score before it is written or ranked.

    Only keys that exist in the rubric's current criteria are checked; stale
    keys from removed criteria are left alone.

    Raises:
        InvalidScoreValue: If a criterion value is out of range or of the wrong kind
        ScoreValidationError: If the total, comments or timestamps are invalid
    """
    for criterion in scored_criteria(score, rubric):
        validate_score_value(criterion, score.scores[criterion.key])

    if score.total_score is not None and not (TOTAL_SCORE_MIN <= score.total_score <= TOTAL_SCORE_MAX):
        raise ScoreValidationError(
            f"Total score must be between {TOTAL_SCORE_MIN:g} and {TOTAL_SCORE_MAX:g}"
        )
    if score.comments is not None and len(score.comments) > MAX_COMMENTS_LENGTH:
        raise ScoreValidationError(f"Comments must not exceed {MAX_COMMENTS_LENGTH} characters")
    if ensure_utc(score.updated_at) < ensure_utc(score.created_at):
        raise ScoreValidationError("Updated timestamp must be after or equal to creation timestamp")


def is_eligible(score: Score, rubric: ScoringRubric) -> bool:
    """True when the score passes validation against the rubric."""
    try:
        validate_score(score, rubric)
    except (InvalidScoreValue, ScoreValidationError) as e:
        logger.debug(f"Score {score.id} not eligible: {e}")
        return False
    return True


def score_submission(
    score_store,
    *,
    submission_id: str,
    judge_id: str,
    event_id: str,
    scores: dict,
    rubric: ScoringRubric,
    comments: str | None = None,
    now: datetime | None = None,
) -> Score:
    """
    Create or update a judge's score for a submission.

    A judge owns one score per submission; re-scoring replaces the values and
    refreshes ``updated_at``.

    Args:
        score_store: Score persistence provider (see scoreboard.storage.scores)
        submission_id: Submission being judged
        judge_id: Judge member ID
        event_id: Event the submission belongs to
        scores: Sparse mapping of criterion key -> value
        rubric: Active rubric for the event
        comments: Optional judge comments
        now: Timestamp override (default: current UTC time)

    Returns:
        The stored score with its computed total

    Raises:
        InvalidScoreValue / ScoreValidationError: If the input is invalid (nothing is stored)
    """
    ensure_valid_rubric(rubric)
    now = ensure_utc(now or utc_now())
    existing = score_store.get_by_submission_and_judge(submission_id, judge_id)

    try:
        if existing is not None:
            draft = existing.updated(
                scores=dict(scores),
                comments=comments if comments is not None else existing.comments,
                updated_at=max(now, ensure_utc(existing.created_at)),
            )
        else:
            draft = Score(
                id=generate_id("score"),
                submission_id=submission_id,
                judge_id=judge_id,
                event_id=event_id,
                scores=dict(scores),
                comments=comments,
                created_at=now,
                updated_at=now,
            )
    except ValueError as e:
        raise ScoreValidationError(str(e)) from e

    validate_score(draft, rubric)
    final = compute_total(draft, rubric, now=now)
    score_store.upsert(final)

    action = "Updated" if existing is not None else "Recorded"
    logger.info(
        f"{action} score {final.id} for submission {submission_id} by judge {judge_id}: "
        f"{final.total_score:.2f} ({completion(final, rubric):.0f}% complete)"
    )
    return final


def aggregate_submission(
    submission_id: str,
    scores: Iterable[Score],
    rubric: ScoringRubric | None = None,
) -> AggregatedScore:
    """
    Summarise all judges' scores for one submission.

    Args:
        submission_id: Submission to summarise
        scores: Its judge scores (scores for other submissions are ignored)
        rubric: When given, totals are recomputed against it and
            incomplete scores mark the aggregate as partial

    Returns:
        AggregatedScore; all zeros when there are no scores with a total
    """
    own = [s for s in scores if s.submission_id == submission_id]
    if rubric is not None:
        own = [s.updated(total_score=weighted_total(s, rubric)) for s in own]

    totals = [s.total_score for s in own if s.total_score is not None]
    if not totals:
        return AggregatedScore(submission_id=submission_id, judge_count=len(own))

    per_criterion = defaultdict(list)
    for score in own:
        for key, value in score.scores.items():
            if rubric is not None and rubric.get_criterion(key) is None:
                continue
            if isinstance(value, bool):
                value = float(value)
            per_criterion[key].append(float(value))

    return AggregatedScore(
        submission_id=submission_id,
        judge_count=len(own),
        total_score=math.fsum(totals),
        average_score=statistics.fmean(totals),
        criteria_averages={k: statistics.fmean(v) for k, v in per_criterion.items()},
        score_range=(min(totals), max(totals)),
        is_partial=rubric is not None and not all(is_complete(s, rubric) for s in own),
    )


def event_scoring_stats(scores: Iterable[Score]) -> dict:
    """
    Judging progress for an event.

    Returns:
        Dictionary with total_scores, average_score, completed_submissions
        and judge_participation (judge_id -> number of scores)
    """
    scores = list(scores)
    if not scores:
        return {
            'total_scores': 0,
            'average_score': 0.0,
            'completed_submissions': 0,
            'judge_participation': {},
        }

    return {
        'total_scores': len(scores),
        'average_score': statistics.fmean(s.total_score or 0.0 for s in scores),
        'completed_submissions': len({s.submission_id for s in scores}),
        'judge_participation': dict(Counter(s.judge_id for s in scores)),
    }
