"""
Data model for rubrics, judge scores and leaderboards.

Criteria are a tagged union on ``type``: each variant owns the check for the
values it accepts and the way a value maps onto the 0-1 range used by the
weighted total. Leaderboards are immutable once built; a new computation
produces a new Leaderboard.
"""

import enum
import math
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StringConstraints,
    model_validator,
)

from scoreboard.config import (
    DEFAULT_MAX_SCORE,
    DEFAULT_WEIGHT,
    MAX_COMMENTS_LENGTH,
    TOTAL_SCORE_MAX,
    TOTAL_SCORE_MIN,
    WINNING_POSITIONS,
)
from scoreboard.utils import ensure_utc, utc_now


class ScoringType(str, enum.Enum):
    numeric = "numeric"
    scale = "scale"
    boolean = "boolean"


class TrendDirection(str, enum.Enum):
    upward = "upward"
    downward = "downward"
    stable = "stable"


ScoreValue = Union[StrictBool, StrictInt, StrictFloat]


def _is_number(value: Any) -> bool:
    # bool is an int subclass; a checkbox is never a numeric score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large to represent as a float
        return False


# --- Criteria ---

class CriterionBase(BaseModel):
    """Fields shared by every criterion variant."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    description: str = ""
    max_score: float = DEFAULT_MAX_SCORE
    weight: float = DEFAULT_WEIGHT
    required: bool = True

    def check_value(self, value: Any) -> str | None:
        """Return why ``value`` is not acceptable, or None when it is."""
        raise NotImplementedError

    def is_valid_value(self, value: Any) -> bool:
        return self.check_value(value) is None

    def normalized(self, value: Any) -> float:
        """Map an accepted value onto [0, 1] relative to ``max_score``."""
        return float(value) / self.max_score


class NumericCriterion(CriterionBase):
    type: Literal["numeric"] = "numeric"
    options: dict[str, Any] | None = None

    def check_value(self, value: Any) -> str | None:
        if not _is_number(value):
            return f"expected a number, got {value!r}"
        if value < 0 or value > self.max_score:
            return f"{value} is outside [0, {self.max_score:g}]"
        return None


class ScaleCriterion(CriterionBase):
    """A bounded scale, e.g. 1-5 stars; bounds default to ``[0, max_score]``."""

    type: Literal["scale"] = "scale"
    options: dict[str, float] = Field(default_factory=dict)

    @property
    def scale_min(self) -> float:
        return float(self.options.get("min", 0))

    @property
    def scale_max(self) -> float:
        return float(self.options.get("max", self.max_score))

    def check_value(self, value: Any) -> str | None:
        if not _is_number(value):
            return f"expected a number, got {value!r}"
        if value < 0 or value > self.max_score:
            return f"{value} is outside [0, {self.max_score:g}]"
        if value < self.scale_min or value > self.scale_max:
            return f"{value} is outside the scale [{self.scale_min:g}, {self.scale_max:g}]"
        return None


class BooleanCriterion(CriterionBase):
    type: Literal["boolean"] = "boolean"
    options: dict[str, Any] | None = None

    def check_value(self, value: Any) -> str | None:
        if not isinstance(value, bool):
            return f"expected true or false, got {value!r}"
        return None

    def normalized(self, value: Any) -> float:
        # A met criterion is worth its full max_score
        return 1.0 if value else 0.0


ScoringCriterion = Annotated[
    Union[NumericCriterion, ScaleCriterion, BooleanCriterion],
    Field(discriminator="type"),
]


# --- Rubric ---

class ScoringRubric(BaseModel):
    """An ordered, named set of weighted criteria, optionally a reusable template."""

    id: str
    name: str
    description: str = ""
    criteria: list[ScoringCriterion] = Field(default_factory=list)
    event_id: str | None = None
    group_id: str | None = None
    is_template: bool = False
    created_by: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def criterion_keys(self) -> list[str]:
        return [c.key for c in self.criteria]

    @property
    def has_criteria(self) -> bool:
        return bool(self.criteria)

    @property
    def max_possible_score(self) -> float:
        return math.fsum(c.max_score for c in self.criteria)

    @property
    def weighted_max_score(self) -> float:
        return math.fsum(c.max_score * c.weight for c in self.criteria)

    def get_criterion(self, key: str):
        for criterion in self.criteria:
            if criterion.key == key:
                return criterion
        return None


# --- Scores ---

TotalScore = Annotated[float, Field(ge=TOTAL_SCORE_MIN, le=TOTAL_SCORE_MAX)]
Comments = Annotated[str, StringConstraints(max_length=MAX_COMMENTS_LENGTH)]


class Score(BaseModel):
    """One judge's (possibly partial) assessment of one submission."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    submission_id: str
    judge_id: str
    event_id: str
    scores: dict[str, ScoreValue] = Field(default_factory=dict)
    total_score: TotalScore | None = None
    comments: Comments | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_timestamps(self) -> "Score":
        if ensure_utc(self.updated_at) < ensure_utc(self.created_at):
            raise ValueError("updated_at must be after or equal to created_at")
        return self

    def updated(self, **changes: Any) -> "Score":
        """Return a re-validated copy with ``changes`` applied."""
        return Score.model_validate({**self.model_dump(), **changes})

    def get_numeric_score(self, criterion_key: str) -> float | None:
        value = self.scores.get(criterion_key)
        return float(value) if _is_number(value) else None


# --- Leaderboards ---

class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    team_id: str
    average_score: float
    position: int
    score_count: int
    submission_count: int = 0
    criteria_scores: dict[str, float] = Field(default_factory=dict)

    @property
    def is_winning_position(self) -> bool:
        return self.position <= WINNING_POSITIONS

    @property
    def is_first_place(self) -> bool:
        return self.position == 1


class Leaderboard(BaseModel):
    """A ranked, immutable standing of teams for one event at one instant."""

    model_config = ConfigDict(frozen=True)

    id: str
    event_id: str
    entries: tuple[LeaderboardEntry, ...] = ()
    team_count: int = 0
    calculated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_entries(self) -> "Leaderboard":
        team_ids = [e.team_id for e in self.entries]
        if len(team_ids) != len(set(team_ids)):
            raise ValueError("Team IDs must be unique in leaderboard")
        if self.team_count != len(self.entries):
            raise ValueError(f"team_count {self.team_count} does not match {len(self.entries)} entries")
        positions = [e.position for e in self.entries]
        if positions != sorted(positions):
            raise ValueError("Entries must be sorted by position")
        return self

    @property
    def has_entries(self) -> bool:
        return bool(self.entries)

    @property
    def winners(self) -> list[LeaderboardEntry]:
        return [e for e in self.entries if e.is_winning_position]

    def get_entry_by_team(self, team_id: str) -> LeaderboardEntry | None:
        return next((e for e in self.entries if e.team_id == team_id), None)

    def get_entry_by_position(self, position: int) -> LeaderboardEntry | None:
        return next((e for e in self.entries if e.position == position), None)

    def top_entries(self, count: int) -> list[LeaderboardEntry]:
        return list(self.entries[:count])


class MemberLeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_id: str
    average_score: float
    # Sum of the member's submission scores
    total_score: float
    position: int
    score_count: int
    submission_count: int
    criteria_scores: dict[str, float] = Field(default_factory=dict)

    @property
    def is_winning_position(self) -> bool:
        return self.position <= WINNING_POSITIONS


class MemberLeaderboard(BaseModel):
    """Individual standing of the members who submitted work to one event."""

    model_config = ConfigDict(frozen=True)

    id: str
    event_id: str
    entries: tuple[MemberLeaderboardEntry, ...] = ()
    member_count: int = 0
    calculated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_entries(self) -> "MemberLeaderboard":
        member_ids = [e.member_id for e in self.entries]
        if len(member_ids) != len(set(member_ids)):
            raise ValueError("Member IDs must be unique in leaderboard")
        if self.member_count != len(self.entries):
            raise ValueError(f"member_count {self.member_count} does not match {len(self.entries)} entries")
        positions = [e.position for e in self.entries]
        if positions != sorted(positions):
            raise ValueError("Entries must be sorted by position")
        return self

    def get_entry_by_member(self, member_id: str) -> MemberLeaderboardEntry | None:
        return next((e for e in self.entries if e.member_id == member_id), None)


class PositionHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    position: int
    score: float
    total_teams: int
    timestamp: datetime


class PositionHistory(BaseModel):
    """A team's positions across stored snapshots, newest first."""

    team_id: str
    entries: list[PositionHistoryEntry] = Field(default_factory=list)
    calculated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def _newest_first(self) -> list[PositionHistoryEntry]:
        return sorted(self.entries, key=lambda e: ensure_utc(e.timestamp), reverse=True)

    @property
    def current_position(self) -> int | None:
        entries = self._newest_first()
        return entries[0].position if entries else None

    @property
    def best_position(self) -> int | None:
        return min((e.position for e in self.entries), default=None)

    @property
    def position_change(self) -> int | None:
        """Places gained since the previous snapshot (negative when dropping)."""
        entries = self._newest_first()
        if len(entries) < 2:
            return None
        return entries[1].position - entries[0].position


class LeaderboardStatistics(BaseModel):
    event_id: str
    total_snapshots: int = 0
    average_team_count: float = 0.0
    average_score: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    calculated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def score_range(self) -> float:
        return self.highest_score - self.lowest_score

    @property
    def has_multiple_snapshots(self) -> bool:
        return self.total_snapshots > 1


class ValidationResult(BaseModel):
    ok: bool
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def valid(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def invalid(cls, errors: list[str]) -> "ValidationResult":
        return cls(ok=False, errors=errors)


# --- Trends ---

class ScoreTrendPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    score: float
    position: int
    event_id: str


class ScoreTrend(BaseModel):
    team_id: str
    direction: TrendDirection = TrendDirection.stable
    percentage: float = 0.0
    average_score: float = 0.0
    points: list[ScoreTrendPoint] = Field(default_factory=list)
    calculated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def description(self) -> str:
        if self.direction is TrendDirection.upward:
            return f"Improving by {abs(self.percentage):.1f}%"
        if self.direction is TrendDirection.downward:
            return f"Declining by {abs(self.percentage):.1f}%"
        return "Stable performance"

    @property
    def latest_score(self) -> float | None:
        if not self.points:
            return None
        return max(self.points, key=lambda p: ensure_utc(p.timestamp)).score

    @property
    def earliest_score(self) -> float | None:
        if not self.points:
            return None
        return min(self.points, key=lambda p: ensure_utc(p.timestamp)).score
