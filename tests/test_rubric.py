"""
Tests for rubric validation, editing and cloning.
"""

from datetime import timedelta

import pytest

from scoreboard.config import MAX_RUBRIC_DESCRIPTION_LENGTH, MAX_RUBRIC_NAME_LENGTH
from scoreboard.errors import NotFoundError, RubricValidationError
from scoreboard.models import BooleanCriterion, NumericCriterion, ScaleCriterion, ScoringRubric
from scoreboard.scoring.rubric import (
    add_criterion,
    clone_rubric,
    ensure_valid_rubric,
    remove_criterion,
    update_criterion,
    validate_rubric,
)


class TestValidateRubric:
    """Tests for validate_rubric function."""

    def test_valid_rubric(self, hackathon_rubric):
        result = validate_rubric(hackathon_rubric)
        assert result.ok
        assert result.errors == []

    def test_no_criteria(self):
        result = validate_rubric(ScoringRubric(id="r", name="Empty"))
        assert not result.ok
        assert "Scoring rubric must have at least one criterion" in result.errors

    def test_empty_name(self, hackathon_rubric):
        result = validate_rubric(hackathon_rubric.model_copy(update={"name": "   "}))
        assert "Rubric name must not be empty" in result.errors

    def test_name_too_long(self, hackathon_rubric):
        rubric = hackathon_rubric.model_copy(update={"name": "x" * (MAX_RUBRIC_NAME_LENGTH + 1)})
        result = validate_rubric(rubric)
        assert result.errors == [f"Rubric name must not exceed {MAX_RUBRIC_NAME_LENGTH} characters"]

    def test_name_at_limit(self, hackathon_rubric):
        rubric = hackathon_rubric.model_copy(update={"name": "x" * MAX_RUBRIC_NAME_LENGTH})
        assert validate_rubric(rubric).ok

    def test_description_too_long(self, hackathon_rubric):
        rubric = hackathon_rubric.model_copy(
            update={"description": "x" * (MAX_RUBRIC_DESCRIPTION_LENGTH + 1)}
        )
        result = validate_rubric(rubric)
        assert result.errors == [
            f"Rubric description must not exceed {MAX_RUBRIC_DESCRIPTION_LENGTH} characters"
        ]

    def test_duplicate_keys(self):
        rubric = ScoringRubric(id="r", name="Dup", criteria=[
            NumericCriterion(key="a", name="A"),
            NumericCriterion(key="a", name="A again"),
        ])
        result = validate_rubric(rubric)
        assert result.errors == ["Criterion keys must be unique (duplicated: a)"]

    def test_criterion_errors_name_the_criterion(self):
        rubric = ScoringRubric(id="r", name="Bad", criteria=[
            NumericCriterion(key="ok", name="Fine"),
            NumericCriterion(key="bad", name="", max_score=0, weight=-1),
        ])
        result = validate_rubric(rubric)
        assert result.errors == [
            "Criterion 2 ('bad') must have a name",
            "Criterion 2 ('bad') max score must be positive",
            "Criterion 2 ('bad') weight must be positive",
        ]

    def test_missing_key(self):
        rubric = ScoringRubric(id="r", name="Bad", criteria=[NumericCriterion(key="", name="No key")])
        assert validate_rubric(rubric).errors == ["Criterion 1 must have a key"]

    def test_errors_are_accumulated(self):
        rubric = ScoringRubric(id="r", name="", description="x" * 2000)
        result = validate_rubric(rubric)
        assert len(result.errors) == 3

    def test_updated_before_created(self, hackathon_rubric):
        rubric = hackathon_rubric.model_copy(
            update={"updated_at": hackathon_rubric.created_at - timedelta(seconds=1)}
        )
        assert not validate_rubric(rubric).ok

    def test_ensure_valid_raises(self):
        with pytest.raises(RubricValidationError) as exc_info:
            ensure_valid_rubric(ScoringRubric(id="r", name="Empty"))
        assert exc_info.value.errors == ["Scoring rubric must have at least one criterion"]

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            ensure_valid_rubric(ScoringRubric(id="r", name="Empty"))


class TestRubricModel:
    """Tests for derived rubric properties and criterion parsing."""

    def test_max_possible_score(self, mixed_rubric):
        assert mixed_rubric.max_possible_score == 16

    def test_weighted_max_score(self, mixed_rubric):
        # 10*2 + 5*1 + 1*1
        assert mixed_rubric.weighted_max_score == 26

    def test_weighted_max_score_order_invariant(self, hackathon_rubric):
        reversed_rubric = hackathon_rubric.model_copy(
            update={"criteria": list(reversed(hackathon_rubric.criteria))}
        )
        assert reversed_rubric.weighted_max_score == hackathon_rubric.weighted_max_score

    def test_criteria_parsed_by_type(self):
        rubric = ScoringRubric.model_validate({
            "id": "r",
            "name": "Parsed",
            "criteria": [
                {"key": "a", "name": "A", "type": "numeric", "max_score": 10},
                {"key": "b", "name": "B", "type": "scale", "max_score": 5, "options": {"min": 1, "max": 5}},
                {"key": "c", "name": "C", "type": "boolean"},
            ],
        })
        assert [type(c) for c in rubric.criteria] == [NumericCriterion, ScaleCriterion, BooleanCriterion]
        assert rubric.criteria[1].scale_min == 1

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            ScoringRubric.model_validate({
                "id": "r",
                "name": "Bad",
                "criteria": [{"key": "a", "name": "A", "type": "stars"}],
            })

    def test_get_criterion(self, hackathon_rubric):
        assert hackathon_rubric.get_criterion("technical").weight == 0.4
        assert hackathon_rubric.get_criterion("missing") is None


class TestRubricEditing:
    """Tests for add/remove/update criterion helpers."""

    def test_add_criterion(self, hackathon_rubric):
        edited = add_criterion(hackathon_rubric, NumericCriterion(key="ux", name="UX", weight=0.5))
        assert edited.criterion_keys == ["creativity", "technical", "presentation", "ux"]
        assert edited.updated_at >= hackathon_rubric.updated_at
        # Original untouched
        assert len(hackathon_rubric.criteria) == 3

    def test_add_duplicate_rejected(self, hackathon_rubric):
        with pytest.raises(RubricValidationError):
            add_criterion(hackathon_rubric, NumericCriterion(key="technical", name="Again"))

    def test_remove_criterion(self, hackathon_rubric):
        edited = remove_criterion(hackathon_rubric, "presentation")
        assert edited.criterion_keys == ["creativity", "technical"]

    def test_remove_last_criterion_rejected(self, single_criterion_rubric):
        with pytest.raises(RubricValidationError):
            remove_criterion(single_criterion_rubric, "overall")

    def test_remove_unknown(self, hackathon_rubric):
        with pytest.raises(NotFoundError):
            remove_criterion(hackathon_rubric, "missing")

    def test_update_criterion_keeps_order(self, hackathon_rubric):
        edited = update_criterion(
            hackathon_rubric, "technical", NumericCriterion(key="technical", name="Tech", weight=0.8)
        )
        assert edited.criterion_keys == hackathon_rubric.criterion_keys
        assert edited.get_criterion("technical").weight == 0.8


class TestCloneRubric:
    """Tests for clone_rubric function."""

    def test_clone_defaults(self, hackathon_rubric):
        template = hackathon_rubric.model_copy(update={"is_template": True, "event_id": None})
        clone = clone_rubric(template, created_by="organizer-1", event_id="event-9")

        assert clone.id != template.id
        assert clone.name == "Hackathon Judging (Copy)"
        assert clone.event_id == "event-9"
        assert clone.is_template is False
        assert clone.created_by == "organizer-1"
        assert clone.criteria == template.criteria
        assert clone.created_at == clone.updated_at

    def test_clone_overrides(self, hackathon_rubric):
        clone = clone_rubric(hackathon_rubric, created_by="o", name="Finals", is_template=True)
        assert clone.name == "Finals"
        assert clone.is_template is True

    def test_invalid_clone_rejected(self, hackathon_rubric):
        with pytest.raises(RubricValidationError):
            clone_rubric(hackathon_rubric, created_by="o", name="")
