"""
Rubric Validation and Editing

Validates weighted scoring rubrics and derives edited or cloned copies.
Validation is a pure function: a rubric failing it is never stored or cloned.

Usage:
    from scoreboard.scoring.rubric import validate_rubric, clone_rubric
    result = validate_rubric(rubric)
    if not result.ok:
        print(result.errors)
"""

from collections import Counter

from scoreboard.config import MAX_RUBRIC_DESCRIPTION_LENGTH, MAX_RUBRIC_NAME_LENGTH
from scoreboard.errors import NotFoundError, RubricValidationError
from scoreboard.models import ScoringRubric, ValidationResult
from scoreboard.utils import ensure_utc, generate_id, setup_logging, utc_now

# --- Module Logger ---
logger = setup_logging(__name__)


def validate_rubric(rubric: ScoringRubric) -> ValidationResult:
    """
    Check a rubric's structure and criteria.

    Each violated rule produces its own message; criterion messages name the
    criterion's 1-based index and key.

    Args:
        rubric: Rubric to validate

    Returns:
        ValidationResult with ok=False and the list of errors on failure
    """
    errors = []

    if not rubric.name.strip():
        errors.append("Rubric name must not be empty")
    if len(rubric.name) > MAX_RUBRIC_NAME_LENGTH:
        errors.append(f"Rubric name must not exceed {MAX_RUBRIC_NAME_LENGTH} characters")
    if len(rubric.description) > MAX_RUBRIC_DESCRIPTION_LENGTH:
        errors.append(f"Rubric description must not exceed {MAX_RUBRIC_DESCRIPTION_LENGTH} characters")

    if not rubric.criteria:
        errors.append("Scoring rubric must have at least one criterion")

    for i, criterion in enumerate(rubric.criteria, start=1):
        label = f"Criterion {i}" + (f" ('{criterion.key}')" if criterion.key else "")
        if not criterion.key.strip():
            errors.append(f"{label} must have a key")
        if not criterion.name.strip():
            errors.append(f"{label} must have a name")
        if not criterion.max_score > 0:
            errors.append(f"{label} max score must be positive")
        if not criterion.weight > 0:
            errors.append(f"{label} weight must be positive")

    duplicates = sorted(k for k, n in Counter(rubric.criterion_keys).items() if n > 1)
    if duplicates:
        errors.append(f"Criterion keys must be unique (duplicated: {', '.join(duplicates)})")

    if ensure_utc(rubric.updated_at) < ensure_utc(rubric.created_at):
        errors.append("Updated timestamp must be after or equal to creation timestamp")

    if errors:
        return ValidationResult.invalid(errors)
    return ValidationResult.valid()


def ensure_valid_rubric(rubric: ScoringRubric) -> ScoringRubric:
    """Return the rubric unchanged, or raise RubricValidationError."""
    result = validate_rubric(rubric)
    if not result.ok:
        raise RubricValidationError(result.errors)
    return rubric


def _edited(rubric: ScoringRubric, criteria: list) -> ScoringRubric:
    updated = rubric.model_copy(update={"criteria": criteria, "updated_at": utc_now()})
    return ensure_valid_rubric(ScoringRubric.model_validate(updated.model_dump()))


def add_criterion(rubric: ScoringRubric, criterion) -> ScoringRubric:
    """Return a copy of the rubric with ``criterion`` appended."""
    return _edited(rubric, [*rubric.criteria, criterion])


def remove_criterion(rubric: ScoringRubric, criterion_key: str) -> ScoringRubric:
    """
    Return a copy of the rubric without the given criterion.

    Scores already recorded against the removed key keep it; totals simply
    stop counting it.
    """
    if rubric.get_criterion(criterion_key) is None:
        raise NotFoundError(f"Criterion '{criterion_key}' not found in rubric {rubric.id}")
    return _edited(rubric, [c for c in rubric.criteria if c.key != criterion_key])


def update_criterion(rubric: ScoringRubric, criterion_key: str, criterion) -> ScoringRubric:
    """Return a copy of the rubric with one criterion replaced in place."""
    if rubric.get_criterion(criterion_key) is None:
        raise NotFoundError(f"Criterion '{criterion_key}' not found in rubric {rubric.id}")
    return _edited(rubric, [criterion if c.key == criterion_key else c for c in rubric.criteria])


def clone_rubric(
    rubric: ScoringRubric,
    *,
    created_by: str,
    name: str | None = None,
    description: str | None = None,
    event_id: str | None = None,
    group_id: str | None = None,
    is_template: bool | None = None,
) -> ScoringRubric:
    """
    Create a new rubric from an existing one (typically a template).

    Args:
        rubric: Source rubric
        created_by: Member ID of the organizer cloning it
        name: New name (default: "<name> (Copy)")
        description: New description (default: source description)
        event_id: Event to scope the clone to
        group_id: Group to scope the clone to
        is_template: Template flag for the clone (default: False)

    Returns:
        The validated clone with a fresh id and timestamps

    Raises:
        RubricValidationError: If the source or overrides produce an invalid rubric
    """
    now = utc_now()
    clone = ScoringRubric(
        id=generate_id("rubric"),
        name=name if name is not None else f"{rubric.name} (Copy)",
        description=description if description is not None else rubric.description,
        criteria=list(rubric.criteria),
        event_id=event_id,
        group_id=group_id,
        is_template=bool(is_template),
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    ensure_valid_rubric(clone)
    logger.info(f"Cloned rubric {rubric.id} -> {clone.id} ({len(clone.criteria)} criteria)")
    return clone
