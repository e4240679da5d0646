"""
Exception types raised by the Scoreboard engine.

Validation failures are always recoverable by fixing the input. Storage and
concurrency signals never leave a partially written Leaderboard behind.
"""


class ScoreboardError(Exception):
    """Base class for all engine errors"""
    pass


class ValidationError(ScoreboardError, ValueError):
    """Rubric or score shape is invalid; nothing was applied"""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class RubricValidationError(ValidationError):
    """Raised when a rubric fails validation before being stored or cloned"""

    def __init__(self, errors: list[str]):
        super().__init__("Invalid scoring rubric: " + "; ".join(errors), errors)


class InvalidScoreValue(ValidationError):
    """A per-criterion value is out of range or of the wrong kind"""

    def __init__(self, criterion_key: str, message: str):
        super().__init__(f"Invalid score for criterion '{criterion_key}': {message}")
        self.criterion_key = criterion_key


class ScoreValidationError(ValidationError):
    """Score-level fields (total, comments, timestamps) are invalid"""
    pass


class NotFoundError(ScoreboardError, LookupError):
    """A rubric, submission, team or snapshot could not be resolved"""
    pass


class ComputationInProgress(ScoreboardError):
    """Advisory: a leaderboard recomputation for this event is already running"""

    def __init__(self, event_id: str):
        super().__init__(f"Leaderboard computation already in progress for event '{event_id}'")
        self.event_id = event_id


class StorageError(ScoreboardError):
    """Backend timeout or failure; safe to retry with the same inputs"""
    pass


class ScoreImportError(ScoreboardError):
    """A judge score export could not be imported"""
    pass
