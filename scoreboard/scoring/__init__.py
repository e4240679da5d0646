"""
Rubric Scoring

Modules:
- rubric: Rubric validation, editing and cloning
- aggregator: Weighted totals, completion and per-submission aggregation
"""


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name == "validate_rubric":
        from scoreboard.scoring.rubric import validate_rubric
        return validate_rubric
    if name == "clone_rubric":
        from scoreboard.scoring.rubric import clone_rubric
        return clone_rubric
    if name == "compute_total":
        from scoreboard.scoring.aggregator import compute_total
        return compute_total
    if name == "score_submission":
        from scoreboard.scoring.aggregator import score_submission
        return score_submission
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
