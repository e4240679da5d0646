"""
Data Ingestion

Modules:
- score_import: Judge score CSV import and batch ranking
"""


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name == "run_import":
        from scoreboard.ingestion.score_import import run_import
        return run_import
    if name == "import_scores":
        from scoreboard.ingestion.score_import import import_scores
        return import_scores
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
