"""
Central configuration for the Scoreboard engine.

All shared constants and configuration values should be defined here
to avoid duplication and ensure consistency across modules.
"""

from pathlib import Path

# --- Project Paths ---
PROJECT_ROOT = Path(__file__).parent.parent
DATA_FOLDER = PROJECT_ROOT / "data"
SNAPSHOT_FOLDER = DATA_FOLDER / "snapshots"
IMPORT_FOLDER = DATA_FOLDER / "imports"

# --- Rubric Limits ---
MAX_RUBRIC_NAME_LENGTH = 100
MAX_RUBRIC_DESCRIPTION_LENGTH = 1000

# Criterion defaults when a rubric document omits them
DEFAULT_MAX_SCORE = 100.0
DEFAULT_WEIGHT = 1.0

# --- Score Limits ---
TOTAL_SCORE_MIN = 0.0
TOTAL_SCORE_MAX = 100.0
MAX_COMMENTS_LENGTH = 2000

# --- Ranking Configuration ---
SCORE_TOLERANCE = 1e-9  # Averages closer than this share a position
WINNING_POSITIONS = 3  # Positions counted as podium places
COMPUTATION_WAIT_SECONDS = 30.0  # Default wait for an in-flight recomputation

# --- Storage Configuration ---
STORE_TIMEOUT_SECONDS = 5.0  # Default wait for the store lock
DEFAULT_CLEANUP_BATCH_SIZE = 100
SNAPSHOT_RETENTION_DAYS = 90
CLEANUP_INTERVAL_SECONDS = 60 * 60  # Hourly

# --- Trend Configuration ---
TREND_STABLE_THRESHOLD = 1.0  # Percent change reported as stable

# --- Score Import ---
SCORE_EXPORT_PATTERN = "scores_*.csv"
REQUIRED_IMPORT_COLUMNS = ("submission_id", "judge_id", "team_id")
OPTIONAL_IMPORT_COLUMNS = ("comments",)
MAX_IMPORT_ROWS = 50_000
TOP_N_LOGGED = 10  # Entries printed after a CLI import
