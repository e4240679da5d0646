"""
Judge Score Import

Imports a judge score export (CSV) for one event, ranks the teams and saves
the resulting leaderboard snapshot. This is the batch trigger for a
recomputation when scores were collected outside the engine.

Expected CSV columns:
    submission_id, judge_id, team_id    required
    comments                            optional
    <criterion key> ...                 one column per rubric criterion;
                                        a blank cell means "not scored"

Usage:
    python -m scoreboard.ingestion.score_import scores.csv --rubric rubric.json --event hack-2024
    OR
    python scoreboard/ingestion/score_import.py --rubric rubric.json --event hack-2024

    Programmatic usage:
        from scoreboard.ingestion.score_import import run_import
        result = run_import(csv_path, rubric_path, "hack-2024")
"""

import sys
from pathlib import Path

# Add project root to path for direct script execution
_project_root = str(Path(__file__).parent.parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import argparse
from datetime import datetime

import numpy as np
import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from scoreboard.config import (
    IMPORT_FOLDER,
    MAX_IMPORT_ROWS,
    OPTIONAL_IMPORT_COLUMNS,
    REQUIRED_IMPORT_COLUMNS,
    SCORE_EXPORT_PATTERN,
    SNAPSHOT_FOLDER,
    TOP_N_LOGGED,
)
from scoreboard.errors import ScoreImportError, ScoreboardError, ValidationError
from scoreboard.models import BooleanCriterion, Score, ScoringRubric
from scoreboard.ranking.engine import compute_leaderboard
from scoreboard.scoring.aggregator import compute_total, validate_score
from scoreboard.scoring.rubric import ensure_valid_rubric
from scoreboard.storage.snapshots import JsonSnapshotStore
from scoreboard.utils import ensure_utc, generate_id, setup_logging, utc_now, validate_input_size

# --- Module Logger ---
logger = setup_logging(__name__)

_TRUE_STRINGS = {"true", "yes", "y", "1", "x"}
_FALSE_STRINGS = {"false", "no", "n", "0", ""}


def load_rubric(path: Path) -> ScoringRubric:
    """
    Load and validate a rubric JSON document.

    Raises:
        ScoreImportError: If the file is missing or not a rubric document
        RubricValidationError: If the rubric fails validation
    """
    path = Path(path)
    try:
        rubric = ScoringRubric.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ScoreImportError(f"Could not read rubric {path}: {e}") from e
    except PydanticValidationError as e:
        raise ScoreImportError(f"Rubric {path} is not a valid rubric document: {e}") from e
    return ensure_valid_rubric(rubric)


def find_latest_export(folder: Path = IMPORT_FOLDER) -> Path:
    """Most recent score export in ``folder`` (by file name)."""
    files = sorted(Path(folder).glob(SCORE_EXPORT_PATTERN))
    if not files:
        raise ScoreImportError(f"No score exports matching {SCORE_EXPORT_PATTERN} in {folder}")
    return files[-1]


def _coerce_boolean(value, key: str, row_number: int) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, float, np.integer, np.floating)) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ScoreImportError(f"Row {row_number}: '{key}' expects true/false, got {value!r}")


def _coerce_number(value, key: str, row_number: int) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ScoreImportError(f"Row {row_number}: '{key}' expects a number, got {value!r}") from e


def _text(value) -> str:
    if pd.isna(value):
        return ""
    return str(value).strip()


def parse_score_export(
    df: pd.DataFrame,
    rubric: ScoringRubric,
    event_id: str,
    now: datetime | None = None,
) -> tuple[list[Score], dict[str, str]]:
    """
    Convert a score export into Score records.

    Args:
        df: Export with one row per (submission, judge)
        rubric: Event rubric; its criterion keys name the score columns
        event_id: Event the scores belong to
        now: Timestamp for the created scores (default: current UTC time)

    Returns:
        Tuple of (scores with totals computed, submission_id -> team_id mapping)

    Raises:
        ScoreImportError: If columns are missing, values cannot be read,
            a row fails validation or a submission maps to two teams
    """
    validate_input_size(len(df), MAX_IMPORT_ROWS)
    now = ensure_utc(now or utc_now())

    missing = [c for c in REQUIRED_IMPORT_COLUMNS if c not in df.columns]
    if missing:
        raise ScoreImportError(f"Missing required columns: {missing}")

    known = set(REQUIRED_IMPORT_COLUMNS) | set(OPTIONAL_IMPORT_COLUMNS)
    criteria = [c for c in rubric.criteria if c.key in df.columns]
    unknown = [c for c in df.columns if c not in known and rubric.get_criterion(c) is None]
    if unknown:
        logger.warning(f"Ignoring columns not in rubric {rubric.id}: {unknown}")
    if not criteria:
        logger.warning(f"No column matches a criterion of rubric {rubric.id}")

    scores = []
    team_map: dict[str, str] = {}
    seen: set[tuple[str, str]] = set()

    # Row numbers are 1-based and skip the header line
    for row_number, row in enumerate(df.to_dict('records'), start=2):
        submission_id = _text(row['submission_id'])
        judge_id = _text(row['judge_id'])
        team_id = _text(row['team_id'])
        if not (submission_id and judge_id and team_id):
            raise ScoreImportError(f"Row {row_number}: submission_id, judge_id and team_id must be set")

        if (submission_id, judge_id) in seen:
            raise ScoreImportError(f"Row {row_number}: judge {judge_id} scored {submission_id} twice")
        seen.add((submission_id, judge_id))

        if team_map.setdefault(submission_id, team_id) != team_id:
            raise ScoreImportError(
                f"Row {row_number}: submission {submission_id} belongs to both "
                f"{team_map[submission_id]} and {team_id}"
            )

        values = {}
        for criterion in criteria:
            raw = row[criterion.key]
            if pd.isna(raw):
                continue
            if isinstance(criterion, BooleanCriterion):
                values[criterion.key] = _coerce_boolean(raw, criterion.key, row_number)
            else:
                values[criterion.key] = _coerce_number(raw, criterion.key, row_number)

        comments = _text(row.get('comments', np.nan)) or None

        try:
            score = Score(
                id=generate_id("score"),
                submission_id=submission_id,
                judge_id=judge_id,
                event_id=event_id,
                scores=values,
                comments=comments,
                created_at=now,
                updated_at=now,
            )
            validate_score(score, rubric)
        except (ValidationError, PydanticValidationError) as e:
            raise ScoreImportError(f"Row {row_number}: {e}") from e

        scores.append(compute_total(score, rubric, now=now))

    return scores, team_map


def import_scores(
    csv_path: Path,
    rubric: ScoringRubric,
    event_id: str,
    now: datetime | None = None,
) -> tuple[list[Score], dict[str, str]]:
    """Read a score export CSV and parse it (see parse_score_export)."""
    csv_path = Path(csv_path)
    try:
        df = pd.read_csv(
            csv_path,
            dtype={c: str for c in (*REQUIRED_IMPORT_COLUMNS, *OPTIONAL_IMPORT_COLUMNS)},
        )
    except FileNotFoundError as e:
        raise ScoreImportError(f"Score export not found: {csv_path}") from e
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ScoreImportError(f"Could not parse score export {csv_path}: {e}") from e

    logger.info(f"Read {len(df)} rows from {csv_path.name}")
    return parse_score_export(df, rubric, event_id, now=now)


def run_import(
    csv_path: Path,
    rubric_path: Path,
    event_id: str,
    snapshot_folder: Path = SNAPSHOT_FOLDER,
    dry_run: bool = False,
) -> dict:
    """
    Main entry point for a score import.

    Args:
        csv_path: Score export to import
        rubric_path: Rubric JSON document for the event
        event_id: Event being ranked
        snapshot_folder: Where the leaderboard snapshot is written
        dry_run: If True, rank without saving the snapshot

    Returns:
        Dictionary with:
            - success: bool
            - scores: number of scores imported
            - leaderboard: computed Leaderboard
            - excluded: list of exclusions
            - snapshot_id: saved snapshot id (if not dry_run)

    Raises:
        ScoreImportError: If the export or rubric cannot be imported
        RubricValidationError: If the rubric is invalid
        StorageError: If the snapshot cannot be saved
    """
    result = {
        'success': False,
        'scores': 0,
        'leaderboard': None,
        'excluded': [],
        'snapshot_id': None,
    }

    # Step 1: Rubric
    rubric = load_rubric(rubric_path)
    if rubric.event_id is not None and rubric.event_id != event_id:
        raise ScoreImportError(f"Rubric {rubric.id} belongs to event {rubric.event_id}, not {event_id}")
    logger.info(f"Loaded rubric {rubric.id} ({len(rubric.criteria)} criteria)")

    # Step 2: Scores
    scores, team_map = import_scores(csv_path, rubric, event_id)
    result['scores'] = len(scores)
    logger.info(f"  Imported {len(scores)} scores for {len(team_map)} submissions")

    # Step 3: Rank
    ranking = compute_leaderboard(event_id, scores, rubric, team_map)
    result['leaderboard'] = ranking.leaderboard
    result['excluded'] = ranking.excluded

    if dry_run:
        logger.info("[DRY RUN] Ranking complete. No snapshot was saved.")
        result['success'] = True
        return result

    # Step 4: Snapshot
    store = JsonSnapshotStore(snapshot_folder)
    store.save(ranking.leaderboard)
    result['snapshot_id'] = ranking.leaderboard.id

    result['success'] = True
    logger.info(f"Import complete for event {event_id}")
    return result


def main(argv: list[str] | None = None) -> int:
    """CLI interface for score import."""
    parser = argparse.ArgumentParser(description="Import judge scores and rank an event")
    parser.add_argument("csv", nargs="?", type=Path,
                        help=f"Score export (default: latest {SCORE_EXPORT_PATTERN} in {IMPORT_FOLDER})")
    parser.add_argument("--rubric", type=Path, required=True, help="Rubric JSON document")
    parser.add_argument("--event", required=True, help="Event ID")
    parser.add_argument("--snapshots", type=Path, default=SNAPSHOT_FOLDER, help="Snapshot folder")
    parser.add_argument("--top", type=int, default=TOP_N_LOGGED, help="Entries to show")
    parser.add_argument("--dry-run", action="store_true", help="Rank without saving a snapshot")
    args = parser.parse_args(argv)

    try:
        csv_path = args.csv or find_latest_export()
        result = run_import(csv_path, args.rubric, args.event, args.snapshots, dry_run=args.dry_run)
    except ScoreImportError as e:
        print(f"\nIMPORT ERROR: {e}")
        return 1
    except ValidationError as e:
        print(f"\nVALIDATION ERROR: {e}")
        return 1
    except ScoreboardError as e:
        print(f"\nERROR: {e}")
        return 1
    except ValueError as e:
        print(f"\nINPUT ERROR: {e}")
        return 1

    leaderboard = result['leaderboard']
    print("\n" + "=" * 60)
    print(f"Leaderboard for {leaderboard.event_id} ({leaderboard.team_count} teams)")
    print("=" * 60)
    for entry in leaderboard.top_entries(args.top):
        print(f"  {entry.position:>3}. {entry.team_id:<30} {entry.average_score:6.2f}  "
              f"({entry.submission_count} submissions, {entry.score_count} scores)")
    if result['excluded']:
        print(f"\n  Excluded: {len(result['excluded'])}")
    if result['snapshot_id']:
        print(f"  Snapshot: {result['snapshot_id']}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
