"""
Shared utilities for the Scoreboard engine.

This module provides common functions used across multiple modules
to avoid code duplication.
"""

import logging
import shutil
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path


# --- Logging Setup ---
def setup_logging(name: str | None = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure and return a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__ from the calling module)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    return logger


# --- Time and Identifiers ---
def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware values."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_id(prefix: str) -> str:
    """Build a unique document id such as ``leaderboard_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def timestamp_ms(value: datetime) -> int:
    """Milliseconds since the epoch, used in snapshot file names."""
    return int(ensure_utc(value).timestamp() * 1000)


# --- File Operations ---
def atomic_write_text(text: str, path: Path, suffix: str = '.tmp') -> None:
    """
    Write text to a file atomically using a temporary file.

    This prevents a half-written document if the write is interrupted.

    Args:
        text: Content to write
        path: Destination path
        suffix: Suffix for the temporary file
    """
    logger = setup_logging(__name__)

    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode='w',
            delete=False,
            suffix=suffix,
            dir=path.parent,  # Same filesystem for atomic move
            encoding='utf-8',
        ) as tmp:
            tmp.write(text)
            tmp_path = Path(tmp.name)

        # Atomic move (rename) to final destination
        shutil.move(str(tmp_path), str(path))
        logger.debug(f"Atomically wrote {len(text)} bytes to {path}")

    except Exception:
        # Clean up temp file if it exists
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise


# --- Validation ---
def validate_input_size(row_count: int, max_rows: int) -> None:
    """
    Validate that an import does not exceed the maximum number of rows.

    Args:
        row_count: Number of rows in the import
        max_rows: Maximum allowed rows

    Raises:
        ValueError: If the import exceeds max_rows
    """
    if row_count > max_rows:
        raise ValueError(
            f"Import too large: {row_count:,} rows. "
            f"Maximum allowed: {max_rows:,} rows"
        )


__all__ = [
    # Logging
    'setup_logging',
    # Time and identifiers
    'utc_now',
    'ensure_utc',
    'generate_id',
    'timestamp_ms',
    # File operations
    'atomic_write_text',
    # Validation
    'validate_input_size',
]
