"""
Shared utilities for the Archery Scoring & Rating Engine.

This module provides common functions used across multiple modules
to avoid code duplication.
"""

import logging
import math
import shutil
import tempfile
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

from archery.errors import ValidationError


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


# --- File Operations ---
def atomic_write_csv(df, path: Path, **kwargs) -> None:
    """
    Write a DataFrame to CSV atomically using a temporary file.

    This prevents data corruption if the write is interrupted.

    Args:
        df: pandas DataFrame to write
        path: Destination path for the CSV file
        **kwargs: Additional arguments to pass to df.to_csv()
    """
    logger = setup_logging(__name__)

    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with tempfile.NamedTemporaryFile(
            mode='w',
            delete=False,
            suffix='.csv',
            dir=path.parent  # Same filesystem for atomic move
        ) as tmp:
            tmp_path = Path(tmp.name)
        df.to_csv(tmp_path, **kwargs)

        shutil.move(str(tmp_path), str(path))
        logger.debug(f"Atomically wrote {len(df)} rows to {path}")

    except Exception:
        if 'tmp_path' in locals() and tmp_path.exists():
            tmp_path.unlink()
        raise


# --- Time Helpers ---
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | date) -> datetime:
    """
    Normalise a date or datetime to an aware UTC datetime.

    Naive datetimes are taken to already be UTC; bare dates map to midnight.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_utc_day(value: datetime | date) -> datetime:
    moment = ensure_utc(value)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_period(now: datetime, period: str) -> datetime:
    """Monday 00:00 UTC of the current week, or the 1st 00:00 UTC of the month."""
    day_start = start_of_utc_day(now)
    if period == "week":
        return day_start - timedelta(days=day_start.weekday())
    if period == "month":
        return day_start.replace(day=1)
    raise ValidationError(f"Invalid period: '{period}'. Allowed values: month, week")


# --- Numeric Helpers ---
def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


# --- Validation ---
def validate_choice(value: str, allowed, field: str) -> None:
    """
    Validate that a value is one of the allowed options.

    Raises:
        ValidationError: If value is not in allowed
    """
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}: '{value}'. "
            f"Allowed values: {', '.join(sorted(allowed))}"
        )


def validate_limit(limit: int) -> None:
    if limit < 1:
        raise ValidationError(f"Limit must be a positive integer, got {limit}")


__all__ = [
    # Logging
    'setup_logging',
    # File operations
    'atomic_write_csv',
    # Time
    'utc_now',
    'ensure_utc',
    'start_of_utc_day',
    'start_of_period',
    # Numeric
    'round_half_up',
    # Validation
    'validate_choice',
    'validate_limit',
]
