# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared logging configuration for the title linker.

Centralizes where operational logs live:
- Configurable data root directory (default: ~/.title_match_linker/)
- Date-session filename pattern (YYYY-MM-DD-<SESSION-ID>.jsonl)
- Subdirectory structure: runs/ (link-run journal), logs/ (Python logging)
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Default data root directory (user home)
DEFAULT_DATA_ROOT = Path.home() / ".title_match_linker"

# Subdirectory names
RUNS_SUBDIR = "runs"
LOGS_SUBDIR = "logs"


def get_default_data_root() -> Path:
    """Get the default data root directory.

    Returns:
        Path to ~/.title_match_linker/
    """
    return DEFAULT_DATA_ROOT


def get_current_utc_date() -> str:
    """Get the current UTC date in YYYY-MM-DD format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def validate_filename_component(value: str, name: str = "value") -> None:
    """Validate a string for safe use in filenames.

    Args:
        value: The string to validate.
        name: Name of the parameter for error messages.

    Raises:
        ValueError: If value contains path separators, parent references,
                   or null bytes.
    """
    if "\0" in value:
        raise ValueError(f"{name} contains null bytes: {value}")
    if "/" in value or "\\" in value or ":" in value:
        raise ValueError(f"{name} must not contain path separators: {value}")
    if ".." in value:
        raise ValueError(f"{name} must not contain parent references: {value}")


def build_log_filename(session_id: str, extension: str = "jsonl") -> str:
    """Build a log filename with date and session ID.

    Returns:
        Filename like "2025-12-11-abc123-def456.jsonl"

    Raises:
        ValueError: If session_id contains path separators or invalid chars.
    """
    validate_filename_component(session_id, "session_id")
    return f"{get_current_utc_date()}-{session_id}.{extension}"


def get_runs_dir(data_root: Optional[Path] = None) -> Path:
    """Get the link-run journal directory ({data_root}/runs/)."""
    root = data_root or DEFAULT_DATA_ROOT
    return root / RUNS_SUBDIR


def get_logs_dir(data_root: Optional[Path] = None) -> Path:
    """Get the Python logging output directory ({data_root}/logs/)."""
    root = data_root or DEFAULT_DATA_ROOT
    return root / LOGS_SUBDIR


def ensure_log_directories(data_root: Optional[Path] = None) -> None:
    """Create all log subdirectories if they don't exist."""
    root = data_root or DEFAULT_DATA_ROOT
    root.mkdir(parents=True, exist_ok=True)
    (root / RUNS_SUBDIR).mkdir(exist_ok=True)
    (root / LOGS_SUBDIR).mkdir(exist_ok=True)
