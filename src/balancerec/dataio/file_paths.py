"""Helpers for constructing trial file paths."""

import re
from datetime import datetime
from pathlib import Path

from ..config.app_config import AppPaths

# Allow only alphanumerics, underscore, dot, and dash.
_PARTICIPANT_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def sanitize_participant_name(name: str) -> str:
    """
    Sanitize a participant name for use as a directory name.

    - Replace disallowed characters with '_'.
    - Strip leading/trailing underscores and dots.
    - Fall back to 'participant' if nothing remains.
    """
    cleaned = _PARTICIPANT_RE.sub("_", name.strip()).strip("_.")
    return cleaned or "participant"


def trial_file_path(
    participant: str,
    task_name: str,
    started: datetime | None = None,
    base: Path | None = None,
) -> Path:
    """
    Return ``<base>/<participant>/BalanceBoardData_<task>_<YYYYMMDD_HHMMSS>.csv``.

    The directory is not created here; :meth:`CsvRecorder.open` does that.
    """
    stamp = (started or datetime.now()).strftime("%Y%m%d_%H%M%S")
    root = base if base is not None else AppPaths().data_root
    folder = Path(root) / sanitize_participant_name(participant)
    return folder / f"BalanceBoardData_{task_name.strip().lower()}_{stamp}.csv"
