"""Utilities for loading recorded balance board trials."""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List

import numpy as np

from .csv_writer import CSV_HEADER, TIMESTAMP_FORMAT

NUMERIC_COLUMNS = CSV_HEADER[1:]
_HEADER_LINE = ",".join(CSV_HEADER)


@dataclass
class LoadedSession:
    """One header-delimited block of a trial file."""

    timestamps: List[datetime]
    # Columns follow NUMERIC_COLUMNS: elapsed, four pads, weight, x, y.
    values: np.ndarray

    def __len__(self) -> int:
        return int(self.values.shape[0])

    @property
    def elapsed(self) -> np.ndarray:
        return self.values[:, 0]

    @property
    def weight(self) -> np.ndarray:
        return self.values[:, 5]

    @property
    def cop(self) -> np.ndarray:
        """CoP as an ``(n, 2)`` array of x, y."""
        return self.values[:, 6:8]


def _parse_block(lines: List[str]) -> LoadedSession:
    if not lines:
        return LoadedSession(timestamps=[], values=np.empty((0, len(NUMERIC_COLUMNS))))
    timestamps = [datetime.strptime(line.split(",", 1)[0], TIMESTAMP_FORMAT) for line in lines]
    values = np.loadtxt(
        io.StringIO("\n".join(lines)),
        delimiter=",",
        usecols=range(1, len(CSV_HEADER)),
        ndmin=2,
    )
    return LoadedSession(timestamps=timestamps, values=values)


def load_sessions(path: Path) -> List[LoadedSession]:
    """
    Split a trial file into sessions, one per header row.

    Rows that appear before the first header are treated as their own
    session so nothing in the file is silently ignored.
    """
    with Path(path).open("r", encoding="utf-8") as fh:
        raw_lines = [line.strip() for line in fh]

    blocks: List[List[str]] = []
    current: List[str] | None = None
    for line in raw_lines:
        if not line:
            continue
        if line == _HEADER_LINE:
            current = []
            blocks.append(current)
            continue
        if current is None:
            current = []
            blocks.append(current)
        current.append(line)

    return [_parse_block(block) for block in blocks]


def load_csv(path: Path) -> np.ndarray:
    """Load every numeric row of a trial file, all sessions concatenated."""
    sessions = load_sessions(path)
    arrays = [s.values for s in sessions if len(s)]
    if not arrays:
        return np.empty((0, len(NUMERIC_COLUMNS)))
    return np.concatenate(arrays, axis=0)
