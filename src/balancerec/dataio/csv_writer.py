"""Append-only CSV recorder for balance board trials."""

from __future__ import annotations

import csv
import errno
import io
import logging
import os
import threading
import time
from pathlib import Path
from typing import BinaryIO, Optional, Sequence

from ..core.errors import RecorderError
from ..core.models import SessionRecord
from ..tools.debug import LatencyTracker, debug_enabled

logger = logging.getLogger(__name__)

CSV_HEADER: tuple[str, ...] = (
    "RealTimestamp",
    "ElapsedSeconds",
    "TopLeft(kg)",
    "TopRight(kg)",
    "BottomLeft(kg)",
    "BottomRight(kg)",
    "TotalWeight(kg)",
    "CoPX(cm)",
    "CoPY(cm)",
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def format_record(record: SessionRecord) -> list[str]:
    """Render one record as CSV fields (2 decimals for kg/cm, 3 for seconds)."""
    return [
        record.wall_clock.strftime(TIMESTAMP_FORMAT),
        f"{record.elapsed_s:.3f}",
        f"{record.top_left_kg:.2f}",
        f"{record.top_right_kg:.2f}",
        f"{record.bottom_left_kg:.2f}",
        f"{record.bottom_right_kg:.2f}",
        f"{record.weight_kg:.2f}",
        f"{record.x:.2f}",
        f"{record.y:.2f}",
    ]


class CsvRecorder:
    """
    Owns one trial file: creation, header rows, per-record durable appends.

    Rows go straight to an unbuffered file and are fsync'd (unless disabled)
    before ``append`` returns, so a board disconnect mid-trial loses nothing
    already written. A row whose write or fsync fails is cut back out of the
    file, so every row on disk was reported as written.
    Existing files are never overwritten.
    """

    def __init__(self, path: Path, handle: BinaryIO, *, fsync: bool = True) -> None:
        self.path = Path(path)
        self._handle: Optional[BinaryIO] = handle
        self._line = io.StringIO()
        self._writer = csv.writer(self._line, lineterminator="\n")
        self._fsync = bool(fsync)
        self._lock = threading.Lock()
        self.rows_written = 0
        self.headers_written = 0
        self._latency = LatencyTracker("CsvRecorder.append") if debug_enabled() else None

    @classmethod
    def open(cls, path: str | Path, *, fsync: bool = True) -> "CsvRecorder":
        """Create ``path`` (and its directory) exclusively and return a recorder."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = path.open("xb", buffering=0)
        except FileExistsError as exc:
            raise RecorderError(errno.EEXIST, f"Trial file already exists: {path}") from exc
        except OSError as exc:
            raise RecorderError(exc.errno, f"Cannot create trial file {path}: {exc.strerror or exc}") from exc
        logger.info("Recording to %s", path)
        return cls(path, handle, fsync=fsync)

    @property
    def closed(self) -> bool:
        return self._handle is None

    def write_header(self) -> None:
        self._write_row(CSV_HEADER)
        self.headers_written += 1

    def append(self, record: SessionRecord) -> None:
        start = time.perf_counter() if self._latency is not None else 0.0
        self._write_row(format_record(record))
        self.rows_written += 1
        if self._latency is not None:
            self._latency.add(time.perf_counter() - start)

    def close(self) -> None:
        """Close the file; further writes raise :class:`RecorderError`."""
        with self._lock:
            handle = self._handle
            if handle is None:
                return
            self._handle = None
        try:
            handle.close()
        except OSError as exc:
            logger.warning("Error closing %s: %s", self.path, exc)
        else:
            logger.info("Closed %s (%d rows)", self.path, self.rows_written)

    def _encode(self, row: Sequence[str]) -> bytes:
        self._line.seek(0)
        self._line.truncate()
        self._writer.writerow(row)
        return self._line.getvalue().encode("utf-8")

    def _write_row(self, row: Sequence[str]) -> None:
        with self._lock:
            handle = self._handle
            if handle is None:
                raise RecorderError(errno.EBADF, f"Recorder for {self.path} is closed")
            data = memoryview(self._encode(row))
            start = handle.tell()
            try:
                while data:
                    written = handle.write(data)
                    data = data[written:]
                if self._fsync:
                    os.fsync(handle.fileno())
            except OSError as exc:
                self._rollback(handle, start)
                raise RecorderError(exc.errno, f"Write to {self.path} failed: {exc.strerror or exc}") from exc

    def _rollback(self, handle: BinaryIO, offset: int) -> None:
        try:
            handle.truncate(offset)
            handle.seek(offset)
        except OSError as exc:
            logger.error("Could not remove partial row from %s: %s", self.path, exc)
