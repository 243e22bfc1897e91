"""Factory helpers that wire a :class:`SessionController` from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config import BalanceConfig
from ..dataio.csv_writer import CsvRecorder
from ..dataio.file_paths import trial_file_path
from ..tools.debug import time_block
from .calibrator import Calibrator
from .errors import DeviceError
from .models import TaskKind
from .session_controller import NoticeListener, SampleSource, SessionController


@dataclass(slots=True)
class EngineHandles:
    """Return value from :func:`build_engine` containing ready-to-use pieces."""

    controller: SessionController
    recorder: CsvRecorder
    output_path: Path
    task: TaskKind


def build_engine(
    cfg: BalanceConfig,
    participant: str,
    task_name: str | None = None,
    *,
    source: Optional[SampleSource] = None,
    listener: Optional[NoticeListener] = None,
    started: datetime | None = None,
    data_root: Path | None = None,
) -> EngineHandles:
    """
    Build the engine for one participant/task run.

    Parameters
    ----------
    cfg:
        Runtime configuration (usually loaded from YAML).
    participant:
        Participant name; becomes the trial sub-directory.
    task_name:
        Task kind for the run. Defaults to ``cfg.default_task``.
    source:
        Connected sample source. When given it is attached, so a
        :class:`~balancerec.core.errors.DeviceError` surfaces here, before
        any trial file is created.
    listener:
        Callback receiving :class:`~balancerec.core.models.EngineNotice`.
    data_root:
        Overrides ``cfg.data_root``. With neither set, trials go under
        :attr:`AppPaths.data_root`.
    """
    normalized = cfg.sanitized()
    task = normalized.task(task_name)

    if source is not None and not source.is_connected():
        raise DeviceError("Balance board is not connected")

    if data_root is not None:
        root: Path | None = Path(data_root)
    else:
        root = Path(normalized.data_root) if normalized.data_root else None
    path = trial_file_path(participant, task.name, started=started, base=root)
    with time_block("open trial file"):
        recorder = CsvRecorder.open(path, fsync=normalized.fsync)

    controller = SessionController(
        Calibrator(),
        recorder,
        tasks=normalized.task_table(),
        default_task=task.name,
        on_write_error=normalized.on_write_error,
        idle_poll_seconds=normalized.idle_poll_seconds,
        rate_window=normalized.rate_window,
    )
    if listener is not None:
        controller.add_listener(listener)
    if source is not None:
        try:
            controller.attach(source)
        except Exception:
            recorder.close()
            raise
    return EngineHandles(controller=controller, recorder=recorder, output_path=path, task=task)


__all__ = ["EngineHandles", "build_engine"]
