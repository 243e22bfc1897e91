"""Acquisition core: calibration, the session state machine, and commands.

The controller here sits between a sample source (board driver bridge) and
the trial recorder. Front-ends only submit :class:`Command` objects and
render :class:`EngineNotice` messages; :mod:`engine_wiring` builds a ready
engine from configuration.
"""

from .calibrator import Calibrator
from .commands import parse_command
from .errors import DeviceError, ProtocolError, RecorderError, UnknownCommandError
from .models import (
    AdjustedSample,
    CalibrationOffset,
    Command,
    CommandKind,
    EngineNotice,
    EngineState,
    NoticeLevel,
    RawSample,
    Session,
    SessionRecord,
    TaskKind,
)
from .session_controller import SessionController

__all__ = [
    "AdjustedSample",
    "CalibrationOffset",
    "Calibrator",
    "Command",
    "CommandKind",
    "DeviceError",
    "EngineNotice",
    "EngineState",
    "NoticeLevel",
    "ProtocolError",
    "RawSample",
    "RecorderError",
    "Session",
    "SessionController",
    "SessionRecord",
    "TaskKind",
    "UnknownCommandError",
    "parse_command",
]
