"""Shared dataclasses for balance board samples, sessions, and commands."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True, slots=True)
class RawSample:
    """One reading from the board driver, pad weights in kg and CoP in cm."""

    top_left_kg: float
    top_right_kg: float
    bottom_left_kg: float
    bottom_right_kg: float
    # Device-reported total, not re-derived from the pads.
    total_kg: float
    cop_x: float
    cop_y: float


@dataclass(frozen=True, slots=True)
class CalibrationOffset:
    tare_weight_kg: float = 0.0
    origin_x: float = 0.0
    origin_y: float = 0.0
    tared: bool = False


@dataclass(frozen=True, slots=True)
class AdjustedSample:
    weight_kg: float
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """One output row: raw pad weights plus adjusted weight and CoP."""

    wall_clock: datetime
    elapsed_s: float
    top_left_kg: float
    top_right_kg: float
    bottom_left_kg: float
    bottom_right_kg: float
    weight_kg: float
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class TaskKind:
    """A named trial protocol with a fixed recording duration."""

    name: str
    duration_s: float

    @property
    def label(self) -> str:
        return self.name.capitalize()


SIMPLE = TaskKind("simple", 60.0)
COMPLEX = TaskKind("complex", 39.0)


@dataclass(slots=True)
class Session:
    task: TaskKind
    session_id: int
    started_at: datetime
    started_monotonic: float
    active: bool = True
    record_count: int = 0
    dropped_count: int = 0

    @property
    def deadline(self) -> float:
        return self.started_monotonic + self.task.duration_s


class EngineState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"  # untared
    IDLE = "idle"
    STREAMING = "streaming"
    SHUTDOWN = "shutdown"


class CommandKind(str, Enum):
    START = "start"
    STOP = "stop"
    RESET_COP = "reset-cop"
    TARE = "tare"
    EXIT = "exit"


@dataclass(frozen=True, slots=True)
class Command:
    kind: CommandKind
    # Only meaningful for START; None means the run's default task.
    task: Optional[str] = None


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class EngineNotice:
    """Operator-facing message emitted by the session controller."""

    level: NoticeLevel
    message: str
    state: EngineState
