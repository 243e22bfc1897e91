from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional

import pytest

from balancerec.core.calibrator import Calibrator
from balancerec.core.models import EngineNotice, RawSample, SessionRecord, TaskKind
from balancerec.core.session_controller import SessionController

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, t: float = 0.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t

    def wall(self) -> datetime:
        return BASE_TIME + timedelta(seconds=self.t)


class MemoryRecorder:
    """In-memory recorder; ``fail_next`` makes the next N appends raise."""

    def __init__(self) -> None:
        self.rows: List[object] = []
        self.headers = 0
        self.closed = False
        self.fail_next = 0
        self.fail_header = False

    def write_header(self) -> None:
        if self.fail_header:
            raise OSError("read-only file system")
        self.headers += 1
        self.rows.append("HEADER")

    def append(self, record: SessionRecord) -> None:
        if self.closed:
            raise OSError("closed")
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("disk full")
        self.rows.append(record)

    def close(self) -> None:
        self.closed = True

    @property
    def records(self) -> List[SessionRecord]:
        return [row for row in self.rows if isinstance(row, SessionRecord)]


class FakeSource:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.closed = False
        self._callback: Optional[Callable[[RawSample], None]] = None
        self._disconnect: Optional[Callable[[Optional[BaseException]], None]] = None

    def subscribe(self, callback: Callable[[RawSample], None]) -> None:
        self._callback = callback

    def on_disconnect(self, callback: Callable[[Optional[BaseException]], None]) -> None:
        self._disconnect = callback

    def is_connected(self) -> bool:
        return self.connected

    def close(self) -> None:
        self.closed = True

    def emit(self, sample: RawSample) -> None:
        assert self._callback is not None
        self._callback(sample)

    def drop(self, error: Optional[BaseException] = None) -> None:
        assert self._disconnect is not None
        self._disconnect(error)


def sample(total: float = 70.0, x: float = 0.0, y: float = 0.0, pads: float = 17.5) -> RawSample:
    return RawSample(pads, pads, pads, pads, total, x, y)


TASKS = {"simple": TaskKind("simple", 60.0), "complex": TaskKind("complex", 39.0)}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> MemoryRecorder:
    return MemoryRecorder()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def notices() -> List[EngineNotice]:
    return []


@pytest.fixture
def make_controller(clock, recorder, source, notices):
    def _make(attach: bool = True, **kwargs) -> SessionController:
        controller = SessionController(
            Calibrator(),
            recorder,
            tasks=TASKS,
            default_task="simple",
            clock=clock,
            wall_clock=clock.wall,
            **kwargs,
        )
        controller.add_listener(notices.append)
        if attach:
            controller.attach(source)
        return controller

    return _make
