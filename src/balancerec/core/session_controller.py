"""
Session state machine for one balance board connection.

Board samples and operator commands arrive on different threads. Both are
funnelled into one FIFO queue, stamped under a lock so queue order equals
arrival order, and consumed by a single worker. The worker alone touches the
calibration offsets, the active session and the recorder, so none of them
need locking of their own.

Session deadlines are not timers: the consumer ends a session before
handling any event stamped at or past the deadline, and when the queue is
quiet it waits only until the deadline. A stale deadline from an earlier
session therefore cannot end a newer one.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Mapping, Optional, Protocol, Union

from ..analysis.rate import RateController
from .calibrator import Calibrator
from .errors import DeviceError, ProtocolError
from .models import (
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

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
WallClock = Callable[[], datetime]
NoticeListener = Callable[[EngineNotice], None]

_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


class Recorder(Protocol):
    """What the controller needs from a trial file."""

    def write_header(self) -> None:  # pragma: no cover - protocol
        ...

    def append(self, record: SessionRecord) -> None:  # pragma: no cover - protocol
        ...

    def close(self) -> None:  # pragma: no cover - protocol
        ...


class SampleSource(Protocol):
    """A connected board delivering samples on its own thread."""

    def subscribe(self, callback: Callable[[RawSample], None]) -> None:  # pragma: no cover - protocol
        ...

    def is_connected(self) -> bool:  # pragma: no cover - protocol
        ...

    def close(self) -> None:  # pragma: no cover - protocol
        ...


@dataclass(frozen=True, slots=True)
class SampleEvent:
    stamp: float
    wall: datetime
    sample: RawSample


@dataclass(frozen=True, slots=True)
class CommandEvent:
    stamp: float
    wall: datetime
    command: Command


@dataclass(frozen=True, slots=True)
class DisconnectEvent:
    stamp: float
    wall: datetime
    error: Optional[BaseException] = None


Event = Union[SampleEvent, CommandEvent, DisconnectEvent]


class SessionController:
    """Owns calibration, the session lifecycle and the recorder for one run."""

    def __init__(
        self,
        calibrator: Calibrator,
        recorder: Recorder,
        *,
        tasks: Mapping[str, TaskKind],
        default_task: str,
        on_write_error: str = "drop",
        idle_poll_seconds: float = 0.1,
        rate_window: int = 120,
        clock: Clock = time.monotonic,
        wall_clock: WallClock = datetime.now,
    ) -> None:
        if default_task not in tasks:
            raise ValueError(f"default_task {default_task!r} is not in the task table")
        self._calibrator = calibrator
        self._recorder = recorder
        self._tasks = dict(tasks)
        self._default_task = default_task
        self._stop_on_write_error = on_write_error == "stop"
        self._idle_poll_s = max(0.01, float(idle_poll_seconds))
        self._clock = clock
        self._wall_clock = wall_clock

        self._queue: queue.Queue[Event] = queue.Queue()
        self._submit_lock = threading.Lock()
        self._listeners: List[NoticeListener] = []
        self._thread: Optional[threading.Thread] = None
        self._closed = threading.Event()

        self._state = EngineState.DISCONNECTED
        self._source: Optional[SampleSource] = None
        self._session: Optional[Session] = None
        self._last_session: Optional[Session] = None
        self._session_counter = 0
        self._latest: Optional[RawSample] = None
        self._rate = RateController(window_size=max(2, int(rate_window)))

    # ------------------------------------------------------------------ inspection
    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def calibrator(self) -> Calibrator:
        return self._calibrator

    @property
    def session(self) -> Optional[Session]:
        """The active session, or the most recently finished one."""
        return self._session or self._last_session

    @property
    def default_task(self) -> TaskKind:
        return self._tasks[self._default_task]

    @property
    def sample_rate_hz(self) -> float:
        return self._rate.estimated_hz

    def add_listener(self, listener: NoticeListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------ wiring
    def attach(self, source: SampleSource) -> None:
        """
        Subscribe to a connected board. Must be called before :meth:`start`.

        Raises :class:`DeviceError` if the source is not connected.
        """
        if self._thread is not None:
            raise RuntimeError("attach() must be called before the controller starts")
        if self._state is not EngineState.DISCONNECTED:
            raise RuntimeError(f"Cannot attach a source in state {self._state.value}")
        if not source.is_connected():
            raise DeviceError("Balance board is not connected")
        self._source = source
        source.subscribe(self.submit_sample)
        on_disconnect = getattr(source, "on_disconnect", None)
        if callable(on_disconnect):
            on_disconnect(self.notify_disconnect)
        self._state = EngineState.CONNECTED
        logger.info("Balance board attached; waiting for tare")

    def start(self) -> threading.Thread:
        """Start the consumer thread."""
        if self._thread is None:
            self._thread = threading.Thread(
                target=self.run,
                name="BalanceSessionController",
                daemon=True,
            )
            self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the controller reaches SHUTDOWN."""
        return self._closed.wait(timeout)

    # ------------------------------------------------------------------ producers
    def submit_sample(self, sample: RawSample) -> None:
        """SampleSource callback; safe to call from any thread."""
        if self._state is EngineState.SHUTDOWN:
            return
        with self._submit_lock:
            self._queue.put(SampleEvent(self._clock(), self._wall_clock(), sample))

    def submit_command(self, command: Command) -> None:
        if self._state is EngineState.SHUTDOWN:
            self._notify(NoticeLevel.WARNING, "Recorder has shut down; command ignored.")
            return
        with self._submit_lock:
            self._queue.put(CommandEvent(self._clock(), self._wall_clock(), command))

    def notify_disconnect(self, error: Optional[BaseException] = None) -> None:
        """Report that the board went away; the run shuts down in order."""
        with self._submit_lock:
            self._queue.put(DisconnectEvent(self._clock(), self._wall_clock(), error))

    def request_exit(self) -> None:
        """Ask for an orderly shutdown; a no-op once shut down."""
        if self._state is EngineState.SHUTDOWN:
            return
        self.submit_command(Command(CommandKind.EXIT))

    # ------------------------------------------------------------------ consumer
    def run(self) -> None:
        """Consume events until shutdown (body of the consumer thread)."""
        logger.debug("Session controller loop started")
        while self._state is not EngineState.SHUTDOWN:
            try:
                event = self._queue.get(timeout=self._wait_timeout())
            except queue.Empty:
                self._check_deadline(self._clock())
                continue
            try:
                self._dispatch(event)
            except Exception:
                logger.exception("Unexpected error handling %r", event)
        logger.debug("Session controller loop finished")

    def process_pending(self) -> int:
        """
        Drain queued events on the calling thread and return how many ran.

        Used when no consumer thread is running (tests, scripted replays).
        """
        handled = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                break
            self._dispatch(event)
            handled += 1
        self._check_deadline(self._clock())
        return handled

    def _wait_timeout(self) -> float:
        session = self._session
        if self._state is EngineState.STREAMING and session is not None:
            return max(0.0, session.deadline - self._clock())
        return self._idle_poll_s

    def _dispatch(self, event: Event) -> None:
        if self._state is EngineState.SHUTDOWN:
            return

        self._check_deadline(event.stamp)

        if isinstance(event, SampleEvent):
            self._on_sample(event)
        elif isinstance(event, CommandEvent):
            try:
                self._on_command(event)
            except ProtocolError as exc:
                self._notify(NoticeLevel.WARNING, str(exc))
        elif isinstance(event, DisconnectEvent):
            detail = f": {event.error}" if event.error else ""
            self._shutdown(f"Balance board disconnected{detail}", level=NoticeLevel.ERROR)

    # ------------------------------------------------------------------ samples
    def _on_sample(self, event: SampleEvent) -> None:
        sample = event.sample
        self._latest = sample
        self._rate.add_sample_time(event.stamp)

        session = self._session
        if self._state is not EngineState.STREAMING or session is None:
            return

        adjusted = self._calibrator.adjust(sample)
        record = SessionRecord(
            wall_clock=event.wall,
            elapsed_s=event.stamp - session.started_monotonic,
            top_left_kg=sample.top_left_kg,
            top_right_kg=sample.top_right_kg,
            bottom_left_kg=sample.bottom_left_kg,
            bottom_right_kg=sample.bottom_right_kg,
            weight_kg=adjusted.weight_kg,
            x=adjusted.x,
            y=adjusted.y,
        )
        try:
            self._recorder.append(record)
        except OSError as exc:
            session.dropped_count += 1
            self._notify(NoticeLevel.ERROR, f"Failed to write sample: {exc}")
            if self._stop_on_write_error:
                self._end_session(">> Streaming stopped after a write failure.")
            return
        session.record_count += 1

    # ------------------------------------------------------------------ commands
    def _on_command(self, event: CommandEvent) -> None:
        kind = event.command.kind
        if kind is CommandKind.START:
            self._start_session(event)
        elif kind is CommandKind.STOP:
            if self._state is not EngineState.STREAMING:
                raise ProtocolError("No active session to stop.")
            self._end_session(">> Streaming stopped.")
        elif kind is CommandKind.RESET_COP:
            self._reset_cop()
        elif kind is CommandKind.TARE:
            self._tare()
        elif kind is CommandKind.EXIT:
            self._shutdown("Exiting.")

    def _tare(self) -> None:
        if self._state is EngineState.STREAMING:
            raise ProtocolError("Cannot tare while streaming; 'stop' first.")
        if self._state not in (EngineState.CONNECTED, EngineState.IDLE):
            raise ProtocolError(f"Cannot tare while {self._state.value}.")
        if self._latest is None:
            raise ProtocolError("No sample received yet; tare not set.")
        offset = self._calibrator.tare(self._latest)
        self._state = EngineState.IDLE
        self._notify(
            NoticeLevel.INFO,
            f"Tare set -> Weight: {offset.tare_weight_kg:.2f} kg, "
            f"CoP: X={offset.origin_x:.2f} cm, Y={offset.origin_y:.2f} cm",
        )

    def _reset_cop(self) -> None:
        if self._latest is None:
            raise ProtocolError("No sample received yet; CoP origin unchanged.")
        offset = self._calibrator.reset_origin(self._latest)
        self._notify(
            NoticeLevel.INFO,
            f"Center of Pressure reset -> X={offset.origin_x:.2f} cm, Y={offset.origin_y:.2f} cm",
        )

    def _start_session(self, event: CommandEvent) -> None:
        if self._state is EngineState.STREAMING:
            raise ProtocolError("Already streaming; 'stop' the current session before starting another.")
        if self._state is EngineState.CONNECTED:
            raise ProtocolError("Board is not tared yet; cannot start streaming.")
        if self._state is not EngineState.IDLE:
            raise ProtocolError(f"Cannot start streaming while {self._state.value}.")

        name = event.command.task or self._default_task
        task = self._tasks.get(name)
        if task is None:
            known = ", ".join(sorted(self._tasks))
            raise ProtocolError(f"Unknown task {name!r}; expected one of: {known}.")

        if self._latest is not None:
            self._calibrator.reset_origin(self._latest)
        else:
            self._notify(NoticeLevel.WARNING, "No sample received yet; CoP origin unchanged.")

        try:
            self._recorder.write_header()
        except OSError as exc:
            self._notify(NoticeLevel.ERROR, f"Could not start session: {exc}")
            return

        self._session_counter += 1
        self._session = Session(
            task=task,
            session_id=self._session_counter,
            started_at=event.wall,
            started_monotonic=event.stamp,
        )
        self._state = EngineState.STREAMING
        self._notify(
            NoticeLevel.INFO,
            f">> {task.label} task: Streaming for {task.duration_s:g} seconds...",
        )

    # ------------------------------------------------------------------ lifecycle
    def _check_deadline(self, now: float) -> None:
        session = self._session
        if self._state is EngineState.STREAMING and session is not None and now >= session.deadline:
            self._end_session(f">> {session.task.duration_s:g} seconds complete. Streaming stopped.")

    def _end_session(self, message: str, *, notify: bool = True) -> None:
        session = self._session
        if session is not None:
            session.active = False
            period = self._rate.sample_period_s
            logger.info(
                "Session %d (%s) ended: %d records, %d dropped, ~%.1f Hz, sample period %s",
                session.session_id,
                session.task.name,
                session.record_count,
                session.dropped_count,
                self._rate.estimated_hz,
                "n/a" if period is None else f"{period * 1000.0:.1f} ms",
            )
            self._last_session = session
        self._session = None
        self._state = EngineState.IDLE
        if notify:
            self._notify(NoticeLevel.INFO, message)

    def _shutdown(self, message: str, *, level: NoticeLevel = NoticeLevel.INFO) -> None:
        if self._state is EngineState.STREAMING:
            self._end_session("", notify=False)

        # Recorder first, so partial data is on disk before the board goes.
        try:
            self._recorder.close()
        except OSError as exc:
            self._notify(NoticeLevel.ERROR, f"Error closing recorder: {exc}")

        source = self._source
        self._source = None
        if source is not None:
            try:
                source.close()
            except Exception:
                logger.exception("Error releasing sample source")

        self._state = EngineState.SHUTDOWN
        self._notify(level, message)
        self._closed.set()

    def _notify(self, level: NoticeLevel, message: str) -> None:
        logger.log(_LOG_LEVELS[level], "%s", message)
        notice = EngineNotice(level=level, message=message, state=self._state)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed for %r", notice)
