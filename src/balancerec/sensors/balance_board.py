"""
The board driver bridge streams one line per reading, either JSON:

  {"top_left": 17.6, "top_right": 18.1, "bottom_left": 17.2,
   "bottom_right": 17.4, "total": 70.3, "cop_x": 0.42, "cop_y": -1.10}

or the compact CSV form ``top_left,top_right,bottom_left,bottom_right,total,cop_x,cop_y``.
Pad weights and totals are kilograms, CoP is centimetres. Bridges may also
emit status lines such as ``{"type": "status", "extension": "balance_board"}``;
those are used to reject non-board extensions at connect time.

``parse_line()`` turns those lines into :class:`RawSample` objects;
:class:`LineSampleSource` runs any line iterable (subprocess stdout, SSH
channel, file) on a background thread and fans samples out to subscribers.
:class:`SyntheticSampleSource` fakes a person standing on the board.
"""

from __future__ import annotations

import json
import logging
import math
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Union

import numpy as np

from ..core.errors import DeviceError
from ..core.models import RawSample
from ..tools.debug import LatencyTracker, debug_enabled

logger = logging.getLogger(__name__)

BALANCE_BOARD_EXTENSION = "balance_board"

# Wii balance board sensor spacing, used to spread a CoP over the pads.
BOARD_LENGTH_CM = 43.3
BOARD_WIDTH_CM = 23.8

_JSON_FIELDS = ("top_left", "top_right", "bottom_left", "bottom_right", "total", "cop_x", "cop_y")

SampleCallback = Callable[[RawSample], None]
DisconnectCallback = Callable[[Optional[BaseException]], None]


@dataclass(frozen=True)
class BoardStatus:
    """Out-of-band status line from the driver bridge."""

    extension: Optional[str] = None
    connected: bool = True

    @property
    def is_balance_board(self) -> bool:
        return self.extension in (None, BALANCE_BOARD_EXTENSION)


ParsedLine = Union[RawSample, BoardStatus, None]


def _parse_json_line(text: str) -> ParsedLine:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Bad JSON from board stream: %r (%s)", text, exc)
        return None
    if not isinstance(obj, dict):
        logger.warning("Expected a JSON object from board stream, got %r", obj)
        return None

    if obj.get("type") == "status":
        extension = obj.get("extension")
        return BoardStatus(
            extension=str(extension).strip().lower() if extension is not None else None,
            connected=bool(obj.get("connected", True)),
        )

    missing = [name for name in _JSON_FIELDS if obj.get(name) is None]
    if missing:
        logger.warning("Missing field(s) %s in board line: %r", ", ".join(missing), obj)
        return None
    try:
        values = [float(obj[name]) for name in _JSON_FIELDS]
    except (TypeError, ValueError) as exc:
        logger.warning("Bad field value in board line %r (%s)", obj, exc)
        return None
    return RawSample(*values)


def _parse_csv_line(text: str) -> ParsedLine:
    parts: Sequence[str] = text.split(",")
    if len(parts) != len(_JSON_FIELDS):
        logger.warning(
            "Expected %d comma-separated values for a board reading, got %d: %r",
            len(_JSON_FIELDS),
            len(parts),
            text,
        )
        return None
    try:
        values = [float(p) for p in parts]
    except ValueError as exc:
        logger.warning("Bad CSV field in board line %r (%s)", text, exc)
        return None
    return RawSample(*values)


_parse_latency = LatencyTracker("balance_board.parse_line") if debug_enabled() else None


def parse_line(line: str) -> ParsedLine:
    """
    Parse one bridge line into a :class:`RawSample` or :class:`BoardStatus`.

    Invalid lines return ``None`` so callers can skip them without raising.
    """
    text = line.strip()
    if not text:
        return None

    start = time.perf_counter() if _parse_latency is not None else 0.0
    if text[0] == "{":
        parsed = _parse_json_line(text)
    else:
        parsed = _parse_csv_line(text)
    if _parse_latency is not None:
        _parse_latency.add(time.perf_counter() - start)
    return parsed


class _SubscriberMixin:
    """Callback bookkeeping shared by the sample sources."""

    def _init_subscribers(self) -> None:
        self._subscribers: List[SampleCallback] = []
        self._disconnect_handlers: List[DisconnectCallback] = []
        self._sub_lock = threading.Lock()

    def subscribe(self, callback: SampleCallback) -> None:
        with self._sub_lock:
            self._subscribers.append(callback)

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        with self._sub_lock:
            self._disconnect_handlers.append(callback)

    def _deliver(self, sample: RawSample) -> None:
        with self._sub_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(sample)
            except Exception:
                logger.exception("Error in sample callback for %r", sample)

    def _report_disconnect(self, error: Optional[BaseException]) -> None:
        with self._sub_lock:
            handlers = list(self._disconnect_handlers)
        for handler in handlers:
            try:
                handler(error)
            except Exception:
                logger.exception("Error in disconnect handler")


class LineSampleSource(_SubscriberMixin):
    """
    Sample source backed by a line-oriented driver bridge.

    ``stream_factory`` is called once by :meth:`connect`; the returned
    iterable is consumed on a daemon thread. If it exposes ``close()`` that
    is used to tear it down. The end of the stream, or a read error, is
    reported to ``on_disconnect`` handlers as a :class:`DeviceError`.
    """

    def __init__(
        self,
        stream_factory: Callable[[], Iterable[str]],
        *,
        name: str = "board",
        handshake_timeout: float = 5.0,
        parser: Callable[[str], ParsedLine] = parse_line,
    ) -> None:
        self._init_subscribers()
        self._stream_factory = stream_factory
        self._name = name
        self._handshake_timeout = max(0.1, float(handshake_timeout))
        self._parser = parser
        self._stream: Optional[Iterable[str]] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._first_line = threading.Event()
        self._handshake_error: Optional[DeviceError] = None
        self._connected = False

    def connect(self) -> None:
        """
        Open the stream and wait for its first line.

        Raises :class:`DeviceError` if the bridge cannot start, stays silent
        past the handshake timeout, or reports a non-board extension.
        """
        if self._connected:
            return
        try:
            self._stream = self._stream_factory()
        except DeviceError:
            raise
        except Exception as exc:
            # Transports raise their own families (paramiko.SSHException, OSError).
            raise DeviceError(f"Cannot start {self._name} stream: {exc}") from exc

        self._thread = threading.Thread(
            target=self._read_loop,
            name=f"BalanceBoardReader({self._name})",
            daemon=True,
        )
        self._connected = True
        self._thread.start()

        if not self._first_line.wait(self._handshake_timeout):
            self.close()
            raise DeviceError(f"No data from {self._name} within {self._handshake_timeout:g} s")
        if self._handshake_error is not None:
            self.close()
            raise self._handshake_error
        logger.info("Connected to %s", self._name)

    def is_connected(self) -> bool:
        return self._connected

    def close(self) -> None:
        self._stop.set()
        self._connected = False
        stream = self._stream
        self._stream = None
        close = getattr(stream, "close", None)
        if callable(close):
            try:
                close()
            except Exception:
                logger.exception("Error closing %s stream", self._name)

    def _read_loop(self) -> None:
        error: Optional[BaseException] = None
        stream = self._stream
        try:
            for raw_line in stream or ():
                if self._stop.is_set():
                    break
                parsed = self._parser(raw_line)
                if parsed is None:
                    continue
                if isinstance(parsed, BoardStatus):
                    problem = self._check_status(parsed)
                    if problem is not None:
                        error = problem
                        break
                    self._first_line.set()
                    continue
                self._first_line.set()
                self._deliver(parsed)
            else:
                if not self._stop.is_set():
                    error = DeviceError(f"{self._name} stream ended")
        except Exception as exc:
            if not self._stop.is_set():
                logger.exception("Error reading %s stream", self._name)
                error = DeviceError(f"{self._name} read failed: {exc}")
        finally:
            was_connected = self._connected
            self._connected = False
            if not self._first_line.is_set():
                self._handshake_error = error if isinstance(error, DeviceError) else DeviceError(
                    f"{self._name} stream closed before any data"
                )
                self._first_line.set()
            elif was_connected and not self._stop.is_set():
                self._report_disconnect(error)

    def _check_status(self, status: BoardStatus) -> Optional[DeviceError]:
        if not status.is_balance_board:
            return DeviceError(f"Not a Balance Board (extension: {status.extension}). Please connect a Wii Balance Board.")
        if not status.connected:
            return DeviceError(f"{self._name} reported disconnection")
        return None


class ProcessLineStream(Iterator[str]):
    """Stdout lines of a local driver bridge process, closable."""

    def __init__(self, command: Sequence[str]) -> None:
        self._proc = subprocess.Popen(
            list(command),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="ignore",
            bufsize=1,
        )
        self._stderr_thread = threading.Thread(target=self._watch_stderr, name="bridge-stderr", daemon=True)
        self._stderr_thread.start()

    def __iter__(self) -> "ProcessLineStream":
        return self

    def __next__(self) -> str:
        stdout = self._proc.stdout
        if stdout is None:
            raise StopIteration
        line = stdout.readline()
        if line == "":
            raise StopIteration
        return line.rstrip("\r\n")

    def _watch_stderr(self) -> None:
        stderr = self._proc.stderr
        if stderr is None:
            return
        for line in stderr:
            text = line.rstrip("\r\n")
            if text:
                logger.warning("[bridge] %s", text)

    def close(self) -> None:
        if self._proc.poll() is None:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                self._proc.kill()
        for stream in (self._proc.stdout, self._proc.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass


def pads_for_cop(total_kg: float, cop_x: float, cop_y: float) -> tuple[float, float, float, float]:
    """Split ``total_kg`` over the four pads so they reproduce the given CoP."""
    fx = min(1.0, max(0.0, 0.5 + cop_x / BOARD_LENGTH_CM))
    fy = min(1.0, max(0.0, 0.5 + cop_y / BOARD_WIDTH_CM))
    return (
        total_kg * (1.0 - fx) * fy,
        total_kg * fx * fy,
        total_kg * (1.0 - fx) * (1.0 - fy),
        total_kg * fx * (1.0 - fy),
    )


class SyntheticSampleSource(_SubscriberMixin):
    """
    Paced fake board: a person of ``body_mass_kg`` swaying gently.

    Useful for demos and tests of the full acquisition path without
    hardware. Samples are generated on a daemon thread at ``rate_hz``.
    """

    def __init__(
        self,
        rate_hz: float = 60.0,
        *,
        body_mass_kg: float = 70.0,
        sway_cm: float = 1.5,
        noise_kg: float = 0.05,
        seed: Optional[int] = None,
    ) -> None:
        if rate_hz <= 0:
            raise ValueError("rate_hz must be positive")
        self._init_subscribers()
        self.rate_hz = float(rate_hz)
        self.body_mass_kg = float(body_mass_kg)
        self.sway_cm = float(sway_cm)
        self.noise_kg = float(noise_kg)
        self._rng = np.random.default_rng(seed)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._t = 0.0

    def connect(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="SyntheticBalanceBoard", daemon=True)
        self._thread.start()
        logger.info("Synthetic balance board running at %.1f Hz", self.rate_hz)

    def is_connected(self) -> bool:
        return self._thread is not None and not self._stop.is_set()

    def close(self) -> None:
        self._stop.set()

    def next_sample(self) -> RawSample:
        """Produce the next reading and advance the internal clock."""
        t = self._t
        self._t += 1.0 / self.rate_hz
        x = self.sway_cm * math.sin(2.0 * math.pi * 0.3 * t) + float(self._rng.normal(0.0, 0.05))
        y = 0.6 * self.sway_cm * math.sin(2.0 * math.pi * 0.17 * t + 0.5) + float(self._rng.normal(0.0, 0.05))
        total = self.body_mass_kg + float(self._rng.normal(0.0, self.noise_kg))
        tl, tr, bl, br = pads_for_cop(total, x, y)
        return RawSample(tl, tr, bl, br, total, x, y)

    def _run(self) -> None:
        period = 1.0 / self.rate_hz
        next_tick = time.monotonic()
        while not self._stop.is_set():
            self._deliver(self.next_sample())
            next_tick += period
            delay = next_tick - time.monotonic()
            if delay < -period:
                # Fell behind (e.g. suspended); resync instead of bursting.
                next_tick = time.monotonic()
                delay = 0.0
            if delay > 0 and self._stop.wait(delay):
                break
