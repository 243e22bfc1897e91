"""Console front-end: operator banner, participant prompt, command listener."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import Callable, Mapping, Optional, TextIO, Tuple

from .config import BalanceConfig
from .core.commands import USAGE, parse_command
from .core.engine_wiring import build_engine
from .core.errors import DeviceError, RecorderError, UnknownCommandError
from .core.models import Command, CommandKind, EngineNotice, EngineState, NoticeLevel
from .core.session_controller import SessionController

logger = logging.getLogger(__name__)

BANNER = """\
===========================================
 Wii Balance Board Data Recorder
===========================================
Usage:
  Enter participant name and task type:
    Example:  John simple
    Example:  Maria complex

Commands during runtime:
  go    -> Start streaming data
  stop  -> Stop streaming
  res   -> Reset Center of Pressure (CoP)
  tare  -> Re-capture the weight baseline
  exit  -> Quit program
===========================================
"""


class ConsolePrinter:
    """Serialises output from the controller thread and the main thread."""

    def __init__(self, out: TextIO) -> None:
        self._out = out
        self._lock = threading.Lock()

    def line(self, text: str = "") -> None:
        with self._lock:
            self._out.write(text + "\n")
            self._out.flush()

    def notice(self, notice: EngineNotice) -> None:
        if notice.level is NoticeLevel.ERROR:
            self.line(f"Error: {notice.message}")
        elif notice.level is NoticeLevel.WARNING:
            self.line(f"Warning: {notice.message}")
        else:
            self.line(notice.message)


class ConsoleCommandSource:
    """Blocking, line-oriented command reader (``next()`` returns None at EOF)."""

    def __init__(self, stream: TextIO, report: Callable[[str], None]) -> None:
        self._stream = stream
        self._report = report

    def next(self) -> Optional[Command]:
        while True:
            line = self._stream.readline()
            if line == "":
                return None
            text = line.strip()
            if not text:
                continue
            try:
                return parse_command(text)
            except UnknownCommandError:
                self._report(f"Unknown command. {USAGE}")


def parse_participant(line: str, tasks: Mapping[str, float]) -> Tuple[str, str]:
    """Split ``"NAME TASK"`` and validate the task against the duration table."""
    parts = line.strip().split()
    if len(parts) != 2 or parts[1].lower() not in tasks:
        options = " or ".join(f"'Name {name}'" for name in tasks)
        raise ValueError(f"Invalid input. Please enter in the format: {options}")
    return parts[0], parts[1].lower()


def listen_for_commands(controller: SessionController, commands: ConsoleCommandSource) -> None:
    """Forward operator commands until exit, EOF, or shutdown."""
    while controller.state is not EngineState.SHUTDOWN:
        command = commands.next()
        if command is None:
            controller.request_exit()
            return
        controller.submit_command(command)
        if command.kind is CommandKind.EXIT:
            return


def run_console(
    cfg: BalanceConfig,
    source,
    *,
    participant: Optional[str] = None,
    task: Optional[str] = None,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
    data_root: Optional[Path] = None,
) -> int:
    """
    Run one interactive recording: connect, tare, listen, save.

    ``source`` must offer ``connect()`` on top of the sample source
    interface. Returns a process exit status.
    """
    cfg = cfg.sanitized()
    printer = ConsolePrinter(stdout)
    printer.line(BANNER)

    if participant is None:
        try:
            participant, task = parse_participant(stdin.readline(), cfg.task_durations)
        except ValueError as exc:
            printer.line(str(exc))
            return 2
    elif task is not None and task.lower() not in cfg.task_durations:
        printer.line(f"Unknown task {task!r}; expected one of: {', '.join(cfg.task_durations)}")
        return 2

    try:
        printer.line("Searching for balance board...")
        source.connect()
        printer.line("Connected!")
        handles = build_engine(
            cfg,
            participant,
            task,
            source=source,
            listener=printer.notice,
            data_root=data_root,
        )
    except DeviceError as exc:
        logger.error("Device error: %s", exc)
        printer.line(f"Error: {exc}")
        source.close()
        return 1
    except RecorderError as exc:
        logger.error("Cannot open trial file: %s", exc)
        printer.line(f"Error: {exc}")
        source.close()
        return 1

    controller = handles.controller
    controller.start()

    printer.line("Stabilizing... Please stand still.")
    if not controller.wait_closed(cfg.stabilize_seconds):
        controller.submit_command(Command(CommandKind.TARE))
        printer.line("Type 'go' to start streaming, 'stop' to pause, 'res' to reset CoP, and 'exit' to quit.")
        listener = threading.Thread(
            target=listen_for_commands,
            args=(controller, ConsoleCommandSource(stdin, printer.line)),
            name="ConsoleCommandListener",
            daemon=True,
        )
        listener.start()

    while not controller.wait_closed(cfg.idle_poll_seconds):
        pass
    controller.join(timeout=1.0)

    printer.line(f"Balance board released. Data saved to: {handles.output_path}")
    return 0
