"""Operator command vocabulary shared by every front-end."""

from __future__ import annotations

from typing import Dict

from .errors import UnknownCommandError
from .models import Command, CommandKind

COMMAND_WORDS: Dict[str, CommandKind] = {
    "go": CommandKind.START,
    "start": CommandKind.START,
    "stop": CommandKind.STOP,
    "res": CommandKind.RESET_COP,
    "reset": CommandKind.RESET_COP,
    "reset-cop": CommandKind.RESET_COP,
    "tare": CommandKind.TARE,
    "exit": CommandKind.EXIT,
    "quit": CommandKind.EXIT,
}

USAGE = "Use 'go', 'stop', 'res', 'tare', or 'exit'."


def parse_command(text: str) -> Command:
    """
    Parse one line of operator input (case-insensitive).

    ``start``/``go`` take an optional task name (``go complex``); every other
    word must stand alone. Raises :class:`UnknownCommandError` otherwise.
    """
    parts = text.strip().lower().split()
    if not parts:
        raise UnknownCommandError(text)
    kind = COMMAND_WORDS.get(parts[0])
    if kind is None:
        raise UnknownCommandError(text)
    if kind is CommandKind.START and len(parts) == 2:
        return Command(kind, task=parts[1])
    if len(parts) != 1:
        raise UnknownCommandError(text)
    return Command(kind)
