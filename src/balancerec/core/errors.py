"""Exception types raised by the acquisition engine and its collaborators."""

from __future__ import annotations


class DeviceError(RuntimeError):
    """The board is unreachable, disconnected, or not a balance board."""


class RecorderError(OSError):
    """A trial file could not be created, written, or flushed."""


class ProtocolError(Exception):
    """A command arrived in a state where it has no effect."""


class UnknownCommandError(ValueError):
    """Operator input that is not part of the command vocabulary."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Unknown command {text!r}")
        self.text = text
