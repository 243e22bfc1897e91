"""Lightweight SSH client wrapper for a remote balance board bridge."""

from __future__ import annotations

import logging
import shlex
import threading
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import paramiko

from ..core.errors import DeviceError

logger = logging.getLogger(__name__)


@dataclass
class Host:
    """Connection details for the machine the board is paired with."""

    name: str
    host: str
    user: str
    password: Optional[str] = None
    port: int = 22

    @classmethod
    def parse(cls, target: str, password: Optional[str] = None) -> "Host":
        """Build a host from ``user@host[:port]``."""
        user, sep, rest = target.partition("@")
        if not sep or not user or not rest:
            raise ValueError(f"Expected user@host[:port], got {target!r}")
        hostname, _, port = rest.partition(":")
        return cls(
            name=hostname,
            host=hostname,
            user=user,
            password=password,
            port=int(port) if port else 22,
        )


class SSHClient:
    """Simple wrapper around ``paramiko`` for streaming a remote command."""

    def __init__(self, host: Host) -> None:
        self.host = host
        self._client: paramiko.SSHClient = paramiko.SSHClient()
        self._client.load_system_host_keys()
        self._client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    def connect(self) -> None:
        transport = self._client.get_transport()
        if transport and transport.is_active():
            return

        logger.info(
            "Connecting to %s@%s:%s", self.host.user, self.host.host, self.host.port
        )

        self._client.connect(
            hostname=self.host.host,
            username=self.host.user,
            port=self.host.port,
            password=self.host.password,
            look_for_keys=self.host.password is None,
            allow_agent=self.host.password is None,
            timeout=10.0,
        )

    def close(self) -> None:
        try:
            self._client.close()
        except Exception:
            logger.exception("Error closing SSH connection to %s", self.host.host)

    def exec_stream(
        self,
        command: str,
        cwd: Optional[str] = None,
        encoding: str = "utf-8",
        errors: str = "ignore",
        stderr_callback: Optional[Callable[[str], None]] = None,
        close_client: bool = True,
    ) -> "RemoteLineStream":
        """
        Start ``command`` on the host and return its stdout as a line stream.

        Stderr lines go to ``stderr_callback`` when one is given. Closing the
        stream stops the remote process; with ``close_client`` the SSH
        connection is closed too. Raises :class:`DeviceError` when the SSH
        session cannot be set up (authentication, host key, protocol).
        """
        full_cmd = f"cd {shlex.quote(cwd)} && {command}" if cwd else command
        try:
            self.connect()
            stdin, stdout, stderr = self._client.exec_command(full_cmd)
        except paramiko.SSHException as exc:
            self.close()
            raise DeviceError(f"SSH to {self.host.user}@{self.host.host} failed: {exc}") from exc
        return RemoteLineStream(
            stdin,
            stdout,
            stderr,
            encoding=encoding,
            errors=errors,
            stderr_callback=stderr_callback,
            on_close=self.close if close_client else None,
        )


def _decode(raw, encoding: str, errors: str) -> str:
    if isinstance(raw, bytes):
        return raw.decode(encoding, errors=errors)
    return raw


class RemoteLineStream(Iterator[str]):
    """Non-empty stdout lines of a remote bridge; ``close()`` ends the channel."""

    def __init__(
        self,
        stdin,
        stdout,
        stderr,
        *,
        encoding: str = "utf-8",
        errors: str = "ignore",
        stderr_callback: Optional[Callable[[str], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._files = (stdout, stdin, stderr)
        self._stdout = stdout
        self._stderr = stderr
        self._encoding = encoding
        self._errors = errors
        self._stderr_callback = stderr_callback
        self._on_close = on_close
        self._closed = False
        if stderr_callback is not None:
            threading.Thread(target=self._watch_stderr, name="ssh-stderr", daemon=True).start()

    def __iter__(self) -> "RemoteLineStream":
        return self

    def __next__(self) -> str:
        while not self._closed:
            raw = self._stdout.readline()
            if not raw:
                self.close()
                break
            line = _decode(raw, self._encoding, self._errors).rstrip("\r\n")
            if line:
                return line
        raise StopIteration

    def _watch_stderr(self) -> None:
        try:
            while not self._closed:
                raw = self._stderr.readline()
                if not raw:
                    break
                text = _decode(raw, self._encoding, self._errors).rstrip("\r\n")
                if not text:
                    continue
                try:
                    self._stderr_callback(text)
                except Exception:
                    logger.exception("Error handling remote stderr line")
        except Exception:
            if not self._closed:
                logger.exception("Error reading remote stderr")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for stream in self._files:
            try:
                stream.close()
            except Exception:
                logger.debug("Ignoring error while closing SSH stream", exc_info=True)
        channel = getattr(self._stdout, "channel", None)
        if channel is not None:
            try:
                channel.close()
            except Exception:
                logger.debug("Ignoring error while closing SSH channel", exc_info=True)
        if self._on_close is not None:
            self._on_close()
