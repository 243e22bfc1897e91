"""Command-line entry point (``balancerec``)."""

from __future__ import annotations

import argparse
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Callable, Sequence

from .config import DEFAULT_CONFIG_PATH, BalanceConfig, load_config
from .sensors import LineSampleSource, ProcessLineStream, SyntheticSampleSource

logger = logging.getLogger(__name__)

DEFAULT_BRIDGE_CMD = os.environ.get("BALANCEREC_BRIDGE", "wiiboard-bridge --stream")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Record calibrated Wii Balance Board trials to CSV",
    )
    parser.add_argument(
        "participant",
        nargs="?",
        help="Participant name (prompted for when omitted)",
    )
    parser.add_argument(
        "task",
        nargs="?",
        help="Task type, e.g. simple or complex (default from config)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"YAML config file (default: {DEFAULT_CONFIG_PATH.name})",
    )
    parser.add_argument(
        "--source",
        choices=("bridge", "ssh", "synthetic"),
        default="bridge",
        help="Where board samples come from (default: bridge)",
    )
    parser.add_argument(
        "--bridge-cmd",
        default=DEFAULT_BRIDGE_CMD,
        help=f"Driver bridge command printing one reading per line (default: {DEFAULT_BRIDGE_CMD!r})",
    )
    parser.add_argument(
        "--ssh",
        metavar="USER@HOST[:PORT]",
        help="Run the bridge command on this host (with --source ssh)",
    )
    parser.add_argument(
        "--ssh-password",
        default=os.environ.get("BALANCEREC_SSH_PASSWORD"),
        help="SSH password (default: key/agent auth)",
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help="Directory trials are written under (default from config)",
    )
    parser.add_argument(
        "--gui",
        action="store_true",
        help="Open the Qt window instead of the console prompt",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default: INFO)",
    )
    return parser


def build_source_factory(args: argparse.Namespace, cfg: BalanceConfig) -> Callable[[], object]:
    """Return a zero-argument factory for the selected sample source."""
    if args.source == "synthetic":
        return lambda: SyntheticSampleSource(cfg.synthetic_rate_hz)

    command = shlex.split(args.bridge_cmd)
    if not command:
        raise ValueError("--bridge-cmd must not be empty")

    if args.source == "ssh":
        if not args.ssh:
            raise ValueError("--source ssh requires --ssh USER@HOST")
        from .remote import Host, SSHClient

        host = Host.parse(args.ssh, password=args.ssh_password)
        remote_cmd = " ".join(shlex.quote(part) for part in command)

        def _ssh_stream():
            client = SSHClient(host)
            return client.exec_stream(
                remote_cmd,
                stderr_callback=lambda text: logger.warning("[%s] %s", host.name, text),
            )

        return lambda: LineSampleSource(_ssh_stream, name=f"bridge@{host.name}")

    return lambda: LineSampleSource(lambda: ProcessLineStream(command), name="bridge")


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        cfg = load_config(args.config)
        if args.data_root is not None:
            cfg.data_root = str(args.data_root)
        source_factory = build_source_factory(args, cfg)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    if args.gui:
        from .gui.application import run_gui

        return run_gui(cfg, source_factory, [sys.argv[0]])

    from .console import run_console

    return run_console(
        cfg,
        source_factory(),
        participant=args.participant,
        task=args.task,
    )


if __name__ == "__main__":
    raise SystemExit(main())
