"""Runtime configuration for the acquisition engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping

import yaml

from ..core.models import TaskKind

DEFAULT_CONFIG_PATH = Path(__file__).resolve().with_name("balance.yaml")

WRITE_ERROR_POLICIES = ("drop", "stop")


def _default_durations() -> Dict[str, float]:
    return {"simple": 60.0, "complex": 39.0}


@dataclass(slots=True)
class BalanceConfig:
    """
    Tuning knobs for a recording run.

    The defaults reproduce the lab protocol: 60 s simple trials, 39 s
    complex trials, a 2 s stabilisation pause before the automatic tare.
    """

    task_durations: Dict[str, float] = field(default_factory=_default_durations)
    default_task: str = "simple"
    data_root: str = ""
    fsync: bool = True
    on_write_error: str = "drop"

    stabilize_seconds: float = 2.0
    synthetic_rate_hz: float = 60.0

    idle_poll_seconds: float = 0.1
    rate_window: int = 120

    def sanitized(self) -> BalanceConfig:
        """Return a copy with derived limits applied."""
        durations: Dict[str, float] = {}
        for name, seconds in (self.task_durations or {}).items():
            key = str(name).strip().lower()
            if key:
                durations[key] = max(0.001, float(seconds))
        if not durations:
            durations = _default_durations()

        default_task = str(self.default_task or "").strip().lower()
        if default_task not in durations:
            default_task = next(iter(durations))

        policy = str(self.on_write_error or "").strip().lower()
        if policy not in WRITE_ERROR_POLICIES:
            policy = "drop"

        return BalanceConfig(
            task_durations=durations,
            default_task=default_task,
            data_root=str(self.data_root or ""),
            fsync=bool(self.fsync),
            on_write_error=policy,
            stabilize_seconds=max(0.0, float(self.stabilize_seconds)),
            synthetic_rate_hz=max(1.0, float(self.synthetic_rate_hz)),
            idle_poll_seconds=min(1.0, max(0.01, float(self.idle_poll_seconds))),
            rate_window=max(2, int(self.rate_window)),
        )

    def task_table(self) -> Dict[str, TaskKind]:
        """Map task names to :class:`TaskKind` entries."""
        return {name: TaskKind(name, seconds) for name, seconds in self.task_durations.items()}

    def task(self, name: str | None = None) -> TaskKind:
        key = (name or self.default_task).strip().lower()
        try:
            return TaskKind(key, self.task_durations[key])
        except KeyError:
            known = ", ".join(sorted(self.task_durations))
            raise ValueError(f"Unknown task {name!r}; expected one of: {known}") from None


def _recognized_fields() -> set[str]:
    """Return the dataclass field names accepted by :class:`BalanceConfig`."""
    return {f.name for f in fields(BalanceConfig)}


def _normalize_mapping(data: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Flatten the ``recording``/``device``/``engine`` sections into one mapping."""
    merged: MutableMapping[str, Any] = {}
    for key, value in data.items():
        if key in {"recording", "device", "engine"} and isinstance(value, Mapping):
            merged.update(value)
        else:
            merged[key] = value
    return merged


def config_from_mapping(data: Mapping[str, Any] | None) -> BalanceConfig:
    """Build :class:`BalanceConfig` from ``data`` (ignoring unknown keys)."""
    if not data:
        return BalanceConfig().sanitized()
    normalized = _normalize_mapping(data)
    known = _recognized_fields()
    payload = {key: normalized[key] for key in normalized.keys() & known}
    durations = payload.get("task_durations")
    if durations is not None and not isinstance(durations, Mapping):
        raise ValueError(f"task_durations must be a mapping, got {type(durations).__name__}")
    return BalanceConfig(**payload).sanitized()


def load_config(path: str | Path | None = None) -> BalanceConfig:
    """
    Load configuration from ``path`` (the bundled ``balance.yaml`` by default).

    Missing files fall back to default :class:`BalanceConfig`.
    """
    cfg_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        return BalanceConfig().sanitized()
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected mapping in {cfg_path}, got {type(raw).__name__}")
    return config_from_mapping(raw)


__all__ = ["BalanceConfig", "DEFAULT_CONFIG_PATH", "config_from_mapping", "load_config"]
