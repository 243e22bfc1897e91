"""Configuration objects and helpers for the balance recorder.

This package loads the YAML descriptor that captures the lab protocol
(task durations, stabilisation delay, write-failure policy) into the typed
:class:`BalanceConfig` dataclass, and :mod:`app_config` resolves the data
directories trial files are written under.
"""

from .app_config import AppPaths
from .runtime import DEFAULT_CONFIG_PATH, BalanceConfig, config_from_mapping, load_config

__all__ = ["AppPaths", "BalanceConfig", "DEFAULT_CONFIG_PATH", "config_from_mapping", "load_config"]
