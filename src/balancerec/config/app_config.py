"""Default application paths."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class AppPaths:
    """
    Where trial files go by default.

    ``BALANCEREC_DATA_ROOT`` overrides the ``data`` folder, which is relative
    to the working directory so trials land next to wherever the operator
    launched the program. The folder itself is created on first recording.
    """

    base_dir: Path = field(default_factory=Path.cwd)
    data_root: Path = field(init=False)

    def __post_init__(self) -> None:
        env_data_root = os.environ.get("BALANCEREC_DATA_ROOT")
        if env_data_root:
            self.data_root = Path(env_data_root).expanduser()
        else:
            self.data_root = Path(self.base_dir) / "data"
