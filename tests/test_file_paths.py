from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from balancerec.dataio.file_paths import sanitize_participant_name, trial_file_path


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("John", "John"),
        ("  Maria  ", "Maria"),
        ("Ana María", "Ana_Mar_a"),
        ("../etc/passwd", "etc_passwd"),
        ("...", "participant"),
        ("", "participant"),
    ],
)
def test_sanitize_participant_name(raw, expected) -> None:
    assert sanitize_participant_name(raw) == expected


def test_trial_file_path_layout(tmp_path: Path) -> None:
    started = datetime(2024, 3, 9, 14, 5, 7)
    path = trial_file_path("John", "Simple", started=started, base=tmp_path)
    assert path == tmp_path / "John" / "BalanceBoardData_simple_20240309_140507.csv"
    assert not path.parent.exists()


def test_trial_file_path_uses_data_root_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BALANCEREC_DATA_ROOT", str(tmp_path))
    path = trial_file_path("maria", "complex", started=datetime(2024, 1, 1))
    assert path.parent == tmp_path / "maria"
    assert path.name == "BalanceBoardData_complex_20240101_000000.csv"
