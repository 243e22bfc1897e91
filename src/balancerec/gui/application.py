"""Qt application entry point for the balance recorder GUI.

``balancerec --gui`` and ``python -m balancerec.gui.application`` both end
up in :func:`run_gui`, which builds the :class:`MainWindow` and runs the
Qt event loop.
"""

from __future__ import annotations

import sys
from typing import Callable, Tuple

from PySide6.QtCore import QLoggingCategory
from PySide6.QtWidgets import QApplication

from ..config import BalanceConfig, load_config
from ..sensors import SyntheticSampleSource
from .main_window import MainWindow


def create_app(
    config: BalanceConfig,
    source_factory: Callable[[], object],
    argv: list[str] | None = None,
) -> Tuple[QApplication, MainWindow]:
    """
    Create the QApplication and main recorder window.

    Returns
    -------
    app:
        The QApplication instance (owned by caller).
    window:
        The main window, not yet shown.
    """
    qt_args = argv if argv is not None else sys.argv
    app = QApplication.instance() or QApplication(qt_args)

    # Suppress noisy QObject::connect warnings from QStyleHints and similar internals
    QLoggingCategory.setFilterRules("qt.core.qobject.connect=false")

    window = MainWindow(config, source_factory)
    return app, window


def run_gui(
    config: BalanceConfig,
    source_factory: Callable[[], object],
    argv: list[str] | None = None,
) -> int:
    app, window = create_app(config, source_factory, argv)
    window.show()
    return int(app.exec())


def main(argv: list[str] | None = None) -> None:
    config = load_config()
    raise SystemExit(
        run_gui(config, lambda: SyntheticSampleSource(config.synthetic_rate_hz), argv)
    )


if __name__ == "__main__":
    main()
