from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, QTimer, Signal, Slot
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QComboBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ..config import BalanceConfig
from ..core.engine_wiring import EngineHandles, build_engine
from ..core.errors import DeviceError, RecorderError
from ..core.models import Command, CommandKind, EngineNotice, EngineState, NoticeLevel

logger = logging.getLogger(__name__)


class NoticeBridge(QObject):
    """Moves engine notices from the controller thread onto the GUI thread."""

    notice = Signal(object)

    def emit_notice(self, notice: EngineNotice) -> None:
        self.notice.emit(notice)


class MainWindow(QMainWindow):
    """
    Participant/task form plus Connect, Start, Stop, Reset CoP and Exit.

    The window only translates button presses into commands and renders
    notices; all recording state lives in the session controller.
    """

    def __init__(
        self,
        config: BalanceConfig,
        source_factory: Callable[[], object],
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Balance Board Recorder")
        self._config = config.sanitized()
        self._source_factory = source_factory
        self._handles: Optional[EngineHandles] = None
        self._bridge = NoticeBridge(self)
        self._bridge.notice.connect(self._on_notice)

        central = QWidget(self)
        layout = QVBoxLayout(central)

        form = QFormLayout()
        self.name_edit = QLineEdit()
        self.name_edit.setPlaceholderText("Participant name")
        form.addRow("Participant:", self.name_edit)
        self.task_combo = QComboBox()
        self.task_combo.addItems(list(self._config.task_durations))
        self.task_combo.setCurrentText(self._config.default_task)
        form.addRow("Task type:", self.task_combo)
        layout.addLayout(form)

        buttons = QHBoxLayout()
        self.connect_button = QPushButton("Connect")
        self.start_button = QPushButton("Start")
        self.stop_button = QPushButton("Stop")
        self.reset_button = QPushButton("Reset CoP")
        self.exit_button = QPushButton("Exit")
        for button in (
            self.connect_button,
            self.start_button,
            self.stop_button,
            self.reset_button,
            self.exit_button,
        ):
            buttons.addWidget(button)
        layout.addLayout(buttons)

        self.status_label = QLabel("Enter participant name and select task type.")
        layout.addWidget(self.status_label)

        self.log_view = QPlainTextEdit()
        self.log_view.setReadOnly(True)
        self.log_view.setMaximumBlockCount(500)
        layout.addWidget(self.log_view)

        self.setCentralWidget(central)

        self.connect_button.clicked.connect(self._on_connect_clicked)
        self.start_button.clicked.connect(lambda: self._submit(CommandKind.START))
        self.stop_button.clicked.connect(lambda: self._submit(CommandKind.STOP))
        self.reset_button.clicked.connect(lambda: self._submit(CommandKind.RESET_COP))
        self.exit_button.clicked.connect(self.close)

        self._update_buttons(EngineState.DISCONNECTED)

    # --------------------------------------------------------------- actions
    @Slot()
    def _on_connect_clicked(self) -> None:
        participant = self.name_edit.text().strip()
        task = self.task_combo.currentText()
        if not participant or not task:
            QMessageBox.warning(self, "Missing details", "Enter participant name and select task type.")
            return

        self.status_label.setText("Searching for balance board...")
        source = self._source_factory()
        try:
            source.connect()
            self._handles = build_engine(
                self._config,
                participant,
                task,
                source=source,
                listener=self._bridge.emit_notice,
            )
        except (DeviceError, RecorderError) as exc:
            logger.error("Connect failed: %s", exc)
            source.close()
            self.status_label.setText("Not connected.")
            QMessageBox.critical(self, "Connection failed", str(exc))
            return

        self._handles.controller.start()
        self._update_buttons(EngineState.CONNECTED)
        self.status_label.setText("Connected! Stabilizing... Please stand still.")
        QTimer.singleShot(int(self._config.stabilize_seconds * 1000), self._tare)

    @Slot()
    def _tare(self) -> None:
        self._submit(CommandKind.TARE)

    def _submit(self, kind: CommandKind) -> None:
        if self._handles is None:
            return
        self._handles.controller.submit_command(Command(kind))

    @Slot(object)
    def _on_notice(self, notice: EngineNotice) -> None:
        prefix = {NoticeLevel.WARNING: "Warning: ", NoticeLevel.ERROR: "Error: "}.get(notice.level, "")
        self.log_view.appendPlainText(prefix + notice.message)
        if notice.state is EngineState.STREAMING and self._handles is not None:
            hz = self._handles.controller.sample_rate_hz
            self.status_label.setText(f"{notice.message} (board ~{hz:.0f} Hz)" if hz > 0 else notice.message)
        else:
            self.status_label.setText(notice.message)
        self._update_buttons(notice.state)
        if notice.level is NoticeLevel.ERROR and notice.state is EngineState.SHUTDOWN:
            QMessageBox.warning(self, "Recording stopped", notice.message)

    def _update_buttons(self, state: EngineState) -> None:
        attached = state not in (EngineState.DISCONNECTED, EngineState.SHUTDOWN)
        self.connect_button.setEnabled(not attached)
        self.name_edit.setEnabled(not attached)
        self.task_combo.setEnabled(not attached)
        self.start_button.setEnabled(state is EngineState.IDLE)
        self.stop_button.setEnabled(state is EngineState.STREAMING)
        self.reset_button.setEnabled(attached)
        if state is EngineState.SHUTDOWN and self._handles is not None:
            self.status_label.setText(f"Data saved to: {self._handles.output_path}")
            self._handles = None

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802 - Qt override
        handles = self._handles
        if handles is not None:
            handles.controller.request_exit()
            if not handles.controller.wait_closed(2.0):
                logger.warning("Session controller did not shut down within 2 s")
        super().closeEvent(event)
