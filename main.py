"""Application entrypoint."""

from __future__ import annotations

import logging
import sys

from auto_paste import ClipboardTextInjector
from config import JsonConfigStore
from errors import ERROR_MESSAGES
from history import JsonHistoryStore
from hotkey import ToggleHotkey
from logging_utils import setup_logging
from models import SessionState
from session_controller import SessionOrchestrator
from text_committer import IncrementalTextCommitter

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


STATE_COLORS = {
    SessionState.IDLE.value: "#888888",
    SessionState.CONNECTING.value: "#FFB000",
    SessionState.STREAMING.value: "#FF4444",
    SessionState.FINISHING.value: "#FFB000",
    SessionState.TEARING_DOWN.value: "#FFB000",
}

STATE_TIPS = {
    SessionState.IDLE.value: "Ready",
    SessionState.CONNECTING.value: "Connecting...",
    SessionState.STREAMING.value: "Listening...",
    SessionState.FINISHING.value: "Finishing...",
    SessionState.TEARING_DOWN.value: "Closing...",
}


class UIBridge(QObject):
    error_signal = Signal(str, str)  # code, message
    state_signal = Signal(str, str)  # from_state, to_state
    ready_signal = Signal()


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.history = JsonHistoryStore()
        self.ui = UIBridge()
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.ready_signal.connect(self._on_ready_ui)

        self.committer = IncrementalTextCommitter(
            injector=ClipboardTextInjector(),
            history=self.history,
        )
        self.controller = SessionOrchestrator(
            config=self.config_store,
            committer=self.committer,
            on_state_change=self._on_state_change,
            on_error=self._on_error,
            on_ready=self._on_ready,
        )
        self.hotkey = ToggleHotkey(hotkey_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(STATE_COLORS[SessionState.IDLE.value]))
        self.tray.setToolTip("VoiceNow: Ready")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved, it applies to the next session.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Hotkey", "Use pynput key format, e.g. Key.cmd_r"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(code, message)

    def _on_ready(self) -> None:
        self.ui.ready_signal.emit()

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_error_ui(self, code: str, message: str) -> None:
        title = ERROR_MESSAGES.get(code, "Error")
        self.tray.showMessage(title, message, QSystemTrayIcon.Warning, 3000)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        self.tray.setIcon(_create_icon(STATE_COLORS.get(to_state, "#888888")))
        self.tray.setToolTip(f"VoiceNow: {STATE_TIPS.get(to_state, to_state)}")

    def _on_ready_ui(self) -> None:
        QApplication.beep()
        self.tray.showMessage("VoiceNow", "Listening, start speaking", QSystemTrayIcon.Information, 1500)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(on_toggle=self.controller.toggle)
        except Exception as exc:
            logger.error("hotkey disabled: %s", exc)
            self.tray.showMessage("Hotkey disabled", str(exc), QSystemTrayIcon.Warning, 3000)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.cancel_session("app quit")
        self.controller.flush(timeout=1.0)
        self.controller.wait_idle(timeout=2.0)
        self.controller.close()
        self.app.quit()


def main() -> int:
    _, log_path = setup_logging()
    logger.info("starting, logging to %s", log_path)
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
