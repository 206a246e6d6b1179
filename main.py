"""Application entrypoint."""

from __future__ import annotations

import asyncio
import sys
import threading
from concurrent.futures import Future
from typing import Any, Callable, Coroutine

from loguru import logger

from camera import Cv2CameraDevice
from clipboard import PyperclipClipboard
from config import JsonConfigStore
from hotkey import GlobalHotkeyAdapter
from models import Notification, SessionState, Severity
from overlay import TranscriptOverlay
from recognizer import DashscopeRecognizerAdapter
from session_controller import SessionController, describe_error

try:
    from PySide6.QtCore import QObject, Signal, QSize
    from PySide6.QtGui import QAction, QIcon, QPixmap, QPainter, QColor, QBrush
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


STATE_ICONS = {
    SessionState.IDLE.value: "#888888",       # grey
    SessionState.ACQUIRING.value: "#3B82F6",  # blue
    SessionState.ACTIVE.value: "#22C55E",     # green
    SessionState.FAILED.value: "#FF8800",     # orange
}

STATE_TOOLTIPS = {
    SessionState.IDLE.value: "SignText — Camera off",
    SessionState.ACQUIRING.value: "SignText — Initializing camera...",
    SessionState.ACTIVE.value: "SignText — Recognizing signs",
    SessionState.FAILED.value: "SignText — Camera error",
}

SEVERITY_ICONS = {
    Severity.INFO.value: QSystemTrayIcon.MessageIcon.Information,
    Severity.WARNING.value: QSystemTrayIcon.MessageIcon.Warning,
    Severity.ERROR.value: QSystemTrayIcon.MessageIcon.Critical,
}


def setup_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level,
    )


class EventLoopThread:
    """Runs the asyncio loop that owns the SessionController."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="signtext-loop", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(self._log_failure)
        return future

    def call(self, fn: Callable[..., Any], *args: Any) -> None:
        self.loop.call_soon_threadsafe(fn, *args)

    def stop(self, timeout_s: float = 2.0) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout_s)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Background task failed: {exc}")


class UIBridge(QObject):
    state_signal = Signal(str, str)  # to_state, error message
    transcript_signal = Signal(str)
    notify_signal = Signal(str, str, str)  # title, description, severity
    busy_signal = Signal(bool)


class App:
    def __init__(self) -> None:
        setup_logging()
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.overlay = TranscriptOverlay()
        self.ui = UIBridge()
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.transcript_signal.connect(self._on_transcript_ui)
        self.ui.notify_signal.connect(self._on_notify_ui)
        self.ui.busy_signal.connect(self._on_busy_ui)

        self._state = SessionState.IDLE.value
        self._transcript = ""
        self._busy = False
        self._paused = False

        self.runner = EventLoopThread()
        self.controller = SessionController(
            camera=Cv2CameraDevice(index=self.config_store.get_camera_index()),
            recognizer=DashscopeRecognizerAdapter(
                api_key=self.config_store.get_api_key(),
                model=self.config_store.get_model(),
            ),
            clipboard=PyperclipClipboard(),
            interval_s=self.config_store.get_interval_ms() / 1000.0,
            constraints=self.config_store.get_constraints(),
            on_state_change=self._on_state_change,
            on_transcript=self._on_transcript,
            on_notify=self._on_notify,
            on_busy_change=self._on_busy_change,
        )
        self.hotkey = GlobalHotkeyAdapter()
        self.hotkey.bind(self.config_store.get_hotkey(), self.toggle_camera)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(STATE_ICONS[self._state]))
        self.tray.setToolTip(STATE_TOOLTIPS[self._state])
        self._setup_menu()
        self.tray.show()
        self.overlay.show_hint("Camera is off. Use the tray menu to start.")

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.start_action = QAction("Start Camera", menu)
        self.start_action.triggered.connect(self.start_camera)
        menu.addAction(self.start_action)

        self.stop_action = QAction("Stop Camera", menu)
        self.stop_action.triggered.connect(self.stop_camera)
        menu.addAction(self.stop_action)

        self.pause_action = QAction("Pause Recognition", menu)
        self.pause_action.triggered.connect(self._toggle_pause)
        menu.addAction(self.pause_action)

        menu.addSeparator()
        self.clear_action = QAction("Clear Transcript", menu)
        self.clear_action.triggered.connect(self._clear_transcript)
        menu.addAction(self.clear_action)

        self.copy_action = QAction("Copy Transcript", menu)
        self.copy_action.triggered.connect(self._copy_transcript)
        menu.addAction(self.copy_action)

        menu.addSeparator()
        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        interval_action = QAction("Set Interval", menu)
        interval_action.triggered.connect(self._set_interval)
        menu.addAction(interval_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self._menu = menu
        self.tray.setContextMenu(menu)
        self._refresh_actions()

    def _refresh_actions(self) -> None:
        stopped = self._state in (SessionState.IDLE.value, SessionState.FAILED.value)
        self.start_action.setEnabled(stopped)
        self.stop_action.setEnabled(self._state != SessionState.IDLE.value)
        self.pause_action.setEnabled(self._state == SessionState.ACTIVE.value)
        self.pause_action.setText("Resume Recognition" if self._paused else "Pause Recognition")
        editable = bool(self._transcript) and not self._busy
        self.clear_action.setEnabled(editable)
        self.copy_action.setEnabled(editable)

    # ------------------------------------------------------------------
    # Menu / hotkey commands (forwarded to the event loop thread)
    # ------------------------------------------------------------------

    def start_camera(self) -> None:
        self.runner.submit(self.controller.start())

    def stop_camera(self) -> None:
        self.runner.call(self.controller.stop)

    def toggle_camera(self) -> None:
        if self._state in (SessionState.IDLE.value, SessionState.FAILED.value):
            self.start_camera()
        else:
            self.stop_camera()

    def _toggle_pause(self) -> None:
        self._paused = not self._paused
        self.runner.call(self.controller.pause if self._paused else self.controller.resume)
        self._refresh_actions()

    def _clear_transcript(self) -> None:
        self.runner.call(self.controller.clear_transcript)

    def _copy_transcript(self) -> None:
        self.runner.submit(self.controller.copy_transcript())

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        recognizer = DashscopeRecognizerAdapter(api_key=value, model=self.config_store.get_model())
        self.runner.call(self.controller.replace_recognizer, recognizer)
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    def _set_interval(self) -> None:
        value, ok = QInputDialog.getInt(
            None,
            "Interval",
            "Recognition interval (ms)",
            self.config_store.get_interval_ms(),
            500,
            60000,
            500,
        )
        if not ok:
            return
        self.config_store.set_interval_ms(value)
        self.runner.call(self.controller.set_interval, self.config_store.get_interval_ms() / 1000.0)

    # ------------------------------------------------------------------
    # Callbacks (called from the event loop thread → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(to_state.value, describe_error(self.controller.error))

    def _on_transcript(self, text: str) -> None:
        self.ui.transcript_signal.emit(text)

    def _on_notify(self, notification: Notification) -> None:
        self.ui.notify_signal.emit(
            notification.title, notification.description, notification.severity.value
        )

    def _on_busy_change(self, busy: bool) -> None:
        self.ui.busy_signal.emit(busy)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, to_state: str, error: str) -> None:
        self._state = to_state
        self._paused = False
        self.tray.setIcon(_create_icon(STATE_ICONS[to_state]))
        self.tray.setToolTip(STATE_TOOLTIPS[to_state])
        self._render_overlay(error)
        self._refresh_actions()

    def _on_transcript_ui(self, text: str) -> None:
        self._transcript = text
        self._render_overlay()
        self._refresh_actions()

    def _on_busy_ui(self, busy: bool) -> None:
        self._busy = busy
        self._refresh_actions()

    def _on_notify_ui(self, title: str, description: str, severity: str) -> None:
        self.tray.showMessage(title, description, SEVERITY_ICONS[severity], 4000)

    def _render_overlay(self, error: str = "") -> None:
        if self._state == SessionState.ACQUIRING.value:
            self.overlay.show_hint("Initializing Camera...")
        elif self._state == SessionState.FAILED.value:
            self.overlay.show_error(error or "Camera error")
        elif self._transcript:
            self.overlay.show_transcript(self._transcript)
        elif self._state == SessionState.ACTIVE.value:
            self.overlay.show_hint("Actively recognizing signs...")
        else:
            self.overlay.show_hint("Camera is off. Use the tray menu to start.")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.runner.start()
        try:
            self.hotkey.start()
        except Exception as exc:
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        if self.config_store.get_auto_start():
            self.start_camera()
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        done = threading.Event()

        def _teardown() -> None:
            try:
                self.controller.close()
            finally:
                done.set()

        self.runner.call(_teardown)
        done.wait(timeout=2.0)
        self.runner.stop()
        self.app.quit()


def main() -> int:
    try:
        app = App()
        return app.run()
    except Exception as e:
        logger.exception(f"Application error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
