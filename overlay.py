"""Overlay window showing the live transcript."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt
    from PySide6.QtWidgets import QApplication, QLabel, QWidget, QVBoxLayout
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QWidget = object  # type: ignore
    QVBoxLayout = object  # type: ignore

_BASE_STYLE = "font-size: 22px; padding: 16px; border-radius: 12px;"
_STYLES = {
    "text": f"color: white; background: rgba(0,0,0,190); {_BASE_STYLE}",
    "hint": f"color: #B0B0B0; background: rgba(0,0,0,160); {_BASE_STYLE}",
    "error": f"color: #FF6B6B; background: rgba(0,0,0,210); {_BASE_STYLE}",
}


class TranscriptOverlay(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(640)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setAlignment(Qt.AlignCenter)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        self.setLayout(layout)

        self._shown: tuple[str, str] | None = None

    def _center_bottom(self) -> None:
        """Position the window near the bottom center of the primary screen."""
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + geom.height() - self.height() - 80
        self.move(x, y)

    def show_transcript(self, text: str) -> None:
        self._render(text, "text")

    def show_hint(self, text: str) -> None:
        self._render(text, "hint")

    def show_error(self, text: str) -> None:
        self._render(f"⚠️ {text}", "error")

    def _render(self, text: str, style: str) -> None:
        # Same text and style as on screen: skip the repaint to avoid flicker.
        if self._shown == (text, style):
            return
        self._shown = (text, style)
        self._label.setStyleSheet(_STYLES[style])
        self._label.setText(text)
        self._center_bottom()
        self.show()
