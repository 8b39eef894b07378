"""Floating status window: mic level, last line of the conversation."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QProgressBar, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QProgressBar = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

_LABEL_STYLE = (
    "color: {color}; font-size: 16px; padding: 12px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)


def level_color(level: float) -> str:
    if level > 70:
        return "#EF4444"
    if level > 40:
        return "#EAB308"
    return "#22C55E"


class StatusOverlay(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(520)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setStyleSheet(_LABEL_STYLE.format(color="white"))

        self._meter = QProgressBar()
        self._meter.setRange(0, 100)
        self._meter.setTextVisible(False)
        self._meter.setFixedHeight(6)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        layout.addWidget(self._meter)
        self.setLayout(layout)

        self._hide_timer: QTimer | None = None

    def _place_top_center(self) -> None:
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        self.move(geom.x() + (geom.width() - self.width()) // 2, geom.y() + 40)

    def set_level(self, level: float) -> None:
        self._meter.setValue(int(round(level)))
        self._meter.setStyleSheet(
            f"QProgressBar::chunk {{ background: {level_color(level)}; border-radius: 3px; }}"
        )

    def set_text(self, text: str) -> None:
        self._cancel_hide_timer()
        self._label.setStyleSheet(_LABEL_STYLE.format(color="white"))
        self._label.setText(text)
        self._place_top_center()
        self.show()

    def show_error(self, text: str, hide_after_ms: int = 4000) -> None:
        self.set_text(f"⚠️ {text}")
        self._label.setStyleSheet(_LABEL_STYLE.format(color="#FF6B6B"))
        self.hide_with_delay(hide_after_ms)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._cancel_hide_timer()
        if QTimer is not None:
            self._hide_timer = QTimer()
            self._hide_timer.setSingleShot(True)
            self._hide_timer.timeout.connect(self.hide)
            self._hide_timer.start(delay_ms)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
