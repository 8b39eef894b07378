"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor

from config import JsonConfigStore
from conversation import ConversationPipeline, report_failures
from dashscope_client import DashscopeChatClient, DashscopeTranscriber
from errors import ERROR_MESSAGES, INIT_FAILED, RetryExhausted, VoiceCloneError
from hotkey import HoldToSpeakKey
from initializer import VoiceInitializer
from listener import ListeningSession
from models import (
    AudioSample,
    LevelReading,
    Message,
    RecordingState,
    RetryState,
    TrainingCompleted,
    TrainingLogEntry,
    VoiceIdentity,
)
from overlay import StatusOverlay
from playback import SoundDevicePlayer
from recorder import SoundDeviceRecorder, find_input_device
from recording_controller import RecordingController
from training import MAX_TRAINING_SESSIONS, TrainingOrchestrator
from voice_client import DEFAULT_VOICE, ElevenLabsClient
from voice_store import JsonVoiceStore

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger("voiceclone.main")


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


ICON_IDLE = "#888888"       # grey
ICON_LISTENING = "#22C55E"  # green
ICON_RECORDING = "#FF4444"  # red
ICON_ERROR = "#FF8800"      # orange


class UIBridge(QObject):
    level_signal = Signal(float)
    text_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str)
    confirm_signal = Signal(str)
    tooltip_signal = Signal(str)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.overlay = StatusOverlay()
        self.ui = UIBridge()
        self.ui.level_signal.connect(self.overlay.set_level)
        self.ui.text_signal.connect(self.overlay.set_text)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_ui)
        self.ui.confirm_signal.connect(self._ask_confirmation_ui)
        self.ui.tooltip_signal.connect(lambda text: self.tray.setToolTip(text))

        self.playback = SoundDevicePlayer()
        self.voice_client = ElevenLabsClient(api_key=self.config_store.get_elevenlabs_api_key())
        self.store = JsonVoiceStore(self.config_store.get_user_id())
        self.orchestrator = TrainingOrchestrator(
            trainer=self.voice_client,
            store=self.store,
            active_identity=DEFAULT_VOICE,
            on_training_completed=self._on_training_completed,
            on_confirmation_required=self._on_confirmation_required,
            on_identity_changed=self._on_identity_changed,
            on_log=self._on_training_log,
        )
        self.controller = RecordingController(
            playback=self.playback,
            session_index=lambda: self.orchestrator.session_index,
            on_sample=self._on_sample,
            on_state_change=self._on_recording_state,
            on_error=self._on_error,
        )
        self.recorder = SoundDeviceRecorder()
        self.listener = ListeningSession(
            self.recorder,
            self.controller,
            on_level=self._on_level,
            on_error=self._on_error,
        )
        self.pipeline = self._build_pipeline()
        self.initializer = VoiceInitializer(
            trainer=self.voice_client,
            store=self.store,
            check_device=self._check_device,
        )
        self.turns = ThreadPoolExecutor(max_workers=1, thread_name_prefix="turn")
        self.sample_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sample-store")
        self.hotkey = HoldToSpeakKey(key_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Voice Clone — Starting...")
        self._setup_menu()
        self.tray.show()

    def _build_pipeline(self) -> ConversationPipeline:
        api_key = self.config_store.get_dashscope_api_key()
        return ConversationPipeline(
            transcriber=DashscopeTranscriber(api_key=api_key),
            chat=DashscopeChatClient(api_key=api_key),
            speech=self.voice_client,
            playback=self.playback,
            orchestrator=self.orchestrator,
            is_recording=lambda: self.controller.state != RecordingState.IDLE,
            on_message=self._on_message,
            on_error=self._on_error,
        )

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.listen_action = QAction("Stop Listening", menu)
        self.listen_action.triggered.connect(self._toggle_listening)
        menu.addAction(self.listen_action)

        reset_action = QAction("Reset Voice Service", menu)
        reset_action.triggered.connect(self._reset)
        menu.addAction(reset_action)

        menu.addSeparator()
        for label, handler in (
            ("Set DashScope API Key", self._set_dashscope_key),
            ("Set ElevenLabs API Key", self._set_elevenlabs_key),
            ("Set Hold-to-Speak Key", self._set_hotkey),
        ):
            action = QAction(label, menu)
            action.triggered.connect(handler)
            menu.addAction(action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    # ------------------------------------------------------------------
    # Start-up
    # ------------------------------------------------------------------

    def _check_device(self) -> None:
        self.recorder.device = find_input_device(self.config_store.get_input_device())

    def _initialize(self) -> None:
        try:
            identity = self.initializer.initialize(on_retry=self._on_init_retry)
        except RetryExhausted:
            self.ui.state_signal.emit("error")
            self.ui.error_signal.emit(ERROR_MESSAGES[INIT_FAILED])
            return
        self.orchestrator.set_active_identity(identity)
        self.ui.text_signal.emit(f"Using voice: {identity.name}")
        self._submit(self.turns, self.pipeline.welcome)
        self._start_listening()

    def _on_init_retry(self, state: RetryState, delay: float, exc: BaseException) -> None:
        self.ui.error_signal.emit(f"Initialization failed. Retrying in {delay:.0f} seconds...")

    def _start_listening(self) -> None:
        try:
            self.listener.start()
        except VoiceCloneError:
            self.ui.state_signal.emit("error")
            return
        self.ui.state_signal.emit("listening")

    # ------------------------------------------------------------------
    # Callbacks (worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_level(self, reading: LevelReading) -> None:
        self.ui.level_signal.emit(reading.level)

    def _on_recording_state(self, from_state: RecordingState, to_state: RecordingState) -> None:
        if to_state == RecordingState.RECORDING:
            self.ui.state_signal.emit("recording")
        elif to_state == RecordingState.IDLE and self.listener.active:
            self.ui.state_signal.emit("listening")

    def _on_sample(self, sample: AudioSample) -> None:
        # runs on the tick thread; backlog I/O goes to its own worker
        self._submit(self.sample_worker, self.orchestrator.add_sample, sample)
        self._submit(self.turns, self.pipeline.process_sample, sample)

    def _submit(self, executor: ThreadPoolExecutor, fn, *args) -> None:
        future = executor.submit(fn, *args)
        future.add_done_callback(report_failures(self._on_error))

    def _on_message(self, message: Message) -> None:
        prefix = "You" if message.role == "user" else "Guenka"
        self.ui.text_signal.emit(f"{prefix}: {message.content}")

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(f"{code}: {message}")

    def _on_training_completed(self, event: TrainingCompleted) -> None:
        self._submit(self.turns, self.pipeline.handle_training_completed, event)

    def _on_confirmation_required(self, identity: VoiceIdentity) -> None:
        self.ui.confirm_signal.emit(identity.name)

    def _on_identity_changed(self, identity: VoiceIdentity) -> None:
        self.ui.text_signal.emit(f"Now using voice: {identity.name}")

    def _on_training_log(self, entry: TrainingLogEntry) -> None:
        done = self.orchestrator.completed_sessions
        self.ui.tooltip_signal.emit(
            f"Voice Clone — Training {done}/{MAX_TRAINING_SESSIONS}: {entry.message}"
        )

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_error_ui(self, msg: str) -> None:
        self.overlay.show_error(msg)

    def _on_state_ui(self, state: str) -> None:
        if state == "recording":
            self.tray.setIcon(_create_icon(ICON_RECORDING))
            self.tray.setToolTip("Voice Clone — Recording...")
        elif state == "listening":
            self.tray.setIcon(_create_icon(ICON_LISTENING))
            self.tray.setToolTip("Voice Clone — Listening")
            self.listen_action.setText("Stop Listening")
        elif state == "stopped":
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("Voice Clone — Paused")
            self.listen_action.setText("Start Listening")
            self.overlay.hide_with_delay(400)
        elif state == "error":
            self.tray.setIcon(_create_icon(ICON_ERROR))
            self.listen_action.setText("Start Listening")

    def _ask_confirmation_ui(self, voice_name: str) -> None:
        if not self.orchestrator.awaiting_confirmation:
            return
        answer = QMessageBox.question(
            None,
            "Your voice is ready",
            f"{voice_name} is trained. Start speaking with your voice now?",
        )
        if answer == QMessageBox.Yes:
            self.orchestrator.confirm_switch()

    # ------------------------------------------------------------------
    # Menu actions
    # ------------------------------------------------------------------

    def _toggle_listening(self) -> None:
        if self.listener.active:
            self.listener.stop()
            self.ui.state_signal.emit("stopped")
        else:
            threading.Thread(target=self._start_listening, daemon=True).start()

    def _reset(self) -> None:
        self.initializer.reset()
        self.pipeline.reset_transcription()
        if not self.listener.active:
            threading.Thread(target=self._initialize, daemon=True).start()

    def _set_dashscope_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_dashscope_api_key(value)
        self.pipeline = self._build_pipeline()
        QMessageBox.information(None, "Saved", "DashScope key saved and applied.")

    def _set_elevenlabs_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "ElevenLabs API Key")
        if not ok:
            return
        self.config_store.set_elevenlabs_api_key(value)
        QMessageBox.information(None, "Saved", "ElevenLabs key saved. Restart app to apply.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Hold-to-Speak Key", "Use pynput key format, e.g. Key.alt_l"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Key saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(
                on_hold=self.controller.start_manual,
                on_release=self.controller.stop_manual,
            )
        except Exception as exc:
            self.overlay.show_error(f"Hold-to-speak disabled: {exc}")
        threading.Thread(target=self._initialize, daemon=True).start()
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        try:
            self.listener.stop()
        finally:
            self.playback.stop()
            self.turns.shutdown(wait=False, cancel_futures=True)
            self.sample_worker.shutdown(wait=True)
            self.voice_client.close()
            self.app.quit()


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
