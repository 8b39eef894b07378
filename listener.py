"""Microphone session: the tick loop driving level, VAD and recording."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import ERROR_MESSAGES, INTERNAL_ERROR, DeviceError
from interfaces import Recorder
from level_monitor import TICK_INTERVAL_S, AudioLevelMonitor, SpectrumAnalyser
from models import AudioFrame, LevelReading, VadEvent
from recording_controller import RecordingController
from vad import VoiceActivityDetector

logger = logging.getLogger("voiceclone.listener")

ErrorCallback = Callable[[str, str], None]


class ListeningSession:
    """Owns the microphone, the analyser and the tick thread of one session.

    Capture frames arrive on the audio callback thread: they feed the
    analyser window and, while recording, the controller's chunk list. The
    tick thread samples the level, runs it through the detector and forwards
    transitions to the controller. :meth:`stop` releases everything in order:
    capture, analyser, stream, device.
    """

    def __init__(
        self,
        recorder: Recorder,
        controller: RecordingController,
        analyser: Optional[SpectrumAnalyser] = None,
        detector: Optional[VoiceActivityDetector] = None,
        clock: Optional[Callable[[], int]] = None,
        tick_interval_s: float = TICK_INTERVAL_S,
        on_level: Optional[Callable[[LevelReading], None]] = None,
        on_vad_event: Optional[Callable[[VadEvent], None]] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._controller = controller
        self.analyser = analyser or SpectrumAnalyser()
        self.detector = detector or VoiceActivityDetector()
        self.monitor = AudioLevelMonitor(
            self.analyser.byte_frequency_data,
            clock=clock,
            on_level=on_level,
        )
        self._tick_interval_s = tick_interval_s
        self._on_vad_event = on_vad_event
        self._on_error = on_error

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self, run_loop: bool = True) -> None:
        with self._lock:
            if self._active:
                return
            self.detector.reset()
            self.analyser.connect()
            try:
                self._recorder.start(self._on_frame)
            except DeviceError as exc:
                logger.error("cannot start capture: %s", exc)
                self._release()
                self._controller.on_device_error(exc.kind)
                raise
            self._active = True
            self._stop_event.clear()
            if run_loop:
                self._thread = threading.Thread(target=self._loop, name="level-tick", daemon=True)
                self._thread.start()
        logger.info("listening started")

    def stop(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._stop_event.set()
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        try:
            self._recorder.stop()
            self._controller.on_capture_end()
        finally:
            self._release()
        logger.info("listening stopped")

    def tick(self) -> Optional[VadEvent]:
        """Advance one sampling step."""
        if not self._active:
            return None
        reading = self.monitor.sample()
        if reading is None:
            return None
        event = self.detector.process(reading)
        if event is None:
            return None
        if self._on_vad_event:
            self._on_vad_event(event)
        self._controller.handle_vad_event(event)
        return event

    def _loop(self) -> None:
        while not self._stop_event.wait(self._tick_interval_s):
            try:
                self.tick()
            except Exception as exc:
                logger.exception("level tick failed, stopping listening")
                self._emit_error(INTERNAL_ERROR, f"{ERROR_MESSAGES[INTERNAL_ERROR]} ({exc})")
                self._shutdown()
                return

    def _shutdown(self) -> None:
        try:
            self.stop()
        except Exception:
            logger.exception("release after tick failure did not complete")

    def _on_frame(self, frame: AudioFrame) -> None:
        self.analyser.push(frame.pcm16_bytes)
        self._controller.on_chunk(frame.pcm16_bytes)

    def _release(self) -> None:
        self.analyser.disconnect()
        self._recorder.close()

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)
